"""End-to-end tests for the extraction step on an in-memory catalog."""

import pandas as pd
import pytest

from rs_timeseries.catalog import InMemoryCatalog
from rs_timeseries.config import PipelineConfig
from rs_timeseries.errors import UnknownIndexError
from rs_timeseries.exit_codes import ExitCode
from rs_timeseries.sensors import LE07, LT05
from rs_timeseries.steps.extract import ExtractionRequest, run_extraction
from rs_timeseries.tracking import RunStore


@pytest.fixture
def cfg(tmp_path):
    cfg = PipelineConfig()
    cfg.export.dest = str(tmp_path / "exports")
    cfg.export.retries = 1
    cfg.execution.report_dir = str(tmp_path / "reports")
    cfg.execution.runs_dir = str(tmp_path / "runs")
    return cfg


@pytest.fixture
def catalog(make_landsat):
    return InMemoryCatalog({
        LT05.collection_id: [
            make_landsat("2020-01-05", red=0.1, nir=0.5),
            make_landsat("2020-03-10", red=0.2, nir=0.6),
        ],
        LE07.collection_id: [make_landsat("2020-02-11", red=0.1, nir=0.3)],
    })


def _request(**overrides):
    fields = dict(start="2020-01-01", end="2020-03-01", indices=["NDVI"], buffer_m=30)
    fields.update(overrides)
    return ExtractionRequest(**fields)


def test_monthly_ndvi_series(catalog, points, aoi, cfg, tmp_path):
    result = run_extraction(_request(), catalog, points, aoi, cfg, run_id="t1")

    assert result.exit_code == ExitCode.SUCCESS
    records = result.records
    assert list(records["start_date"]) == [
        "2020-01-01", "2020-01-01", "2020-02-01", "2020-02-01", "2020-03-01", "2020-03-01",
    ]
    assert list(records["NDVI_mean_30"]) == pytest.approx(
        [0.4 / 0.6] * 2 + [0.2 / 0.4] * 2 + [0.5] * 2
    )
    assert list(records["St_SttK"][:2]) == ["A", "B"]

    table = pd.read_csv(tmp_path / "exports" / "timeseries.csv")
    assert len(table) == 6
    assert "geometry" not in table.columns
    assert result.outputs == ["timeseries.csv"]

    run = RunStore(cfg.execution.runs_dir).load("t1")
    assert run.status == "completed"
    assert run.windows["2020-02-01"].image_count == 1
    assert run.windows["2020-02-01"].steps["composite"].status == "success"


def test_empty_windows_kept_or_dropped(make_landsat, points, aoi, cfg):
    catalog = InMemoryCatalog({LT05.collection_id: [make_landsat("2020-01-05")]})
    kept = run_extraction(_request(), catalog, points, aoi, cfg, run_id="keep")
    assert len(kept.records) == 6
    assert kept.records["NDVI_mean_30"].isna().sum() == 4

    dropped = run_extraction(_request(drop_empty_windows=True), catalog, points, aoi, cfg, run_id="drop")
    assert set(dropped.records["start_date"]) == {"2020-01-01"}
    assert dropped.exit_code == ExitCode.SUCCESS


def test_window_failure_is_partial(make_landsat, points, aoi, cfg):
    broken = make_landsat("2020-02-11").select(["SR_B1", "SR_B2", "SR_B3", "QA_PIXEL"])
    catalog = InMemoryCatalog({
        LT05.collection_id: [make_landsat("2020-01-05"), broken, make_landsat("2020-03-10")],
    })
    result = run_extraction(_request(), catalog, points, aoi, cfg, run_id="partial")

    assert result.exit_code == ExitCode.PARTIAL_FAILURE
    assert set(result.records["start_date"]) == {"2020-01-01", "2020-03-01"}
    failure = result.tracker.failures()[0]
    assert failure.error_type == "BandMissingError"
    assert failure.window_info["start_date"] == "2020-02-01"
    assert result.run.status == "partial"
    assert result.run.windows["2020-02-01"].steps["composite"].status == "failed"


def test_unknown_index_rejected_before_work(catalog, points, aoi, cfg):
    with pytest.raises(UnknownIndexError) as exc_info:
        run_extraction(_request(indices=["NDVI", "NDRE1", "FOO"]), catalog, points, aoi, cfg)
    assert exc_info.value.names == ("NDRE1", "FOO")


def test_rasters_and_geojson(catalog, points, aoi, cfg, tmp_path):
    cfg.export.table_format = "geojson"
    request = _request(export_rasters=True, folder="run", output_name="ndvi", reducer="minMax")
    result = run_extraction(request, catalog, points, aoi, cfg, run_id="r", max_workers=2)

    assert result.exit_code == ExitCode.SUCCESS
    assert result.outputs == [
        "run/ndvi.geojson",
        "run/ndvi_2020-01-01.tif", "run/ndvi_2020-02-01.tif", "run/ndvi_2020-03-01.tif",
    ]
    assert {"NDVI_min_30", "NDVI_max_30"} <= set(result.records.columns)
    assert (tmp_path / "exports" / "run" / "ndvi_2020-02-01.tif").exists()


def test_focal_smoothing_renames_bands(catalog, points, aoi, cfg):
    result = run_extraction(_request(focal_radius_m=30), catalog, points, aoi, cfg, run_id="f")
    assert "NDVI_mean_mean_30" in result.records.columns


def test_export_failure_exit_code(catalog, points, aoi, cfg, monkeypatch):
    from rs_timeseries.storage import export as export_mod

    def failing_put(store, key, data):
        raise OSError("denied")

    monkeypatch.setattr(export_mod, "obstore_put_bytes", failing_put)
    result = run_extraction(_request(), catalog, points, aoi, cfg, run_id="e")
    assert result.exit_code == ExitCode.EXPORT_FAILED
    assert result.outputs == []
    assert len(result.records) == 6
