"""CLI tests via click's CliRunner."""

import json
import sys

import numpy as np
import pandas as pd
import pytest
import rasterio
from click.testing import CliRunner
from loguru import logger
from rasterio.transform import from_origin

from rs_timeseries.cli import rsts
from rs_timeseries.exit_codes import ExitCode


LANDSAT_BANDS = ["SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B7", "QA_PIXEL"]


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    # the CLI replaces loguru's sinks with the runner's captured stderr
    logger.remove()
    logger.add(sys.stderr)


def _write_geographic_tif(path, bands):
    """10x10 EPSG:4326 raster with 0.001 degree pixels, top-left at (-111, 36)."""
    profile = {
        "driver": "GTiff", "height": 10, "width": 10, "count": len(bands),
        "dtype": "float32", "crs": "EPSG:4326",
        "transform": from_origin(-111.0, 36.0, 0.001, 0.001),
    }
    with rasterio.open(path, "w", **profile) as dst:
        for i, (name, values) in enumerate(bands.items(), start=1):
            dst.write(np.broadcast_to(np.float32(values), (10, 10)).astype("float32"), i)
            dst.set_band_description(i, name)


@pytest.fixture
def points_csv(workdir):
    path = workdir / "stations.csv"
    path.write_text("St_SttK,lon,lat\nA,-110.9955,35.9955\nB,-110.9935,35.9935\n")
    return str(path)


@pytest.fixture
def catalog_csv(workdir):
    values = {name: 0.2 for name in LANDSAT_BANDS}
    values.update({"SR_B3": 1000.0, "SR_B4": 3000.0, "QA_PIXEL": 0.0})
    _write_geographic_tif(workdir / "lt05_jan.tif", values)
    index = workdir / "catalog.csv"
    index.write_text(
        "collection_id,path,time_start\n"
        "LANDSAT/LT05/C02/T1_L2,lt05_jan.tif,2020-01-10\n"
    )
    return str(index)


def test_windows_command():
    result = CliRunner().invoke(
        rsts, ["--log-level", "ERROR", "windows", "--start", "2020-01-01", "--end", "2020-03-01"],
    )
    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert lines[0] == "start_date,end_date,year,month"
    assert lines[1:] == [
        "2020-01-01,2020-02-01,2020,1",
        "2020-02-01,2020-03-01,2020,2",
        "2020-03-01,2020-04-01,2020,3",
    ]


def test_windows_bad_range():
    result = CliRunner().invoke(rsts, ["windows", "--start", "2020-03-01", "--end", "2020-01-01"])
    assert result.exit_code == ExitCode.BAD_INPUT


def test_indices_command():
    result = CliRunner().invoke(rsts, ["indices", "--family", "landsat"])
    assert result.exit_code == 0
    assert "NDVI" in result.output
    assert "NDRE1" not in result.output


def test_show_config():
    result = CliRunner().invoke(rsts, ["--show-config"])
    assert result.exit_code == 0
    assert "dn_scale: 10000.0" in result.output


def test_extract_unknown_index(catalog_csv, points_csv):
    result = CliRunner().invoke(rsts, [
        "extract", "--catalog", catalog_csv, "--points", points_csv,
        "--start", "2020-01-01", "--end", "2020-01-01", "--index", "NDVI", "--index", "FOO",
    ])
    assert result.exit_code == ExitCode.BAD_INPUT


def test_extract_needs_something_to_extract(catalog_csv, points_csv):
    result = CliRunner().invoke(rsts, [
        "extract", "--catalog", catalog_csv, "--points", points_csv,
        "--start", "2020-01-01", "--end", "2020-01-01",
    ])
    assert result.exit_code == ExitCode.BAD_INPUT


def test_extract_no_points_in_aoi(catalog_csv, points_csv):
    result = CliRunner().invoke(rsts, [
        "extract", "--catalog", catalog_csv, "--points", points_csv,
        "--start", "2020-01-01", "--end", "2020-01-01", "--index", "NDVI",
        "--bbox", "10,10,11,11",
    ])
    assert result.exit_code == ExitCode.NO_WORK


def test_extract_dry_run(catalog_csv, points_csv):
    result = CliRunner().invoke(rsts, [
        "extract", "--catalog", catalog_csv, "--points", points_csv,
        "--start", "2020-01-01", "--end", "2020-06-01", "--index", "NDVI", "--dry-run",
    ])
    assert result.exit_code == 0
    assert "Windows: 6" in result.output
    assert "... and 1 more" in result.output


def test_extract_end_to_end(catalog_csv, points_csv, workdir):
    runner = CliRunner()
    result = runner.invoke(rsts, [
        "--run-id", "cli1",
        "extract", "--catalog", catalog_csv, "--points", points_csv,
        "--start", "2020-01-01", "--end", "2020-01-01", "--index", "NDVI",
        "--dest", str(workdir / "out"), "--rasters",
    ])
    assert result.exit_code == 0, result.output
    assert "timeseries.csv" in result.output

    table = pd.read_csv(workdir / "out" / "timeseries.csv")
    assert list(table["St_SttK"]) == ["A", "B"]
    assert list(table["NDVI_mean_30"]) == pytest.approx([0.5, 0.5])
    assert (workdir / "out" / "timeseries_2020-01-01.tif").exists()

    runs = runner.invoke(rsts, ["runs"])
    assert "cli1" in runs.output

    shown = runner.invoke(rsts, ["--log-level", "ERROR", "show-run", "cli1"])
    assert shown.exit_code == 0
    assert json.loads(shown.output)["status"] == "completed"

    missing = runner.invoke(rsts, ["show-run", "nope"])
    assert missing.exit_code == ExitCode.BAD_INPUT


def test_terrain_command(points_csv, workdir):
    ramp = np.tile(np.arange(10, dtype="float32") * 5.0, (10, 1))
    _write_geographic_tif(workdir / "dem.tif", {"elevation": ramp})
    result = CliRunner().invoke(rsts, [
        "terrain", "--dem", str(workdir / "dem.tif"), "--points", points_csv,
        "--metric", "slope", "--metric", "aspect", "-o", str(workdir / "terrain.csv"),
    ])
    assert result.exit_code == 0, result.output

    table = pd.read_csv(workdir / "terrain.csv")
    assert table.columns[0] == "St_SttK"
    assert list(table.columns[-2:]) == ["slope_first_30", "aspect_first_30"]
    assert (table["slope_first_30"] > 0).all()
    assert list(table["aspect_first_30"]) == pytest.approx([270.0, 270.0])


def test_terrain_twi_needs_upslope(points_csv, workdir):
    _write_geographic_tif(workdir / "dem.tif", {"elevation": 1.0})
    result = CliRunner().invoke(rsts, [
        "terrain", "--dem", str(workdir / "dem.tif"), "--points", points_csv, "--metric", "TWI",
    ])
    assert result.exit_code == ExitCode.BAD_INPUT
