"""Extraction step: windows -> composites -> point records -> exports.

Runs locally.  Each window is an independent COMPOSITE job; a window that
fails (e.g. an image lacking a band an index needs) is recorded in the
tracker and the remaining windows still run.  Exports run as EXPORT_TABLE
and EXPORT_RASTER jobs after all windows finish.
"""

from __future__ import annotations

import dataclasses
import functools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import geopandas as gpd
import pandas as pd
from loguru import logger

from rs_timeseries.catalog import ImageCatalog
from rs_timeseries.compositing.compositor import composite
from rs_timeseries.compositing.sources import CollectionSource, build_source
from rs_timeseries.config import PipelineConfig
from rs_timeseries.errors import UnknownIndexError
from rs_timeseries.execution import run_local_tasks
from rs_timeseries.exit_codes import ExitCode, exit_code_from_tracker
from rs_timeseries.geo import Aoi
from rs_timeseries.preprocessing.indices import IndexParams, SpectralIndex, resolve_indices
from rs_timeseries.raster import GridSpec, RasterImage
from rs_timeseries.storage.export import ExportSink, TableExport
from rs_timeseries.temporal.windows import DateWindow, generate_windows
from rs_timeseries.tracking import (
    JobTracker,
    PipelineRun,
    RunStore,
    StepResult,
    get_per_window_status,
)
from rs_timeseries.zonal.focal import focal_mean
from rs_timeseries.zonal.points import Reducer, reduce_to_points


@dataclass
class ExtractionRequest:
    """One extraction; ``None`` fields fall back to the loaded config."""

    start: str
    end: str
    interval: int = 1
    interval_type: str = "months"
    source: str = "landsat"
    indices: Sequence[str] = ()
    bands: Sequence[str] = ()
    buffer_m: Optional[float] = None
    reducer: Optional[str] = None
    scale: Optional[float] = None
    crs: Optional[str] = None
    tile_scale: Optional[int] = None
    focal_radius_m: Optional[float] = None
    scale_preset: Optional[str] = None
    snow: bool = False
    output_name: str = "timeseries"
    folder: str = ""
    selectors: Optional[Sequence[str]] = None
    export_rasters: bool = False
    drop_empty_windows: bool = False


@dataclass
class ExtractionResult:
    records: gpd.GeoDataFrame
    tracker: JobTracker
    exit_code: ExitCode
    run: PipelineRun
    outputs: List[str] = field(default_factory=list)


@dataclass
class _WindowContext:
    """Read-only inputs shared by every window job."""

    catalog: ImageCatalog
    source: CollectionSource
    aoi: Aoi
    points: gpd.GeoDataFrame
    indices: Sequence[SpectralIndex]
    bands: Sequence[str]
    params: IndexParams
    grid: Optional[GridSpec]
    snow_threshold: Optional[float]
    focal_radius_m: Optional[float]
    buffer_m: float
    reducer: Reducer
    scale: Optional[float]
    crs: Optional[str]
    tile_scale: int
    drop_empty: bool


# ------------------------------------
# Worker entry-points
# ------------------------------------

def _composite_window(ctx: _WindowContext, *, window: DateWindow, **_window_info) -> Dict[str, Any]:
    image = composite(
        window, ctx.aoi, ctx.source, ctx.catalog, ctx.indices, ctx.bands,
        ctx.params, ctx.grid, ctx.snow_threshold,
    )
    image_count = image.properties.get("image_count", 0)
    if ctx.focal_radius_m:
        image = focal_mean(image, ctx.focal_radius_m)

    if image_count == 0 and ctx.drop_empty:
        logger.info(f"Window {window} has no images; dropping its records")
        records = None
    else:
        records = reduce_to_points(
            ctx.buffer_m, ctx.reducer, ctx.points, ctx.aoi, image,
            ctx.crs, ctx.scale, ctx.tile_scale,
        )
    return {
        "status": "success",
        "summary": {
            "image_count": image_count,
            "records": 0 if records is None else len(records),
        },
        "payload": {"image": image, "records": records},
    }


def _export_table(sink: ExportSink, *, export: TableExport, **_info) -> Dict[str, Any]:
    outcome = sink.export_table(export)
    return {"status": "success", "attempts": outcome.attempts,
            "summary": dataclasses.asdict(outcome), "payload": outcome.key}


def _export_raster(sink: ExportSink, *, image: RasterImage, folder: str, prefix: str,
                   **_window_info) -> Dict[str, Any]:
    outcome = sink.export_image(image, folder, prefix)
    return {"status": "success", "attempts": outcome.attempts,
            "summary": dataclasses.asdict(outcome), "payload": outcome.key}


# ------------------------------------
# Helpers
# ------------------------------------

def validate_indices(names: Sequence[str], source: CollectionSource) -> tuple:
    """Resolve *names* for *source* before any window runs."""
    if not names:
        return ()
    if source.family is None:
        raise UnknownIndexError(list(names), [], source.name)
    return resolve_indices(names, source.family)


def build_grid(aoi: Aoi, crs: Optional[str], scale: float) -> Optional[GridSpec]:
    """Composite grid over the AOI when an explicit CRS is requested."""
    if crs is None:
        return None
    geom = aoi.to_crs(crs)
    return GridSpec.from_bounds(geom.bounds, scale, crs)


def _window_kwargs(window: DateWindow, source_name: str) -> Dict[str, Any]:
    info = window.properties()
    return {
        "window": window,
        "source": source_name,
        "start_date": info["start_date"],
        "end_date": info["end_date"],
        "year": info["year"],
        "month": info["month"],
    }


def _empty_records(points: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(columns=list(points.columns), geometry=points.geometry.name, crs=points.crs)


# ------------------------------------
# Step
# ------------------------------------

def run_extraction(
    request: ExtractionRequest,
    catalog: ImageCatalog,
    points: gpd.GeoDataFrame,
    aoi: Aoi,
    cfg: PipelineConfig,
    *,
    run_id: str = "local",
    dest: Optional[str] = None,
    report_dir: Optional[str] = None,
    max_workers: Optional[int] = None,
    sink: Optional[ExportSink] = None,
    run_store: Optional[RunStore] = None,
) -> ExtractionResult:
    """Run the full extraction and export for *request*.

    Raises :class:`UnknownIndexError` (before any work) for unknown index
    names.  Per-window failures do not raise; they are in the returned
    tracker and reflected in ``exit_code``.
    """
    source = build_source(request.source, cfg, request.scale_preset)
    indices = validate_indices(request.indices, source)
    windows = generate_windows(request.start, request.end, request.interval, request.interval_type)

    zonal = cfg.zonal
    scale = request.scale or zonal.scale
    crs = request.crs or zonal.crs
    ctx = _WindowContext(
        catalog=catalog,
        source=source,
        aoi=aoi,
        points=points,
        indices=indices,
        bands=tuple(request.bands),
        params=IndexParams(cfg.indices.ndrs_min, cfg.indices.ndrs_max, cfg.indices.ndrs_threshold),
        grid=build_grid(aoi, crs, scale),
        snow_threshold=cfg.indices.snow_threshold if request.snow else None,
        focal_radius_m=request.focal_radius_m,
        buffer_m=zonal.buffer_m if request.buffer_m is None else request.buffer_m,
        reducer=Reducer.parse(request.reducer or zonal.reducer),
        scale=request.scale,
        crs=crs,
        tile_scale=request.tile_scale or zonal.tile_scale,
        drop_empty=request.drop_empty_windows,
    )

    dest = dest or cfg.export.dest
    store = run_store or RunStore(cfg.execution.runs_dir)
    pipeline_run = PipelineRun(
        run_id=run_id,
        started_at=datetime.now(timezone.utc).isoformat(),
        config_snapshot=cfg.to_dict(),
        request=dataclasses.asdict(request),
        dest=dest,
    )
    for w in windows:
        info = w.properties()
        pipeline_run.ensure_window(info["start_date"], info["end_date"], info["year"], info["month"])

    tracker = JobTracker(report_dir or cfg.execution.report_dir)
    workers = max_workers or cfg.execution.max_workers
    logger.info(
        f"Extracting {[i.value for i in indices] + list(request.bands)} from {source.name} "
        f"over {len(windows)} window(s) at {len(points)} point(s)"
    )

    # 1. Composite + reduce, one job per window
    pipeline_run.current_step = "composite"
    kwargs_list = [_window_kwargs(w, source.name) for w in windows]
    results = run_local_tasks(
        functools.partial(_composite_window, ctx), "COMPOSITE", kwargs_list, tracker,
        max_workers=workers,
    )

    frames, images = [], []
    for kw, result in zip(kwargs_list, results):
        payload = result.get("payload") or {}
        ws = pipeline_run.windows[kw["start_date"]]
        if payload.get("image") is not None:
            images.append(payload["image"])
            ws.image_count = payload["image"].properties.get("image_count")
        if payload.get("records") is not None:
            frames.append(payload["records"])
    for key, status in get_per_window_status(tracker, "COMPOSITE").items():
        pipeline_run.windows[key].steps["composite"] = StepResult(status=status)

    if frames:
        records = gpd.GeoDataFrame(pd.concat(frames, ignore_index=True), crs=points.crs)
    else:
        records = _empty_records(points)

    # 2. Exports
    outputs: List[str] = []
    if images or frames:
        sink = sink or ExportSink(
            dest, cfg.export.retries, cfg.export.retry_backoff_sec, cfg.export.region,
        )
        pipeline_run.current_step = "export"
        table = TableExport(
            records, request.output_name, cfg.export.table_format,
            request.selectors, request.folder,
        )
        table_results = run_local_tasks(
            functools.partial(_export_table, sink), "EXPORT_TABLE",
            [{"export": table, "source": source.name}], tracker,
        )
        outputs.extend(r["payload"] for r in table_results if r.get("status") == "success")

        if request.export_rasters:
            raster_kwargs = []
            for image in images:
                info = {k: image.properties[k] for k in ("start_date", "end_date", "year", "month")}
                raster_kwargs.append({
                    "image": image, "folder": request.folder,
                    "prefix": request.output_name, "source": source.name, **info,
                })
            raster_results = run_local_tasks(
                functools.partial(_export_raster, sink), "EXPORT_RASTER", raster_kwargs,
                tracker, max_workers=workers,
            )
            outputs.extend(r["payload"] for r in raster_results if r.get("status") == "success")
            for key, status in get_per_window_status(tracker, "EXPORT_RASTER").items():
                pipeline_run.windows[key].steps["export_raster"] = StepResult(status=status)

    # 3. Summary
    tracker.print_summary()
    tracker.save_reports()
    exit_code = exit_code_from_tracker(tracker)

    pipeline_run.outputs = outputs
    pipeline_run.current_step = None
    pipeline_run.status = {
        ExitCode.SUCCESS: "completed",
        ExitCode.PARTIAL_FAILURE: "partial",
    }.get(exit_code, "failed")
    pipeline_run.finished_at = datetime.now(timezone.utc).isoformat()
    store.save(pipeline_run)
    logger.info(f"Run metadata saved: {store.base_dir}/{run_id}.json")

    return ExtractionResult(records, tracker, exit_code, pipeline_run, outputs)
