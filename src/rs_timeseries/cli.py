"""Click CLI: ``rsts`` command group."""

from __future__ import annotations

import click
from loguru import logger

from rs_timeseries.config import load_config
from rs_timeseries.exit_codes import ExitCode
from rs_timeseries.logging import bind_run_context, new_run_id, setup_logging


INTERVAL_TYPES = ["days", "weeks", "months", "years"]
REDUCERS = ["mean", "first", "sum", "median", "histogram", "minMax", "count"]


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------

@click.group(invoke_without_command=True)
@click.version_option(package_name="rs-timeseries", prog_name="rsts")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True),
              help="Path to pipeline YAML config.")
@click.option("--log-level", default="INFO",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--log-format", default="text",
              type=click.Choice(["text", "json"]),
              help="Log output format.")
@click.option("--log-file", default=None, type=click.Path(), help="Also log (DEBUG) to this file.")
@click.option("--run-id", default=None, help="Override auto-generated run ID.")
@click.option("--show-config", is_flag=True, help="Print resolved config as YAML and exit.")
@click.pass_context
def rsts(ctx: click.Context, config_path, log_level, log_format, log_file, run_id, show_config):
    """Remote-sensing time-series compositing and point extraction."""
    ctx.ensure_object(dict)

    run_id = run_id or new_run_id()
    ctx.obj["run_id"] = run_id
    setup_logging(level=log_level, fmt=log_format, log_file=log_file)
    bind_run_context(run_id)
    ctx.obj["cfg"] = load_config(config_path)

    if show_config:
        import yaml as _yaml
        click.echo(_yaml.dump(ctx.obj["cfg"].to_dict(), default_flow_style=False))
        ctx.exit(ExitCode.SUCCESS)
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# windows
# ---------------------------------------------------------------------------

@rsts.command()
@click.option("--start", required=True, help="First window start (YYYY-MM-DD).")
@click.option("--end", required=True, help="End date (YYYY-MM-DD).")
@click.option("--interval", type=int, default=1, show_default=True)
@click.option("--interval-type", default="months", show_default=True,
              type=click.Choice(INTERVAL_TYPES, case_sensitive=False))
@click.pass_context
def windows(ctx, start, end, interval, interval_type):
    """Print the date windows for a start/end/interval."""
    from rs_timeseries.temporal.windows import generate_windows

    try:
        result = generate_windows(start, end, interval, interval_type)
    except ValueError as exc:
        logger.error(str(exc))
        ctx.exit(ExitCode.BAD_INPUT)
        return

    click.echo("start_date,end_date,year,month")
    for w in result:
        p = w.properties()
        click.echo(f"{p['start_date']},{p['end_date']},{p['year']},{p['month']}")


# ---------------------------------------------------------------------------
# indices
# ---------------------------------------------------------------------------

@rsts.command()
@click.option("--family", default=None, type=click.Choice(["landsat", "sentinel2"]),
              help="Only list indices for one sensor family.")
def indices(family):
    """List registered spectral indices and terrain metrics."""
    from rs_timeseries.preprocessing.indices import SensorFamily, available_indices
    from rs_timeseries.preprocessing.terrain import TerrainMetric

    families = [SensorFamily(family)] if family else list(SensorFamily)
    for fam in families:
        names = ", ".join(i.value for i in available_indices(fam))
        click.echo(f"{fam.value}: {names}")
    if family is None:
        click.echo(f"terrain: {', '.join(m.value for m in TerrainMetric)}")


# ---------------------------------------------------------------------------
# extract
# ---------------------------------------------------------------------------

@rsts.command()
@click.option("--catalog", "catalog_path", required=True, type=click.Path(exists=True),
              help="CSV index of GeoTIFFs (collection_id, path, time_start, ...).")
@click.option("--points", "points_path", required=True, type=click.Path(exists=True),
              help="Point network (CSV with lon/lat, GeoJSON, GPKG, ...).")
@click.option("--lon-col", default="lon", show_default=True)
@click.option("--lat-col", default="lat", show_default=True)
@click.option("--source", default="landsat", show_default=True,
              help="landsat, sentinel2, era5, terraclimate or a collection id.")
@click.option("--start", required=True)
@click.option("--end", required=True)
@click.option("--interval", type=int, default=1, show_default=True)
@click.option("--interval-type", default="months", show_default=True,
              type=click.Choice(INTERVAL_TYPES, case_sensitive=False))
@click.option("--index", "index_names", multiple=True, help="Index to compute (repeatable).")
@click.option("--band", "bands", multiple=True, help="Raw band to composite (repeatable).")
@click.option("--snow", is_flag=True, help="Add the NDSI-threshold snow band.")
@click.option("--buffer", "buffer_m", type=float, default=None, help="Point buffer in metres.")
@click.option("--reducer", default=None, type=click.Choice(REDUCERS, case_sensitive=False))
@click.option("--scale", type=float, default=None, help="Reduction pixel size.")
@click.option("--crs", default=None, help="Reduction/composite CRS, e.g. EPSG:32612.")
@click.option("--tile-scale", type=int, default=None)
@click.option("--focal-radius", type=float, default=None,
              help="Neighbourhood mean radius (m) applied before reduction.")
@click.option("--aoi", "aoi_path", default=None, type=click.Path(exists=True),
              help="AOI vector file; default: point bounds buffered by zonal.aoi_buffer_m.")
@click.option("--bbox", default=None, help="AOI as minx,miny,maxx,maxy (EPSG:4326).")
@click.option("--scale-preset", default=None,
              type=click.Choice(["landsat_c2", "sentinel2", "terraclimate"]),
              help="Scale factors for single-collection sources.")
@click.option("--dest", default=None, envvar="DEST", help="Export root (local dir or s3://).")
@click.option("--folder", default="", help="Folder/prefix inside --dest.")
@click.option("--name", "output_name", default="timeseries", show_default=True,
              help="Output table filename and raster prefix.")
@click.option("--rasters", is_flag=True, help="Also export one GeoTIFF per window.")
@click.option("--drop-empty", is_flag=True, help="Skip records for windows with no images.")
@click.option("--max-workers", type=int, default=None, help="Parallel window jobs.")
@click.option("--report-dir", default=None)
@click.option("--dry-run", is_flag=True, help="Validate inputs and list windows only.")
@click.pass_context
def extract(ctx, catalog_path, points_path, lon_col, lat_col, source, start, end,
            interval, interval_type, index_names, bands, snow, buffer_m, reducer, scale,
            crs, tile_scale, focal_radius, aoi_path, bbox, scale_preset, dest, folder,
            output_name, rasters, drop_empty, max_workers, report_dir, dry_run):
    """Composite every window and extract point time series."""
    from rs_timeseries.catalog import GeoTiffCatalog
    from rs_timeseries.compositing.sources import build_source
    from rs_timeseries.errors import UnknownIndexError
    from rs_timeseries.geo import Aoi, load_points
    from rs_timeseries.steps.extract import (
        ExtractionRequest,
        run_extraction,
        validate_indices,
    )
    from rs_timeseries.temporal.windows import generate_windows

    cfg = ctx.obj["cfg"]
    if not index_names and not bands and not snow:
        logger.error("Nothing to extract: pass --index and/or --band")
        ctx.exit(ExitCode.BAD_INPUT)
        return

    request = ExtractionRequest(
        start=start, end=end, interval=interval, interval_type=interval_type,
        source=source, indices=index_names, bands=bands, buffer_m=buffer_m,
        reducer=reducer, scale=scale, crs=crs, tile_scale=tile_scale,
        focal_radius_m=focal_radius, scale_preset=scale_preset, snow=snow,
        output_name=output_name, folder=folder, export_rasters=rasters,
        drop_empty_windows=drop_empty,
    )

    try:
        validate_indices(index_names, build_source(source, cfg, scale_preset))
        window_list = generate_windows(start, end, interval, interval_type)
        points = load_points(points_path, lon_col=lon_col, lat_col=lat_col)
        if aoi_path:
            aoi = Aoi.from_file(aoi_path)
        elif bbox:
            aoi = Aoi.from_bbox([float(v) for v in bbox.split(",")])
        else:
            aoi = Aoi.from_points(points, cfg.zonal.aoi_buffer_m)
    except (UnknownIndexError, ValueError) as exc:
        logger.error(str(exc))
        ctx.exit(ExitCode.BAD_INPUT)
        return

    inside = points.geometry.intersects(aoi.to_crs(points.crs.to_string()))
    if not inside.any():
        logger.warning("No points fall inside the AOI")
        ctx.exit(ExitCode.NO_WORK)
        return

    if dry_run:
        click.echo(f"Source: {source}, Points: {int(inside.sum())}/{len(points)}, "
                   f"Windows: {len(window_list)}")
        for w in window_list[:5]:
            click.echo(f"  {w}")
        if len(window_list) > 5:
            click.echo(f"  ... and {len(window_list) - 5} more")
        ctx.exit(ExitCode.SUCCESS)
        return

    result = run_extraction(
        request, GeoTiffCatalog(catalog_path), points, aoi, cfg,
        run_id=ctx.obj["run_id"], dest=dest, report_dir=report_dir,
        max_workers=max_workers,
    )
    for key in result.outputs:
        click.echo(key)
    ctx.exit(result.exit_code)


# ---------------------------------------------------------------------------
# terrain
# ---------------------------------------------------------------------------

@rsts.command()
@click.option("--dem", "dem_path", required=True, type=click.Path(exists=True))
@click.option("--upslope", "upslope_path", default=None, type=click.Path(exists=True),
              help="Upstream drainage area raster (km^2), needed for TWI.")
@click.option("--points", "points_path", required=True, type=click.Path(exists=True))
@click.option("--lon-col", default="lon", show_default=True)
@click.option("--lat-col", default="lat", show_default=True)
@click.option("--metric", "metric_names", multiple=True,
              default=("slope", "aspect", "northness", "TPI", "HLI"), show_default=True)
@click.option("--buffer", "buffer_m", type=float, default=None)
@click.option("--reducer", default="first", show_default=True,
              type=click.Choice(REDUCERS, case_sensitive=False))
@click.option("-o", "--output", default="terrain.csv", show_default=True)
@click.pass_context
def terrain(ctx, dem_path, upslope_path, points_path, lon_col, lat_col, metric_names,
            buffer_m, reducer, output):
    """Compute terrain metrics from a DEM and extract them at points."""
    from rs_timeseries.geo import load_points
    from rs_timeseries.preprocessing.terrain import parse_metrics
    from rs_timeseries.steps.terrain import run_terrain

    cfg = ctx.obj["cfg"]
    try:
        metrics = parse_metrics(metric_names)
        points = load_points(points_path, lon_col=lon_col, lat_col=lat_col)
        records = run_terrain(
            dem_path, points, metrics, cfg,
            upslope_path=upslope_path, buffer_m=buffer_m, reducer=reducer,
        )
    except ValueError as exc:
        logger.error(str(exc))
        ctx.exit(ExitCode.BAD_INPUT)
        return

    records.drop(columns=records.geometry.name).to_csv(output, index=False)
    logger.info(f"Results written to {output} ({len(records)} points)")


# ---------------------------------------------------------------------------
# runs / show-run
# ---------------------------------------------------------------------------

@rsts.command()
@click.pass_context
def runs(ctx):
    """List saved runs (newest first)."""
    from rs_timeseries.tracking import RunStore

    store = RunStore(ctx.obj["cfg"].execution.runs_dir)
    for run_id in store.list_runs():
        run = store.load(run_id)
        click.echo(f"{run.run_id}  {run.status:10s}  {run.started_at}  windows={len(run.windows)}")


@rsts.command("show-run")
@click.argument("run_id")
@click.pass_context
def show_run(ctx, run_id):
    """Print one run's metadata as JSON."""
    import dataclasses
    import json

    from rs_timeseries.tracking import RunStore

    store = RunStore(ctx.obj["cfg"].execution.runs_dir)
    try:
        run = store.load(run_id)
    except FileNotFoundError:
        logger.error(f"Run {run_id} not found in {store.base_dir}")
        ctx.exit(ExitCode.BAD_INPUT)
        return
    click.echo(json.dumps(dataclasses.asdict(run), indent=2, default=str))


if __name__ == "__main__":
    rsts()
