"""Terrain step: DEM-derived metrics reduced to points.

Runs locally on a single DEM GeoTIFF (plus an optional upstream-area raster
for TWI on the same grid).
"""

from __future__ import annotations

from typing import Optional, Sequence

import geopandas as gpd
from loguru import logger

from rs_timeseries.catalog import read_geotiff
from rs_timeseries.config import PipelineConfig
from rs_timeseries.errors import GridMismatchError
from rs_timeseries.geo import Aoi
from rs_timeseries.preprocessing.terrain import (
    TerrainMetric,
    TerrainParams,
    add_terrain_metrics,
)
from rs_timeseries.zonal.points import reduce_to_points


def run_terrain(
    dem_path: str,
    points: gpd.GeoDataFrame,
    metrics: Sequence[TerrainMetric],
    cfg: PipelineConfig,
    *,
    upslope_path: Optional[str] = None,
    aoi: Optional[Aoi] = None,
    buffer_m: Optional[float] = None,
    reducer: str = "first",
) -> gpd.GeoDataFrame:
    """Compute *metrics* on the DEM and reduce them at *points*.

    1. Read the DEM (first band renamed to the configured DEM band)
    2. Attach the upstream-area band when TWI is requested
    3. Compute terrain metrics
    4. Reduce the metric bands at each point
    """
    params = TerrainParams(
        dem_band=cfg.indices.dem_band,
        tpi_radius_px=cfg.indices.tpi_radius_px,
        hli_latitude=cfg.indices.hli_latitude,
    )
    dem = read_geotiff(dem_path)
    image = dem.select(dem.band_names[:1]).rename({dem.band_names[0]: params.dem_band})

    if TerrainMetric.TWI in metrics:
        if upslope_path is None:
            raise ValueError("TWI needs an upstream drainage area raster (--upslope)")
        upa = read_geotiff(upslope_path)
        if upa.grid != image.grid:
            raise GridMismatchError(f"{upslope_path} is not on the DEM grid")
        image = image.add_bands({params.upslope_band: upa.band(upa.band_names[0])})

    logger.info(f"Computing {[m.value for m in metrics]} on {dem_path}")
    image = add_terrain_metrics(image, metrics, params)

    return reduce_to_points(
        cfg.zonal.buffer_m if buffer_m is None else buffer_m,
        reducer,
        points,
        aoi,
        image,
        bands=[m.value for m in metrics],
    )
