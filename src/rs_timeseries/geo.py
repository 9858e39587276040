"""Vector helpers: areas of interest and point networks.

Geometries travel with their CRS.  An :class:`Aoi` is reprojected to an
image's grid CRS on demand; a point network is a ``GeoDataFrame`` whose
attribute columns (site identifiers such as ``St_SttK`` or ``Project``) are
carried onto every zonal record.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import geopandas as gpd
import pandas as pd
from loguru import logger
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry


DEFAULT_CRS = "EPSG:4326"


@dataclass(frozen=True)
class Aoi:
    """An area-of-interest geometry and the CRS it is expressed in."""

    geometry: BaseGeometry
    crs: str = DEFAULT_CRS

    @classmethod
    def from_bbox(cls, bbox: Sequence[float], crs: str = DEFAULT_CRS) -> "Aoi":
        """Build from ``(minx, miny, maxx, maxy)``."""
        minx, miny, maxx, maxy = bbox
        if minx >= maxx or miny >= maxy:
            raise ValueError(f"Degenerate bounding box: {tuple(bbox)}")
        return cls(box(minx, miny, maxx, maxy), crs)

    @classmethod
    def from_file(cls, path: str) -> "Aoi":
        """Dissolve every feature of a vector file into one AOI."""
        gdf = gpd.read_file(path)
        if gdf.empty:
            raise ValueError(f"No features in AOI file {path}")
        crs = gdf.crs.to_string() if gdf.crs is not None else DEFAULT_CRS
        return cls(gdf.geometry.union_all(), crs)

    @classmethod
    def from_points(cls, points: gpd.GeoDataFrame, buffer_m: float = 10_000.0) -> "Aoi":
        """Bounding box of *points*, buffered by *buffer_m* metres, then re-boxed.

        Mirrors the usual "station network bounds plus 10 km" study area.
        """
        if points.empty:
            raise ValueError("Cannot derive an AOI from an empty point network")
        bounds = box(*points.total_bounds)
        series = gpd.GeoSeries([bounds], crs=points.crs)
        if buffer_m:
            metric = metric_crs(series)
            series = series.to_crs(metric).buffer(buffer_m).envelope.to_crs(points.crs)
        return cls(box(*series.total_bounds), points.crs.to_string())

    def to_crs(self, crs: str) -> BaseGeometry:
        """Return the AOI geometry reprojected to *crs*."""
        if _same_crs(self.crs, crs):
            return self.geometry
        return gpd.GeoSeries([self.geometry], crs=self.crs).to_crs(crs).iloc[0]


def _same_crs(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return True
    return str(a).upper() == str(b).upper()


def metric_crs(frame):
    """A metre-based CRS for *frame*: its own if projected, else a local UTM zone."""
    if frame.crs is None or not frame.crs.is_geographic:
        return frame.crs
    return frame.estimate_utm_crs()


def load_points(
    path: str,
    *,
    lon_col: str = "lon",
    lat_col: str = "lat",
    crs: str = DEFAULT_CRS,
) -> gpd.GeoDataFrame:
    """Read a point network from CSV (lon/lat columns) or any vector format."""
    if Path(path).suffix.lower() == ".csv":
        df = pd.read_csv(path)
        missing = {lon_col, lat_col} - set(df.columns)
        if missing:
            raise ValueError(f"Point CSV is missing columns: {sorted(missing)}")
        gdf = gpd.GeoDataFrame(
            df.drop(columns=[lon_col, lat_col]),
            geometry=gpd.points_from_xy(df[lon_col], df[lat_col]),
            crs=crs,
        )
    else:
        gdf = gpd.read_file(path)
        if gdf.crs is None:
            gdf = gdf.set_crs(crs)

    non_points = ~gdf.geometry.geom_type.isin(["Point"])
    if non_points.any():
        logger.warning(f"{int(non_points.sum())} non-point features; using centroids")
        gdf = gdf.set_geometry(gdf.to_crs(metric_crs(gdf)).centroid.to_crs(gdf.crs))

    logger.info(f"Loaded {len(gdf)} points from {path}")
    return gdf.reset_index(drop=True)


def buffer_points(points: gpd.GeoDataFrame, buffer_m: float) -> gpd.GeoSeries:
    """Buffer each point by *buffer_m* metres, returned in the points' CRS."""
    metric = metric_crs(points)
    return points.geometry.to_crs(metric).buffer(buffer_m).to_crs(points.crs)
