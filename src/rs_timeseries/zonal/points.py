"""Point / buffered-point zonal statistics over images and image sequences.

Each output row is one (point, image) pair: the point's own attribute
columns, the image's properties (window ``start_date``, ``month``, ...) and
one column per reduced band, named ``<band>_<reducer>_<buffer>`` so that
repeated extractions with different buffers or reducers never collide
(``NDVI_mean_30`` vs ``NDVI_mean_100``).
"""

from __future__ import annotations

import json
import math
from collections import Counter
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import numpy as np
from affine import Affine
from loguru import logger
from rasterio.features import geometry_mask
from rasterio.transform import rowcol
from rasterio.warp import transform_bounds

from rs_timeseries.geo import Aoi, buffer_points
from rs_timeseries.raster import GridSpec, ImageSequence, RasterImage, reproject_image


class Reducer(str, Enum):
    MEAN = "mean"
    FIRST = "first"
    SUM = "sum"
    MEDIAN = "median"
    HISTOGRAM = "histogram"
    MIN_MAX = "minMax"
    COUNT = "count"

    @classmethod
    def parse(cls, value: Union[str, "Reducer"]) -> "Reducer":
        if isinstance(value, cls):
            return value
        lookup = {r.value.lower(): r for r in cls}
        try:
            return lookup[str(value).strip().lower()]
        except KeyError:
            raise ValueError(
                f"Unknown reducer {value!r}; choose from {[r.value for r in cls]}"
            ) from None


# ---------------------------------------------------------------------------
# Field naming
# ---------------------------------------------------------------------------

def format_buffer(buffer_m: float) -> str:
    """``30`` for 30.0, ``12p5`` for 12.5."""
    if float(buffer_m).is_integer():
        return str(int(buffer_m))
    return str(buffer_m).replace(".", "p")


def field_names(band: str, reducer: Reducer, buffer_m: float) -> List[str]:
    suffix = format_buffer(buffer_m)
    if reducer is Reducer.MIN_MAX:
        return [f"{band}_min_{suffix}", f"{band}_max_{suffix}"]
    return [f"{band}_{reducer.value}_{suffix}"]


# ---------------------------------------------------------------------------
# Reduction
# ---------------------------------------------------------------------------

def reduce_values(values: np.ma.MaskedArray, reducer: Reducer) -> List[Any]:
    """Statistic(s) of the unmasked *values*, ``None`` when there are none.

    ``count`` of an all-masked footprint is 0; ``histogram`` is a JSON
    object of value -> pixel count.
    """
    valid = np.ma.asarray(values).compressed()
    if reducer is Reducer.COUNT:
        return [int(valid.size)]
    if valid.size == 0:
        return [None, None] if reducer is Reducer.MIN_MAX else [None]
    if reducer is Reducer.MEAN:
        return [float(np.mean(valid))]
    if reducer is Reducer.FIRST:
        return [float(valid[0])]
    if reducer is Reducer.SUM:
        return [float(np.sum(valid))]
    if reducer is Reducer.MEDIAN:
        return [float(np.median(valid))]
    if reducer is Reducer.MIN_MAX:
        return [float(np.min(valid)), float(np.max(valid))]
    counts = Counter(float(v) for v in valid)
    return [json.dumps({repr(k): counts[k] for k in sorted(counts)})]


Footprint = Tuple[np.ndarray, np.ndarray]
_EMPTY: Footprint = (np.empty(0, dtype=int), np.empty(0, dtype=int))


def _pixel_of(point, grid: GridSpec) -> Footprint:
    row, col = rowcol(grid.transform, point.x, point.y)
    if 0 <= row < grid.height and 0 <= col < grid.width:
        return np.array([row]), np.array([col])
    return _EMPTY


def footprint(geom, grid: GridSpec) -> Footprint:
    """Row/column indices of pixels whose centre lies in *geom*.

    Points map to their containing pixel; polygons smaller than a pixel
    fall back to the pixel under their centroid.
    """
    if geom is None or geom.is_empty:
        return _EMPTY
    if geom.geom_type == "Point":
        return _pixel_of(geom, grid)

    inverse = ~grid.transform
    minx, miny, maxx, maxy = geom.bounds
    c0, r0 = inverse * (minx, maxy)
    c1, r1 = inverse * (maxx, miny)
    col_off = max(0, math.floor(min(c0, c1)))
    row_off = max(0, math.floor(min(r0, r1)))
    col_end = min(grid.width, math.ceil(max(c0, c1)))
    row_end = min(grid.height, math.ceil(max(r0, r1)))
    if col_end <= col_off or row_end <= row_off:
        return _pixel_of(geom.centroid, grid)

    inside = geometry_mask(
        [geom],
        out_shape=(row_end - row_off, col_end - col_off),
        transform=grid.transform * Affine.translation(col_off, row_off),
        invert=True,
    )
    rows, cols = np.nonzero(inside)
    if rows.size == 0:
        return _pixel_of(geom.centroid, grid)
    return rows + row_off, cols + col_off


def _target_grid(image: RasterImage, crs: Optional[str], scale: Optional[float]) -> GridSpec:
    if crs is None and scale is None:
        return image.grid
    crs = crs or image.grid.crs
    scale = scale or image.grid.pixel_size[0]
    if str(crs).upper() == str(image.grid.crs).upper() and math.isclose(scale, image.grid.pixel_size[0]):
        return image.grid
    bounds = transform_bounds(image.grid.crs, crs, *image.grid.bounds)
    return GridSpec.from_bounds(bounds, scale, crs)


def _property_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class _FootprintCache:
    """Footprints per grid: every composite of a run usually shares one."""

    def __init__(self, geometries: gpd.GeoSeries):
        self._geometries = geometries
        self._by_grid: Dict[GridSpec, List[Footprint]] = {}

    def get(self, grid: GridSpec) -> List[Footprint]:
        if grid not in self._by_grid:
            projected = self._geometries.to_crs(grid.crs)
            self._by_grid[grid] = [footprint(g, grid) for g in projected]
        return self._by_grid[grid]


def reduce_image(
    image: RasterImage,
    footprints: Sequence[Footprint],
    reducer: Reducer,
    buffer_m: float,
    bands: Optional[Sequence[str]] = None,
    tile_scale: int = 1,
) -> List[Dict[str, Any]]:
    """One dict of reduced fields per footprint, in footprint order."""
    bands = list(bands) if bands is not None else list(image.band_names)
    image.require(*bands)
    names = {band: field_names(band, reducer, buffer_m) for band in bands}
    rows: List[Dict[str, Any]] = [{} for _ in footprints]

    chunks = np.array_split(np.arange(len(footprints)), max(1, int(tile_scale)))
    for chunk in chunks:
        for band in bands:
            values = image.band(band)
            for i in chunk:
                r, c = footprints[i]
                stats = reduce_values(values[r, c], reducer)
                rows[i].update(zip(names[band], stats))
    return rows


def reduce_to_points(
    buffer_m: float,
    reducer: Union[str, Reducer],
    points: gpd.GeoDataFrame,
    aoi: Optional[Aoi],
    images: Union[RasterImage, ImageSequence, Iterable[RasterImage]],
    crs: Optional[str] = None,
    scale: Optional[float] = None,
    tile_scale: int = 1,
    bands: Optional[Sequence[str]] = None,
) -> gpd.GeoDataFrame:
    """Reduce every image at every point (optionally buffered by *buffer_m* metres).

    Points outside *aoi* are dropped.  Records carry the point's columns,
    then the image properties, then the reduced fields; on a name clash
    the point's column wins.  Rows are ordered by image ``start_date``,
    then point order.
    """
    reducer = Reducer.parse(reducer)
    if buffer_m < 0:
        raise ValueError(f"buffer_m must be >= 0, got {buffer_m}")
    if points.crs is None:
        raise ValueError("Points have no CRS; set one (e.g. points.set_crs('EPSG:4326')) before reducing")
    if isinstance(images, RasterImage):
        images = [images]
    images = list(images)

    if aoi is not None:
        inside = points.geometry.intersects(aoi.to_crs(points.crs.to_string()))
        dropped = int((~inside).sum())
        if dropped:
            logger.info(f"{dropped} of {len(points)} points fall outside the AOI")
        points = points[inside]
    points = points.reset_index(drop=True)

    geometries = buffer_points(points, buffer_m) if buffer_m > 0 else points.geometry
    cache = _FootprintCache(geometries)
    site_columns = [c for c in points.columns if c != points.geometry.name]
    site_rows = points[site_columns].to_dict("records")

    records = []
    warned = set()
    for image_order, image in enumerate(images):
        target = _target_grid(image, crs, scale)
        if target != image.grid:
            image = reproject_image(image, target)
        reduced = reduce_image(
            image, cache.get(image.grid), reducer, buffer_m, bands, tile_scale,
        )
        props = {k: _property_value(v) for k, v in image.properties.items()}
        for point_order, (site, fields) in enumerate(zip(site_rows, reduced)):
            clash = set(fields) & set(site)
            for name in clash - warned:
                logger.warning(f"Reduced field {name} collides with a point column; keeping the point value")
                warned.add(name)
            record = {**props, **fields, **site}
            record["_sort"] = (str(props.get("start_date", "")), image_order, point_order)
            record["geometry"] = points.geometry.iloc[point_order]
            records.append(record)

    records.sort(key=lambda r: r["_sort"])
    for record in records:
        del record["_sort"]

    columns = _column_order(site_columns, records)
    frame = gpd.GeoDataFrame(records, columns=columns, geometry="geometry", crs=points.crs)
    logger.info(f"Reduced {len(images)} image(s) at {len(points)} point(s): {len(frame)} records")
    return frame


def _column_order(site_columns: Sequence[str], records: Sequence[Dict[str, Any]]) -> List[str]:
    ordered = list(site_columns)
    for record in records:
        for key in record:
            if key not in ordered and key != "geometry":
                ordered.append(key)
    return ordered + ["geometry"]
