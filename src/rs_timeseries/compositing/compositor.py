"""Window composites: mask, index, per-pixel median, clip, stamp metadata."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import geopandas as gpd
from loguru import logger

from rs_timeseries.catalog import ImageCatalog
from rs_timeseries.compositing.sources import CollectionSource
from rs_timeseries.geo import Aoi, metric_crs
from rs_timeseries.preprocessing.indices import (
    IndexParams,
    SpectralIndex,
    add_indices,
)
from rs_timeseries.preprocessing.masks import add_snow
from rs_timeseries.raster import GridSpec, ImageSequence, RasterImage, reproject_image
from rs_timeseries.temporal.windows import DateWindow

SNOW_BAND = "snow"


def output_bands(
    indices: Sequence[SpectralIndex],
    bands: Sequence[str] = (),
    snow: bool = False,
) -> List[str]:
    """Composite band list: raw *bands*, then indices in caller order, then ``snow``."""
    names = list(bands) + [SpectralIndex(i).value for i in indices]
    if snow:
        names.append(SNOW_BAND)
    return names


def composite(
    window: DateWindow,
    aoi: Aoi,
    source: CollectionSource,
    catalog: ImageCatalog,
    indices: Sequence[SpectralIndex] = (),
    bands: Sequence[str] = (),
    params: Optional[IndexParams] = None,
    grid: Optional[GridSpec] = None,
    snow_threshold: Optional[float] = None,
) -> RasterImage:
    """Median composite of *source* over *window*, restricted to the requested bands.

    With *grid*, every image is resampled onto it first and an empty window
    yields an all-masked composite on that grid.  Without one, images that
    share a grid are stacked as they are; images on different grids are
    resampled onto the AOI extent in the first image's CRS and pixel lattice.
    An empty window yields an all-masked composite on the AOI footprint at 30 m.
    """
    indices = tuple(indices)
    snow = snow_threshold is not None
    names = output_bands(indices, bands, snow)
    if not names:
        raise ValueError("Nothing to composite: no indices and no bands requested")

    images = source.collection(catalog, window, aoi)
    if indices or snow:
        roles = source.roles
        if roles is None:
            raise ValueError(f"Source {source.name} has no band roles; cannot compute indices")
        to_apply = list(indices) + ([SpectralIndex.NDSI] if snow else [])

        def _indexed(img: RasterImage) -> RasterImage:
            img = add_indices(img, to_apply, roles, params)
            if snow:
                img = add_snow(img, snow_threshold)
            return img

        images = images.map(_indexed)

    images = images.select(names)
    if grid is None and images.size() > 0 and not _shares_grid(images):
        grid = _window_grid(aoi, images[0].grid)
        logger.debug(f"Window {window} images are on different grids; resampling to {grid}")
    if grid is not None:
        images = images.map(lambda img: reproject_image(img, grid))
    elif images.size() == 0:
        grid = _fallback_grid(aoi)

    result = images.median(names, grid).clip(aoi)
    metadata = window.metadata(image_count=images.size(), source=source.name)
    logger.debug(f"Composite {window} from {source.name}: {images.size()} images")
    return result.set(metadata.as_properties())


def _shares_grid(images: ImageSequence) -> bool:
    first = images[0].grid
    return all(img.grid == first for img in images)


def _window_grid(aoi: Aoi, reference: GridSpec) -> GridSpec:
    """AOI extent on the first image's CRS, pixel size and lattice."""
    return GridSpec.aligned_to(reference, aoi.to_crs(reference.crs).bounds)


def _fallback_grid(aoi: Aoi, scale: float = 30.0) -> GridSpec:
    series = gpd.GeoSeries([aoi.geometry], crs=aoi.crs)
    crs = metric_crs(series)
    return GridSpec.from_bounds(series.to_crs(crs).total_bounds, scale, crs.to_string())


def composite_series(
    windows: Iterable[DateWindow],
    aoi: Aoi,
    source: CollectionSource,
    catalog: ImageCatalog,
    indices: Sequence[SpectralIndex] = (),
    bands: Sequence[str] = (),
    params: Optional[IndexParams] = None,
    grid: Optional[GridSpec] = None,
    snow_threshold: Optional[float] = None,
) -> ImageSequence:
    return ImageSequence(
        composite(w, aoi, source, catalog, indices, bands, params, grid, snow_threshold)
        for w in windows
    )
