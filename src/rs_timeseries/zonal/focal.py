"""Neighbourhood (focal) smoothing ahead of point extraction."""

from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from rs_timeseries.raster import RasterImage
from rs_timeseries.raster.filters import neighbourhood_mean


def focal_mean(
    image: RasterImage,
    radius_m: float,
    bands: Optional[Sequence[str]] = None,
) -> RasterImage:
    """Replace each band with ``<band>_mean``, its square-window mean of radius *radius_m*.

    Properties are kept.  The radius is converted to whole pixels (at least
    one) using the grid's x pixel size in metres, so geographic grids work too.
    """
    if radius_m <= 0:
        raise ValueError(f"radius_m must be positive, got {radius_m}")
    bands = list(bands) if bands is not None else list(image.band_names)
    image.require(*bands)
    radius_px = max(1, int(round(radius_m / image.grid.pixel_size_m[0])))
    logger.debug(f"Focal mean over {bands} with radius {radius_px} px")
    smoothed = {f"{b}_mean": neighbourhood_mean(image.band(b), radius_px) for b in bands}
    return RasterImage(smoothed, image.grid, image.properties)
