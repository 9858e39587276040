"""DEM-derived terrain metrics.

Slope and aspect come from central-difference gradients (``np.gradient``) in
metres; aspect is the downslope azimuth, 0 = north, clockwise.  Masked DEM
pixels propagate to every metric that reads them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from rs_timeseries.raster import RasterImage
from rs_timeseries.raster.filters import neighbourhood_mean


class TerrainMetric(str, Enum):
    SLOPE = "slope"
    ASPECT = "aspect"
    NORTHNESS = "northness"
    TPI = "TPI"
    HLI = "HLI"
    TWI = "TWI"


@dataclass(frozen=True)
class TerrainParams:
    dem_band: str = "elevation"
    upslope_band: str = "upa"          # upstream drainage area, km^2
    tpi_radius_px: int = 180
    hli_latitude: float = 34.0178


# 247.5 degrees in radians; folds aspect about the NE-SW axis.
_HLI_FOLD_AXIS = 4.3196899


def slope_aspect(image: RasterImage, dem_band: str = "elevation") -> Tuple[np.ma.MaskedArray, np.ma.MaskedArray]:
    """Slope and aspect in degrees."""
    dem = image.band(dem_band).astype("float64")
    xsize, ysize = image.grid.pixel_size_m
    z = dem.filled(np.nan)
    dz_drow, dz_dcol = np.gradient(z, ysize, xsize)
    dz_north = -dz_drow
    dz_east = dz_dcol

    slope = np.degrees(np.arctan(np.hypot(dz_east, dz_north)))
    aspect = np.mod(np.degrees(np.arctan2(-dz_east, -dz_north)), 360.0)
    nodata = np.ma.getmaskarray(dem)
    slope[nodata] = np.nan
    aspect[nodata] = np.nan
    return np.ma.masked_invalid(slope), np.ma.masked_invalid(aspect)


def topographic_position(dem: np.ma.MaskedArray, radius_px: int) -> np.ma.MaskedArray:
    """``dem`` minus the mean of the valid pixels in a square window."""
    return dem.astype("float64") - neighbourhood_mean(dem, radius_px)


def heat_load_index(slope_deg, aspect_deg, latitude: float) -> np.ma.MaskedArray:
    """McCune & Keon (2002) heat load index, equation 3, with Theobald's folding."""
    s = np.radians(slope_deg)
    folded = np.abs(np.pi - np.abs(np.radians(aspect_deg) - _HLI_FOLD_AXIS))
    cos_lat = math.cos(math.radians(latitude))
    sin_lat = math.sin(math.radians(latitude))
    ln_hli = (
        np.cos(s) * 1.582 * cos_lat
        - np.cos(folded) * 1.5 * np.sin(s) * sin_lat
        - np.sin(s) * 0.262 * sin_lat
        + np.sin(folded) * 0.607 * np.sin(s)
        - 1.467
    )
    return np.ma.exp(ln_hli)


def topographic_wetness(upslope_km2, slope_deg) -> np.ma.MaskedArray:
    """``ln(a / tan(slope))`` with ``a`` in m^2; flat pixels are masked."""
    area = np.ma.asarray(upslope_km2, dtype="float64") * 1e6
    tan_slope = np.ma.tan(np.radians(slope_deg))
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.ma.masked_invalid(np.ma.log(np.ma.divide(area, tan_slope)))


def add_terrain_metrics(
    image: RasterImage,
    metrics: Iterable[TerrainMetric],
    params: Optional[TerrainParams] = None,
) -> RasterImage:
    """Add one float64 band per requested metric, named by its enum value."""
    params = params or TerrainParams()
    metrics = [TerrainMetric(m) for m in metrics]
    image.require(params.dem_band)
    if TerrainMetric.TWI in metrics:
        image.require(params.upslope_band)

    slope, aspect = slope_aspect(image, params.dem_band)
    computed: Dict[str, np.ma.MaskedArray] = {}
    for metric in metrics:
        if metric is TerrainMetric.SLOPE:
            values = slope
        elif metric is TerrainMetric.ASPECT:
            values = aspect
        elif metric is TerrainMetric.NORTHNESS:
            values = np.ma.cos(np.radians(aspect))
        elif metric is TerrainMetric.TPI:
            values = topographic_position(image.band(params.dem_band), params.tpi_radius_px)
        elif metric is TerrainMetric.HLI:
            values = heat_load_index(slope, aspect, params.hli_latitude)
        else:
            values = topographic_wetness(image.band(params.upslope_band), slope)
        computed[metric.value] = np.ma.masked_invalid(np.ma.asarray(values, dtype="float64"))
    return image.add_bands(computed, overwrite=True)


def parse_metrics(names: Iterable[str]) -> Tuple[TerrainMetric, ...]:
    lookup = {m.value.lower(): m for m in TerrainMetric}
    out = []
    for name in names:
        try:
            out.append(lookup[name.strip().lower()])
        except KeyError:
            raise ValueError(
                f"Unknown terrain metric {name!r}; choose from {[m.value for m in TerrainMetric]}"
            ) from None
    return tuple(out)
