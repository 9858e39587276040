"""Landsat OLI to ETM+ reflectance harmonization.

Coefficients are the OLS/RMA fits of Roy et al. (2016), *Characterization of
Landsat-7 to Landsat-8 reflective wavelength and normalized difference
vegetation index continuity*, Table 2.  The inverse transform maps OLI
surface reflectance onto the ETM+ domain:

    etm = (oli - intercept * dn_scale) / slope

``dn_scale`` is the factor between stored digital counts and unit
reflectance (10000 for integer-scaled reflectance, 1 once Collection-2 scale
factors are already applied).
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from rs_timeseries.raster import RasterImage


DEFAULT_DN_SCALE = 10000.0


@dataclass(frozen=True)
class BandCoefficient:
    target: str
    slope: float
    intercept: float

    def __post_init__(self):
        if self.slope == 0:
            raise ValueError(f"Zero slope for target band {self.target}")


OLI_TO_ETM: Mapping[str, BandCoefficient] = MappingProxyType({
    "SR_B2": BandCoefficient("SR_B1", 0.9785, -0.0095),
    "SR_B3": BandCoefficient("SR_B2", 0.9542, -0.0016),
    "SR_B4": BandCoefficient("SR_B3", 0.9825, -0.0022),
    "SR_B5": BandCoefficient("SR_B4", 1.0073, -0.0021),
    "SR_B6": BandCoefficient("SR_B5", 1.0171, -0.0030),
    "SR_B7": BandCoefficient("SR_B7", 0.9949, 0.0029),
})


def harmonize_to_reference(
    image: RasterImage,
    coefficients: Mapping[str, BandCoefficient] = OLI_TO_ETM,
    dn_scale: float = DEFAULT_DN_SCALE,
    passthrough: Iterable[str] = ("QA_PIXEL",),
) -> RasterImage:
    """Rename and rescale the coefficient bands; keep *passthrough* bands as-is.

    Bands in neither set are dropped, matching a select-then-rename.
    """
    image.require(*coefficients)
    bands = {}
    for source, coef in coefficients.items():
        values = image.band(source).astype("float64")
        bands[coef.target] = (values - coef.intercept * dn_scale) / coef.slope
    for name in passthrough:
        if name in image.bands:
            bands[name] = image.band(name)
    return RasterImage(bands, image.grid, image.properties)
