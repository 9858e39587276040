"""Quality-band bit masks and scale-factor application.

Masks flag pixels where any listed bit of the QA band is set and mask them
in every non-QA band.  A masked QA pixel is treated as flagged.  The QA
bands themselves keep their values so that several masks can be chained,
and re-applying a mask changes nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

import numpy as np

from rs_timeseries.raster import RasterImage


@dataclass(frozen=True)
class QABits:
    band: str
    bits: Tuple[int, ...]


LANDSAT_CLOUD_SNOW = QABits("QA_PIXEL", (3, 4, 5))   # cloud, shadow, snow
LANDSAT_CLOUD = QABits("QA_PIXEL", (3, 4))
LANDSAT_FILL = QABits("QA_PIXEL", (0,))
LANDSAT_SATURATION = QABits("QA_RADSAT", (9,))
S2_CLOUD = QABits("QA60", (10, 11))                  # opaque cloud, cirrus

QA_BANDS = frozenset({"QA_PIXEL", "QA_RADSAT", "QA60"})


def decode_bits(qa: np.ma.MaskedArray, bits: Iterable[int]) -> np.ndarray:
    """Boolean array, True where any of *bits* is set (or the QA pixel is masked)."""
    flag = 0
    for bit in bits:
        flag |= 1 << bit
    values = np.ma.getdata(qa).astype(np.int64)
    return ((values & flag) != 0) | np.ma.getmaskarray(qa)


def apply_qa_mask(image: RasterImage, spec: QABits) -> RasterImage:
    image.require(spec.band)
    flagged = decode_bits(image.band(spec.band), spec.bits)
    return image.update_mask(flagged, skip=QA_BANDS)


def mask_cloud_snow(image: RasterImage) -> RasterImage:
    return apply_qa_mask(image, LANDSAT_CLOUD_SNOW)


def mask_cloud(image: RasterImage) -> RasterImage:
    return apply_qa_mask(image, LANDSAT_CLOUD)


def mask_fill(image: RasterImage) -> RasterImage:
    return apply_qa_mask(image, LANDSAT_FILL)


def mask_saturation(image: RasterImage) -> RasterImage:
    return apply_qa_mask(image, LANDSAT_SATURATION)


def mask_s2_clouds(image: RasterImage) -> RasterImage:
    return apply_qa_mask(image, S2_CLOUD)


def add_snow(image: RasterImage, threshold: float = 0.4, ndsi_band: str = "NDSI") -> RasterImage:
    """Add a 0/1 ``snow`` band where NDSI exceeds *threshold*."""
    ndsi = image.band(ndsi_band)
    return image.add_bands(
        {"snow": np.ma.greater(ndsi, threshold).astype("float64")}, overwrite=True,
    )


# ---------------------------------------------------------------------------
# Scale factors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScaleGroup:
    """``value * multiplier + offset`` for bands whose name fully matches *pattern*."""

    pattern: str
    multiplier: float
    offset: float = 0.0

    def matches(self, band: str) -> bool:
        return re.fullmatch(self.pattern, band) is not None


LANDSAT_C2_SCALE: Tuple[ScaleGroup, ...] = (
    ScaleGroup(r"SR_B.", 0.0000275, -0.2),
    ScaleGroup(r"ST_B6", 0.00341802, 149.0),
)

SENTINEL2_SCALE: Tuple[ScaleGroup, ...] = (
    ScaleGroup(r"B\d+A?", 1e-4),
)

TERRACLIMATE_SCALE: Tuple[ScaleGroup, ...] = (
    ScaleGroup(r"aet|def|pet|soil|srad|tmmn|tmmx", 0.1),
    ScaleGroup(r"pdsi|vpd|vs", 0.01),
    ScaleGroup(r"vap", 0.001),
)

SCALE_PRESETS = {
    "landsat_c2": LANDSAT_C2_SCALE,
    "sentinel2": SENTINEL2_SCALE,
    "terraclimate": TERRACLIMATE_SCALE,
}


def apply_scale_factors(image: RasterImage, groups: Sequence[ScaleGroup]) -> RasterImage:
    """Rescale bands per the first matching group; unmatched bands pass through."""
    scaled = {}
    for name, values in image.bands.items():
        group = next((g for g in groups if g.matches(name)), None)
        if group is not None:
            scaled[name] = values.astype("float64") * group.multiplier + group.offset
    if not scaled:
        return image
    return image.add_bands(scaled, overwrite=True)
