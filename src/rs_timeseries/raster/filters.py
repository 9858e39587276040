"""Neighbourhood filters over masked bands."""

from __future__ import annotations

import numpy as np
from scipy.ndimage import uniform_filter


def neighbourhood_mean(values: np.ma.MaskedArray, radius_px: int) -> np.ma.MaskedArray:
    """Mean of the valid pixels in a ``(2r+1)`` square window around each pixel.

    Masked pixels and pixels beyond the edge do not count; a window with no
    valid pixel is masked.
    """
    size = 2 * int(radius_px) + 1
    values = np.ma.asarray(values, dtype="float64")
    valid = (~np.ma.getmaskarray(values)).astype("float64")
    total = uniform_filter(values.filled(0.0), size=size, mode="constant", cval=0.0)
    count = uniform_filter(valid, size=size, mode="constant", cval=0.0)
    # uniform_filter leaves float noise where a window holds no valid pixel
    count[count < 0.5 / size ** 2] = 0.0
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.ma.masked_invalid(total / count)
