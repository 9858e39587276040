"""Pixel grid definition shared by every image in a composite."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

from affine import Affine
from rasterio.crs import CRS
from rasterio.transform import array_bounds, from_origin
from shapely.geometry import Polygon, box

_METRES_PER_DEGREE = 111_320.0


@dataclass(frozen=True)
class GridSpec:
    """CRS + affine transform + shape.  Two images can be stacked only if equal."""

    crs: str
    transform: Affine
    width: int
    height: int

    @classmethod
    def from_bounds(cls, bounds: Sequence[float], scale: float, crs: str) -> "GridSpec":
        """North-up grid covering *bounds* at *scale* CRS units per pixel."""
        if scale <= 0:
            raise ValueError(f"scale must be positive, got {scale}")
        minx, miny, maxx, maxy = bounds
        width = max(1, math.ceil((maxx - minx) / scale))
        height = max(1, math.ceil((maxy - miny) / scale))
        return cls(crs, from_origin(minx, maxy, scale, scale), width, height)

    @classmethod
    def aligned_to(cls, reference: "GridSpec", bounds: Sequence[float]) -> "GridSpec":
        """Grid covering *bounds* (in *reference*'s CRS) on *reference*'s pixel lattice.

        Pixel edges coincide with *reference*'s, so images already on
        *reference* resample without shifting.
        """
        xsize, ysize = reference.pixel_size
        left, top = reference.transform.c, reference.transform.f
        minx, miny, maxx, maxy = bounds
        minx = left + math.floor((minx - left) / xsize) * xsize
        maxy = top - math.floor((top - maxy) / ysize) * ysize
        width = max(1, math.ceil((maxx - minx) / xsize))
        height = max(1, math.ceil((maxy - miny) / ysize))
        return cls(reference.crs, from_origin(minx, maxy, xsize, ysize), width, height)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(minx, miny, maxx, maxy)."""
        return tuple(array_bounds(self.height, self.width, self.transform))

    @property
    def pixel_size(self) -> Tuple[float, float]:
        """Absolute (x, y) pixel size in CRS units."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def pixel_size_m(self) -> Tuple[float, float]:
        """Approximate (x, y) pixel size in metres; degrees are scaled at the grid's mid-latitude."""
        xsize, ysize = self.pixel_size
        if CRS.from_user_input(self.crs).is_geographic:
            miny, maxy = self.bounds[1], self.bounds[3]
            lat = math.radians((miny + maxy) / 2.0)
            return xsize * _METRES_PER_DEGREE * math.cos(lat), ysize * _METRES_PER_DEGREE
        return xsize, ysize

    def footprint(self) -> Polygon:
        return box(*self.bounds)
