"""Ordered, immutable collection of :class:`RasterImage` values."""

from __future__ import annotations

import operator
from datetime import date, datetime, time
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence

import numpy as np

from rs_timeseries.errors import GridMismatchError
from rs_timeseries.raster.grid import GridSpec
from rs_timeseries.raster.image import RasterImage


_COMPARATORS = {
    "eq": operator.eq,
    "neq": operator.ne,
    "lt": operator.lt,
    "lte": operator.le,
    "gt": operator.gt,
    "gte": operator.ge,
}


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    return datetime.fromisoformat(str(value))


class ImageSequence:
    """Tuple-backed image collection; every method returns a new sequence."""

    def __init__(self, images: Iterable[RasterImage] = ()):
        self._images = tuple(images)

    def __iter__(self) -> Iterator[RasterImage]:
        return iter(self._images)

    def __len__(self) -> int:
        return len(self._images)

    def __getitem__(self, idx: int) -> RasterImage:
        return self._images[idx]

    def __repr__(self) -> str:
        return f"ImageSequence(size={len(self)})"

    def size(self) -> int:
        return len(self._images)

    def first(self) -> Optional[RasterImage]:
        return self._images[0] if self._images else None

    def property_values(self, name: str) -> List[Any]:
        return [img.properties.get(name) for img in self._images]

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def filter(self, predicate: Callable[[RasterImage], bool]) -> "ImageSequence":
        return ImageSequence(img for img in self._images if predicate(img))

    def filter_date(self, start, end) -> "ImageSequence":
        """Images with ``start <= time_start < end``; undated images are dropped."""
        lo, hi = _as_datetime(start), _as_datetime(end)
        return self.filter(
            lambda img: img.time_start is not None
            and lo <= _as_datetime(img.time_start) < hi
        )

    def filter_bounds(self, aoi) -> "ImageSequence":
        """Images whose grid footprint intersects *aoi*."""
        return self.filter(
            lambda img: img.grid.footprint().intersects(aoi.to_crs(img.grid.crs))
        )

    def filter_property(self, name: str, op: str, value: Any) -> "ImageSequence":
        """Compare property *name* against *value*; images lacking it are dropped."""
        try:
            compare = _COMPARATORS[op]
        except KeyError:
            raise ValueError(
                f"Unknown comparison {op!r}; choose from {sorted(_COMPARATORS)}"
            ) from None
        return self.filter(
            lambda img: img.properties.get(name) is not None
            and compare(img.properties[name], value)
        )

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def map(self, fn: Callable[[RasterImage], RasterImage]) -> "ImageSequence":
        return ImageSequence(fn(img) for img in self._images)

    def merge(self, other: "ImageSequence") -> "ImageSequence":
        return ImageSequence(self._images + tuple(other))

    def select(self, names: Sequence[str]) -> "ImageSequence":
        return self.map(lambda img: img.select(names))

    def sorted_by(self, name: str, reverse: bool = False) -> "ImageSequence":
        """Stable sort on a property; images lacking it go last."""
        present = [img for img in self._images if img.properties.get(name) is not None]
        missing = [img for img in self._images if img.properties.get(name) is None]
        present.sort(key=lambda img: img.properties[name], reverse=reverse)
        return ImageSequence(present + missing)

    def median(
        self,
        band_names: Optional[Sequence[str]] = None,
        grid: Optional[GridSpec] = None,
    ) -> RasterImage:
        """Per-pixel median across the sequence, ignoring masked pixels.

        A pixel masked in every image stays masked.  An empty sequence needs
        *grid* and yields an all-masked image with *band_names*.  The result
        carries no properties.
        """
        if not self._images:
            if grid is None:
                raise ValueError("Median of an empty sequence needs an explicit grid")
            return RasterImage.empty(grid, band_names or ())

        target = grid or self._images[0].grid
        for img in self._images:
            if img.grid != target:
                raise GridMismatchError(
                    f"Image {img.id!r} is on {img.grid}, expected {target}"
                )

        names = list(band_names) if band_names is not None else list(self._images[0].band_names)
        bands = {}
        for name in names:
            stack = np.ma.stack([img.band(name).astype("float64") for img in self._images])
            bands[name] = np.ma.median(stack, axis=0)
        return RasterImage(bands, target)
