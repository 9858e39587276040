"""Exception hierarchy for the compositing pipeline.

Empty collections and per-pixel undefined arithmetic are *not* errors and
have no exception type here: they surface as masked pixels or null
statistics.
"""

from __future__ import annotations

from typing import Iterable, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class BandMissingError(PipelineError, KeyError):
    """An image lacks a band that a mask, index or reducer needs."""

    def __init__(self, band: str, image_id: Optional[str] = None,
                 available: Iterable[str] = ()):
        self.band = band
        self.image_id = image_id
        self.available = tuple(available)
        where = f" in image {image_id}" if image_id else ""
        super().__init__(
            f"Band {band!r} missing{where}; available: {list(self.available)}"
        )

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message instead.
        return self.args[0]


class UnknownIndexError(PipelineError, ValueError):
    """One or more requested index names are not registered."""

    def __init__(self, names: Iterable[str], available: Iterable[str],
                 family: Optional[str] = None):
        self.names = tuple(names)
        self.available = tuple(sorted(available))
        scope = f" for {family}" if family else ""
        super().__init__(
            f"Unknown index name(s){scope}: {list(self.names)}. "
            f"Registered: {list(self.available)}"
        )


class GridMismatchError(PipelineError, ValueError):
    """Arrays or images that must share a pixel grid do not."""


class ExportJobError(PipelineError):
    """The export sink rejected or failed to persist an object."""

    def __init__(self, key: str, attempts: int, cause: Optional[BaseException] = None):
        self.key = key
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Export of {key!r} failed after {attempts} attempt(s): {cause}")
