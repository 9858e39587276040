"""Structured exit codes for pipeline commands."""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rs_timeseries.tracking import JobTracker


class ExitCode(IntEnum):
    SUCCESS = 0
    PARTIAL_FAILURE = 1
    TOTAL_FAILURE = 2
    BAD_INPUT = 3
    USER_ABORT = 5
    NO_WORK = 6  # No windows or no points inside the AOI
    EXPORT_FAILED = 7


def exit_code_from_tracker(tracker: JobTracker) -> ExitCode:
    """Derive an exit code from a :class:`JobTracker`'s results.

    Any failed export job maps to ``EXPORT_FAILED``.
    """
    if any(r.status != "success" and r.task_type.startswith("EXPORT") for r in tracker.results):
        return ExitCode.EXPORT_FAILED
    failed = sum(1 for r in tracker.results if r.status not in ("success", "partial"))
    if failed == len(tracker.results) and tracker.results:
        return ExitCode.TOTAL_FAILURE
    elif failed > 0:
        return ExitCode.PARTIAL_FAILURE
    return ExitCode.SUCCESS
