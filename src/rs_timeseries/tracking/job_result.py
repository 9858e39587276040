"""JobResult dataclass: one per window composite or export job."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass
class JobResult:
    """Track individual job execution results."""

    job_id: str
    task_type: str  # 'COMPOSITE', 'EXPORT_TABLE', 'EXPORT_RASTER'
    source: str  # 'landsat', 'sentinel2', collection id, ...
    window_info: Dict[str, Any]  # start_date, end_date, year, month
    status: str  # 'success', 'partial', 'failed', 'error'
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_sec: Optional[float] = None
    error_message: Optional[str] = None
    error_traceback: Optional[str] = None
    error_type: Optional[str] = None  # exception class name, e.g. 'BandMissingError'
    attempts: Optional[int] = None
    result_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
