"""Job tracking and run metadata for window composites and exports."""

from rs_timeseries.tracking.job_result import JobResult
from rs_timeseries.tracking.job_tracker import JobTracker, get_per_window_status, process_result
from rs_timeseries.tracking.run_metadata import PipelineRun, StepResult, WindowStatus
from rs_timeseries.tracking.run_store import RunStore

__all__ = [
    "JobResult",
    "JobTracker",
    "PipelineRun",
    "RunStore",
    "StepResult",
    "WindowStatus",
    "get_per_window_status",
    "process_result",
]
