from rs_timeseries.execution.local_executor import run_local_tasks

__all__ = ["run_local_tasks"]
