"""Run per-window worker functions in-process, sequentially or on a thread pool."""

from __future__ import annotations

import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List

from loguru import logger

from rs_timeseries.tracking import JobResult, JobTracker, process_result


_WINDOW_KEYS = ("start_date", "end_date", "year", "month")


def _invoke_worker(
    worker_fn: Callable,
    kwargs: Dict[str, Any],
    task_type: str,
    tracker: JobTracker,
) -> Dict[str, Any]:
    """Call *worker_fn* with *kwargs* and record the result in *tracker*."""
    window_info = {k: kwargs[k] for k in _WINDOW_KEYS if k in kwargs}
    source = str(kwargs.get("source", "local"))
    window_key = window_info.get("start_date", "all")
    job_id = f"{task_type}_{source}_{window_key}"

    logger.info(f"[local] Starting {task_type} for {window_key}")
    t0 = time.perf_counter()

    try:
        result = worker_fn(**kwargs)
    except Exception as exc:
        duration = time.perf_counter() - t0
        logger.error(f"[local] {task_type} failed for {window_key}: {type(exc).__name__}: {exc}")
        tracker.add_result(JobResult(
            job_id=job_id,
            task_type=task_type,
            source=source,
            window_info=window_info,
            status="failed",
            duration_sec=duration,
            error_message=str(exc),
            error_traceback=traceback.format_exc(),
            error_type=type(exc).__name__,
        ))
        return {"status": "failed", "error_message": str(exc), "payload": None}

    duration = time.perf_counter() - t0
    process_result(tracker, job_id, task_type, source, window_info, result, duration)
    logger.info(f"[local] Completed {task_type} for {window_key} in {duration:.1f}s")
    return result if isinstance(result, dict) else {"status": "success", "payload": result}


def run_local_tasks(
    worker_fn: Callable,
    task_type: str,
    kwargs_list: List[Dict[str, Any]],
    tracker: JobTracker,
    max_workers: int = 1,
) -> List[Dict[str, Any]]:
    """Call *worker_fn* for each kwargs dict, sequentially or in parallel.

    Args:
        worker_fn: Callable returning a ``{"status", "summary", "payload"}`` dict.
        task_type: Label for reporting (e.g. ``"COMPOSITE"``, ``"EXPORT_TABLE"``).
        kwargs_list: One dict per window with the worker's keyword args.
        tracker: Collects results for every invocation.
        max_workers: ``1`` for sequential (default), ``>1`` for thread-pool
            parallelism.

    Returns:
        One result dict per kwargs dict, in *kwargs_list* order regardless
        of completion order.
    """
    if not kwargs_list:
        return []

    logger.info(f"[local] Running {len(kwargs_list)} {task_type} tasks (max_workers={max_workers})")

    if max_workers <= 1:
        return [_invoke_worker(worker_fn, kw, task_type, tracker) for kw in kwargs_list]

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [
            pool.submit(_invoke_worker, worker_fn, kw, task_type, tracker)
            for kw in kwargs_list
        ]
        return [fut.result() for fut in futures]
