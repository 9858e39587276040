"""JobTracker with multi-format report generation."""

from __future__ import annotations

import csv
import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from rs_timeseries.tracking.job_result import JobResult


class JobTracker:
    """Centralized job tracking and reporting."""

    def __init__(self, output_dir: str = "job_reports"):
        self.output_dir = output_dir
        self.results: List[JobResult] = []
        self.start_time = datetime.now()
        os.makedirs(output_dir, exist_ok=True)

    def add_result(self, result: JobResult) -> None:
        self.results.append(result)

    def failures(self) -> List[JobResult]:
        return [r for r in self.results if r.status not in ("success", "partial")]

    # ------------------------------------------------------------------
    # Report generation
    # ------------------------------------------------------------------

    def save_reports(self) -> None:
        """Save JSON, CSV, text, and failed-jobs reports."""
        timestamp = self.start_time.strftime("%Y%m%d_%H%M%S")

        # 1. Detailed JSON
        json_path = os.path.join(self.output_dir, f"job_report_{timestamp}.json")
        with open(json_path, "w") as f:
            json.dump([r.to_dict() for r in self.results], f, indent=2, default=str)

        # 2. CSV summary
        csv_path = os.path.join(self.output_dir, f"job_summary_{timestamp}.csv")
        self._save_csv_summary(csv_path)

        # 3. Human-readable text
        txt_path = os.path.join(self.output_dir, f"job_report_{timestamp}.txt")
        self._save_text_report(txt_path)

        # 4. Failed jobs only
        failed = [r for r in self.results if r.status not in ("success",)]
        if failed:
            failed_path = os.path.join(
                self.output_dir, f"failed_jobs_{timestamp}.json"
            )
            with open(failed_path, "w") as f:
                json.dump([r.to_dict() for r in failed], f, indent=2, default=str)

        logger.info(f"Reports saved to {self.output_dir}/")

    def _save_csv_summary(self, path: str) -> None:
        fieldnames = [
            "job_id", "task_type", "source", "status",
            "start_date", "end_date", "year", "month",
            "duration_sec", "attempts", "error_type", "error_message",
        ]
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for r in self.results:
                writer.writerow({
                    "job_id": r.job_id,
                    "task_type": r.task_type,
                    "source": r.source,
                    "status": r.status,
                    "start_date": r.window_info.get("start_date"),
                    "end_date": r.window_info.get("end_date"),
                    "year": r.window_info.get("year"),
                    "month": r.window_info.get("month"),
                    "duration_sec": r.duration_sec,
                    "attempts": r.attempts,
                    "error_type": r.error_type,
                    "error_message": (
                        r.error_message[:100] if r.error_message else None
                    ),
                })

    def _save_text_report(self, path: str) -> None:
        total = len(self.results)
        if total == 0:
            with open(path, "w") as f:
                f.write("No jobs were executed.\n")
            return

        succeeded = sum(1 for r in self.results if r.status == "success")
        partial = sum(1 for r in self.results if r.status == "partial")
        failed = sum(1 for r in self.results if r.status == "failed")
        errored = sum(1 for r in self.results if r.status == "error")

        by_type: Dict[str, Dict[str, int]] = {}
        for r in self.results:
            bucket = by_type.setdefault(
                r.task_type, {"success": 0, "partial": 0, "failed": 0, "error": 0},
            )
            if r.status in bucket:
                bucket[r.status] += 1

        durations = [r.duration_sec for r in self.results if r.duration_sec]
        avg_dur = sum(durations) / len(durations) if durations else 0
        max_dur = max(durations) if durations else 0
        min_dur = min(durations) if durations else 0

        with open(path, "w") as f:
            f.write("=" * 60 + "\n")
            f.write("COMPOSITE / EXPORT JOB REPORT\n")
            f.write(f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}\n")
            f.write("=" * 60 + "\n\n")

            f.write("OVERALL SUMMARY\n")
            f.write("-" * 40 + "\n")
            f.write(f"Total Jobs:        {total}\n")
            f.write(f"Full Success:      {succeeded} ({succeeded / total * 100:.1f}%)\n")
            f.write(f"Partial Success:   {partial} ({partial / total * 100:.1f}%)\n")
            f.write(f"Failed:            {failed} ({failed / total * 100:.1f}%)\n")
            f.write(f"Errors:            {errored} ({errored / total * 100:.1f}%)\n")
            f.write(f"\nAvg Duration:   {avg_dur:.2f} sec\n")
            f.write(f"Min Duration:   {min_dur:.2f} sec\n")
            f.write(f"Max Duration:   {max_dur:.2f} sec\n\n")

            f.write("BREAKDOWN BY TASK TYPE\n")
            f.write("-" * 40 + "\n")
            for task_type, counts in sorted(by_type.items()):
                subtotal = sum(counts.values())
                if subtotal == 0:
                    continue
                f.write(f"{task_type}:\n")
                for status, cnt in counts.items():
                    f.write(f"  {status:12s} {cnt} ({cnt / subtotal * 100:.1f}%)\n")

            failed_jobs = self.failures()
            if failed_jobs:
                f.write("\nFAILED JOBS DETAIL\n")
                f.write("-" * 40 + "\n")
                for r in failed_jobs[:20]:
                    f.write(f"\nJob ID: {r.job_id}\n")
                    f.write(f"  Type: {r.task_type} | Source: {r.source}\n")
                    f.write(f"  Status: {r.status} | Error Type: {r.error_type or 'unknown'}\n")
                    wi = r.window_info
                    f.write(f"  Window: {wi.get('start_date')} .. {wi.get('end_date')}\n")
                    f.write(f"  Error: {r.error_message[:200] if r.error_message else 'Unknown'}\n")
                if len(failed_jobs) > 20:
                    f.write(f"\n... and {len(failed_jobs) - 20} more failed jobs\n")

    def print_summary(self) -> None:
        """Print a quick summary to console."""
        total = len(self.results)
        if total == 0:
            logger.info("No jobs were executed.")
            return

        succeeded = sum(1 for r in self.results if r.status == "success")
        partial = sum(1 for r in self.results if r.status == "partial")
        failed = total - succeeded - partial

        logger.info(
            f"Job summary: {succeeded} succeeded, {partial} partial, {failed} failed "
            f"out of {total} total"
        )

        by_type: Dict[str, Dict[str, int]] = {}
        for r in self.results:
            key = f"{r.task_type}-{r.source}"
            bucket = by_type.setdefault(key, {"success": 0, "partial": 0, "failed": 0})
            if r.status == "success":
                bucket["success"] += 1
            elif r.status == "partial":
                bucket["partial"] += 1
            else:
                bucket["failed"] += 1

        for key, counts in sorted(by_type.items()):
            tot = sum(counts.values())
            logger.info(
                f"  {key}: {counts['success']} full + {counts['partial']} partial / {tot} total"
            )

        for r in self.failures():
            wi = r.window_info
            logger.warning(
                f"  FAILED {r.task_type} {wi.get('start_date')}..{wi.get('end_date')} "
                f"[{r.source}]: {r.error_type or 'error'}: {r.error_message}"
            )


def process_result(
    tracker: JobTracker,
    job_id: str,
    task_type: str,
    source: str,
    window_info: Dict[str, Any],
    result: Any,
    duration: Optional[float],
) -> None:
    """Record one worker outcome (dict payload or raised exception) in *tracker*."""
    if isinstance(result, dict):
        tracker.add_result(
            JobResult(
                job_id=job_id,
                task_type=task_type,
                source=source,
                window_info=window_info,
                status=result.get("status", "success"),
                duration_sec=duration,
                result_data=result.get("summary"),
                attempts=result.get("attempts"),
                error_message=result.get("error_message"),
                error_type=result.get("error_type"),
                error_traceback=result.get("error_traceback"),
            )
        )
    elif isinstance(result, Exception):
        tracker.add_result(
            JobResult(
                job_id=job_id,
                task_type=task_type,
                source=source,
                window_info=window_info,
                status="error",
                duration_sec=duration,
                error_message=str(result),
                error_type=type(result).__name__,
            )
        )
    else:
        tracker.add_result(
            JobResult(
                job_id=job_id,
                task_type=task_type,
                source=source,
                window_info=window_info,
                status="success",
                duration_sec=duration,
                result_data={"raw_result": str(result)},
            )
        )


def get_per_window_status(tracker: JobTracker, task_type: Optional[str] = None) -> Dict[str, str]:
    """Return ``{start_date: "success"|"failed"}`` from tracker results."""
    status: Dict[str, str] = {}
    for r in tracker.results:
        if task_type is not None and r.task_type != task_type:
            continue
        key = str(r.window_info.get("start_date"))
        if key not in status:
            status[key] = "success"
        if r.status not in ("success", "partial"):
            status[key] = "failed"
    return status
