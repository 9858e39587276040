"""Dataclasses for pipeline run metadata and per-window status tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StepResult:
    """Result of one pipeline step for one window."""

    status: str = "pending"  # "pending" | "success" | "failed" | "skipped"
    started_at: str | None = None
    finished_at: str | None = None
    duration_sec: float | None = None
    error: str | None = None
    output_keys: list[str] | None = None  # object-store keys produced


@dataclass
class WindowStatus:
    """Per-window status across all pipeline steps."""

    start_date: str
    end_date: str
    year: int
    month: int
    image_count: int | None = None
    steps: dict[str, StepResult] = field(default_factory=dict)


@dataclass
class PipelineRun:
    """Top-level run metadata."""

    run_id: str
    started_at: str
    config_snapshot: dict[str, Any]
    request: dict[str, Any]
    dest: str
    windows: dict[str, WindowStatus] = field(default_factory=dict)  # start_date -> status
    current_step: str | None = None
    status: str = "running"  # "running" | "completed" | "failed" | "partial"
    finished_at: str | None = None
    outputs: list[str] = field(default_factory=list)

    def ensure_window(self, start_date: str, end_date: str, year: int, month: int) -> WindowStatus:
        """Get or create a WindowStatus entry."""
        if start_date not in self.windows:
            self.windows[start_date] = WindowStatus(
                start_date=start_date, end_date=end_date, year=year, month=month,
            )
        return self.windows[start_date]

    def windows_pending_step(self, step_name: str) -> list[str]:
        """Return window keys that haven't succeeded for *step_name*."""
        pending = []
        for key, ws in self.windows.items():
            step = ws.steps.get(step_name)
            if step is None or step.status not in ("success", "skipped"):
                pending.append(key)
        return pending
