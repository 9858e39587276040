"""Centralized logging configuration with run context."""

from __future__ import annotations

import sys
import uuid
from typing import Optional

from loguru import logger


def setup_logging(level: str = "INFO", fmt: str = "text", log_file: Optional[str] = None) -> None:
    """Configure loguru with the given level and format.

    Call once at CLI startup.  Library use without this call gets loguru's
    default stderr sink.  *log_file* adds a second sink that keeps DEBUG.
    """
    logger.remove()
    logger.configure(extra={"run_id": "-"})
    if fmt == "json":
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(
            sys.stderr,
            level=level.upper(),
            format="<level>{level: <8}</level> | {extra[run_id]:>8} | {message}",
        )
    if log_file:
        logger.add(log_file, level="DEBUG", serialize=(fmt == "json"))


def new_run_id() -> str:
    """Generate an 8-char hex run identifier."""
    return uuid.uuid4().hex[:8]


def bind_run_context(run_id: str) -> None:
    """Set *run_id* as a default extra value for all subsequent log calls."""
    logger.configure(extra={"run_id": run_id})
