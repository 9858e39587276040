"""Object keys for exported tables and per-window rasters."""

from __future__ import annotations

TABLE_EXTENSIONS = {"csv": "csv", "geojson": "geojson"}


def _join(folder: str, name: str) -> str:
    folder = folder.strip("/")
    return f"{folder}/{name}" if folder else name


def table_key(folder: str, filename: str, file_format: str = "csv") -> str:
    """``<folder>/<filename>.<ext>``."""
    try:
        ext = TABLE_EXTENSIONS[file_format.lower()]
    except KeyError:
        raise ValueError(
            f"Unsupported table format {file_format!r}; choose from {sorted(TABLE_EXTENSIONS)}"
        ) from None
    return _join(folder, f"{filename}.{ext}")


def window_raster_key(folder: str, prefix: str, start_date: str) -> str:
    """``<folder>/<prefix>_<start_date>.tif``, one per window."""
    return _join(folder, f"{prefix}_{start_date}.tif")
