"""Export sink: tables and per-window GeoTIFFs to a local dir or ``s3://`` prefix.

Every object is serialized in memory and written with a single ``obs.put``,
so a failed or retried export never leaves a partially written object and
never touches objects written earlier in the run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from loguru import logger
from rasterio.io import MemoryFile

from rs_timeseries.errors import ExportJobError
from rs_timeseries.raster import RasterImage
from rs_timeseries.storage.export_paths import table_key, window_raster_key
from rs_timeseries.storage.obstore_utils import from_dest, obstore_put_bytes


@dataclass
class TableExport:
    """A table plus the (filename, format, selected-fields) export contract."""

    collection: pd.DataFrame
    filename: str
    file_format: str = "csv"
    selectors: Optional[Sequence[str]] = None
    folder: str = ""

    @property
    def key(self) -> str:
        return table_key(self.folder, self.filename, self.file_format)

    def to_bytes(self) -> bytes:
        frame = self.collection
        fmt = self.file_format.lower()
        if fmt == "geojson":
            if not isinstance(frame, gpd.GeoDataFrame):
                raise ValueError("GeoJSON export needs a GeoDataFrame")
            if self.selectors:
                frame = frame[[c for c in self.selectors if c in frame.columns] + [frame.geometry.name]]
            return frame.to_json().encode("utf-8")

        if self.selectors:
            # Selected fields missing from every record still get a column.
            frame = pd.DataFrame(frame).reindex(columns=list(self.selectors))
        elif isinstance(frame, gpd.GeoDataFrame):
            frame = pd.DataFrame(frame.drop(columns=frame.geometry.name))
        return frame.to_csv(index=False).encode("utf-8")


def image_to_geotiff_bytes(image: RasterImage) -> bytes:
    """Float32 GeoTIFF; masked pixels become NaN nodata, properties become tags."""
    if not image.band_names:
        raise ValueError("Cannot write an image without bands")
    grid = image.grid
    profile = {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": len(image.band_names),
        "dtype": "float32",
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": np.nan,
        "compress": "deflate",
    }
    with MemoryFile() as memfile:
        with memfile.open(**profile) as dst:
            for i, name in enumerate(image.band_names, start=1):
                dst.write(image.band(name).astype("float32").filled(np.nan), i)
                dst.set_band_description(i, name)
            dst.update_tags(**{k: str(v) for k, v in image.properties.items()})
        return memfile.read()


@dataclass(frozen=True)
class ExportOutcome:
    key: str
    attempts: int
    size_bytes: int


class ExportSink:
    """Writes export objects under *dest*, retrying failed puts with backoff."""

    def __init__(
        self,
        dest: str,
        retries: int = 3,
        backoff_sec: float = 1.0,
        region: str = "us-west-2",
        store=None,
    ):
        self.dest = dest
        self.retries = max(1, int(retries))
        self.backoff_sec = backoff_sec
        self.store = store if store is not None else from_dest(dest, region=region)

    def _put_with_retry(self, key: str, data: bytes) -> int:
        """Put *data* at *key*; return the attempt count or raise :class:`ExportJobError`."""
        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.retries + 1):
            try:
                obstore_put_bytes(self.store, key, data)
                logger.debug(f"Wrote {len(data)} bytes to {self.dest}/{key} (attempt {attempt})")
                return attempt
            except Exception as exc:
                last_exc = exc
                logger.warning(f"Export of {key} failed (attempt {attempt}/{self.retries}): {exc}")
                if attempt < self.retries:
                    time.sleep(self.backoff_sec * 2 ** (attempt - 1))
        raise ExportJobError(key, self.retries, last_exc) from last_exc

    def export_table(self, export: TableExport) -> ExportOutcome:
        key = export.key
        data = export.to_bytes()
        attempts = self._put_with_retry(key, data)
        logger.info(f"Exported {len(export.collection)} rows to {self.dest}/{key}")
        return ExportOutcome(key, attempts, len(data))

    def export_image(self, image: RasterImage, folder: str, prefix: str) -> ExportOutcome:
        start_date = image.properties.get("start_date")
        if start_date is None:
            raise ValueError("Window rasters need a start_date property")
        key = window_raster_key(folder, prefix, str(start_date))
        data = image_to_geotiff_bytes(image)
        attempts = self._put_with_retry(key, data)
        logger.info(f"Exported raster {list(image.band_names)} to {self.dest}/{key}")
        return ExportOutcome(key, attempts, len(data))
