"""Local GeoTIFF catalog driven by a CSV index.

Index columns: ``collection_id, path, time_start`` (required) plus optional
``image_id``, ``bands`` (``;``-separated band names overriding the TIFF band
descriptions) and any number of extra columns, which become image
properties (e.g. ``CLOUDY_PIXEL_PERCENTAGE``).  Relative paths resolve
against the index file's directory.
"""

from __future__ import annotations

import csv
import os
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
import rasterio
from loguru import logger

from rs_timeseries.raster import GridSpec, ImageSequence, RasterImage
from rs_timeseries.temporal.windows import parse_date


REQUIRED_COLUMNS = {"collection_id", "path", "time_start"}
_RESERVED = REQUIRED_COLUMNS | {"image_id", "bands"}


def _coerce(value: str) -> Any:
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


def _parse_time(value: str) -> datetime:
    ts = pd.Timestamp(value)
    if ts.tzinfo is not None:
        ts = ts.tz_convert(None)
    return ts.to_pydatetime()


def read_geotiff(
    path: str,
    band_names: Optional[Sequence[str]] = None,
    properties: Optional[Mapping[str, Any]] = None,
) -> RasterImage:
    """Read every band of *path*; nodata pixels come back masked."""
    with rasterio.open(path) as src:
        data = src.read(masked=True)
        names = list(band_names) if band_names else [
            desc or f"b{i + 1}" for i, desc in enumerate(src.descriptions)
        ]
        if len(names) != src.count:
            raise ValueError(
                f"{path}: {src.count} bands but {len(names)} band names given"
            )
        grid = GridSpec(src.crs.to_string(), src.transform, src.width, src.height)
        props: Dict[str, Any] = {k: _coerce(v) for k, v in src.tags().items()}

    props.update(properties or {})
    props.setdefault("id", os.path.splitext(os.path.basename(path))[0])
    bands = {name: np.ma.asarray(data[i]) for i, name in enumerate(names)}
    return RasterImage(bands, grid, props)


def read_index_csv(path: str) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    base = os.path.dirname(os.path.abspath(path))
    with open(path, newline="") as f:
        reader = csv.DictReader(f)
        missing = REQUIRED_COLUMNS - set(reader.fieldnames or [])
        if missing:
            raise ValueError(f"Catalog index is missing columns: {sorted(missing)}")
        for row in reader:
            tif = row["path"]
            if not os.path.isabs(tif):
                tif = os.path.join(base, tif)
            extra = {
                k: _coerce(v) for k, v in row.items()
                if k not in _RESERVED and v not in (None, "")
            }
            rows.append({
                "collection_id": row["collection_id"],
                "path": tif,
                "time_start": _parse_time(row["time_start"]),
                "image_id": row.get("image_id") or None,
                "bands": [b for b in (row.get("bands") or "").split(";") if b],
                "properties": extra,
            })
    return rows


class GeoTiffCatalog:
    """Catalog of GeoTIFFs listed in an index CSV; images are read per query and not retained."""

    def __init__(self, index_path: str):
        self.index_path = index_path
        self._rows = defaultdict(list)
        for row in read_index_csv(index_path):
            self._rows[row["collection_id"]].append(row)
        logger.info(
            f"Catalog {index_path}: {sum(len(r) for r in self._rows.values())} images "
            f"in {len(self._rows)} collections"
        )

    def collection_ids(self):
        return sorted(self._rows)

    def _load(self, row: Dict[str, Any]) -> RasterImage:
        props = dict(row["properties"])
        props["time_start"] = row["time_start"]
        if row["image_id"]:
            props["id"] = row["image_id"]
        return read_geotiff(row["path"], row["bands"] or None, props)

    def collection(self, collection_id: str, start=None, end=None) -> ImageSequence:
        rows = self._rows.get(collection_id, [])
        if start is not None and end is not None:
            lo = datetime.combine(parse_date(start), datetime.min.time())
            hi = datetime.combine(parse_date(end), datetime.min.time())
            rows = [r for r in rows if lo <= r["time_start"] < hi]
        return ImageSequence(self._load(r) for r in rows)
