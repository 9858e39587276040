"""Shared obstore helpers for export destinations."""

from __future__ import annotations

import os
from typing import List

import obstore as obs
from obstore.store import LocalStore, from_url


def from_dest(dest: str, *, region: str = "us-west-2"):
    """Build an obstore Store from an ``s3://`` URI or local path."""
    if dest.startswith("s3://"):
        return from_url(dest, region=region)
    os.makedirs(dest, exist_ok=True)
    return LocalStore(prefix=dest)


def obstore_put_bytes(store, relpath: str, data: bytes) -> None:
    """Write raw bytes to *store* at *relpath* as one atomic object put."""
    obs.put(store, relpath, data)


def obstore_get_bytes(store, relpath: str) -> bytes:
    return bytes(obs.get(store, relpath).bytes())


def list_keys(store, prefix: str = "") -> List[str]:
    """All object keys under *prefix*, sorted."""
    keys: List[str] = []
    for batch in obs.list(store, prefix=prefix or None):
        keys.extend(meta["path"] for meta in batch)
    return sorted(keys)
