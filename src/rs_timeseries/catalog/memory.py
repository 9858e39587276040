"""Catalog protocol and an in-memory implementation."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Protocol

from loguru import logger

from rs_timeseries.raster import ImageSequence, RasterImage


class ImageCatalog(Protocol):
    """Source of named image collections."""

    def collection(self, collection_id: str, start=None, end=None) -> ImageSequence:
        """Images of *collection_id*, optionally pre-filtered to ``[start, end)``."""
        ...


class InMemoryCatalog:
    """Collections held as lists of :class:`RasterImage`; unknown ids are empty."""

    def __init__(self, collections: Optional[Dict[str, Iterable[RasterImage]]] = None):
        self._collections: Dict[str, ImageSequence] = {
            cid: ImageSequence(images) for cid, images in (collections or {}).items()
        }

    def add(self, collection_id: str, images: Iterable[RasterImage]) -> None:
        existing = self._collections.get(collection_id, ImageSequence())
        self._collections[collection_id] = existing.merge(ImageSequence(images))

    def collection_ids(self):
        return sorted(self._collections)

    def collection(self, collection_id: str, start=None, end=None) -> ImageSequence:
        images = self._collections.get(collection_id)
        if images is None:
            logger.debug(f"Collection {collection_id} not in catalog; treating as empty")
            return ImageSequence()
        if start is not None and end is not None:
            images = images.filter_date(start, end)
        return images
