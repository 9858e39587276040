"""Collection sources: what a window's images are and how they are prepared."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Tuple

from rs_timeseries.catalog import ImageCatalog
from rs_timeseries.compositing.merger import get_combined_collection
from rs_timeseries.config import HarmonizationConfig, LandsatConfig, PipelineConfig
from rs_timeseries.geo import Aoi
from rs_timeseries.preprocessing.indices import (
    FAMILY_BANDS,
    BandRoles,
    SensorFamily,
)
from rs_timeseries.preprocessing.masks import (
    SCALE_PRESETS,
    SENTINEL2_SCALE,
    ScaleGroup,
    apply_scale_factors,
    mask_s2_clouds,
)
from rs_timeseries.raster import ImageSequence, RasterImage
from rs_timeseries.sensors import (
    ERA5_MONTHLY_COLLECTION,
    LANDSAT_PRIORITY,
    REFERENCE_BANDS,
    SENTINEL2_BANDS,
    SENTINEL2_COLLECTION,
    TERRACLIMATE_COLLECTION,
    SensorGroup,
)
from rs_timeseries.temporal.windows import DateWindow


class CollectionSource(ABC):
    """Base for window collection providers."""

    name: str = "source"
    family: Optional[SensorFamily] = None
    bands: Tuple[str, ...] = ()

    @property
    def roles(self) -> Optional[BandRoles]:
        return FAMILY_BANDS.get(self.family) if self.family else None

    @abstractmethod
    def collection(self, catalog: ImageCatalog, window: DateWindow, aoi: Aoi) -> ImageSequence:
        """Masked, scaled images of *window* over *aoi*."""


@dataclass
class LandsatHarmonizedSource(CollectionSource):
    harmonization: HarmonizationConfig = field(default_factory=HarmonizationConfig)
    landsat: LandsatConfig = field(default_factory=LandsatConfig)
    priority: Sequence[SensorGroup] = LANDSAT_PRIORITY

    name = "landsat"
    family = SensorFamily.LANDSAT
    bands = REFERENCE_BANDS

    def collection(self, catalog, window, aoi):
        return get_combined_collection(
            catalog, window, aoi, self.harmonization, self.landsat, self.priority,
        )


def _prepare_s2(image: RasterImage) -> RasterImage:
    return apply_scale_factors(mask_s2_clouds(image), SENTINEL2_SCALE)


@dataclass
class Sentinel2Source(CollectionSource):
    """Surface reflectance scenes under *max_cloud_pct*, QA60-masked, scaled to 0-1."""

    max_cloud_pct: float = 20.0
    collection_id: str = SENTINEL2_COLLECTION

    name = "sentinel2"
    family = SensorFamily.SENTINEL2
    bands = SENTINEL2_BANDS

    def collection(self, catalog, window, aoi):
        return (
            catalog.collection(self.collection_id, window.start, window.end)
            .filter_date(window.start, window.end)
            .filter_bounds(aoi)
            .filter_property("CLOUDY_PIXEL_PERCENTAGE", "lt", self.max_cloud_pct)
            .map(_prepare_s2)
        )


@dataclass
class SingleCollectionSource(CollectionSource):
    """Any one collection with optional mask and scale groups (ERA5, TerraClimate, ...)."""

    collection_id: str = ""
    scale_groups: Sequence[ScaleGroup] = ()
    mask: Optional[Callable[[RasterImage], RasterImage]] = None
    bands: Tuple[str, ...] = ()
    name: str = ""
    family: Optional[SensorFamily] = None

    def __post_init__(self):
        if not self.collection_id:
            raise ValueError("SingleCollectionSource needs a collection_id")
        self.name = self.name or self.collection_id

    def _prepare(self, image: RasterImage) -> RasterImage:
        if self.mask is not None:
            image = self.mask(image)
        if self.scale_groups:
            image = apply_scale_factors(image, self.scale_groups)
        return image

    def collection(self, catalog, window, aoi):
        return (
            catalog.collection(self.collection_id, window.start, window.end)
            .filter_date(window.start, window.end)
            .filter_bounds(aoi)
            .map(self._prepare)
        )


def build_source(
    name: str,
    config: Optional[PipelineConfig] = None,
    scale_preset: Optional[str] = None,
) -> CollectionSource:
    """Source for a short name (landsat, sentinel2, era5, terraclimate) or a collection id."""
    config = config or PipelineConfig()
    key = name.strip().lower()
    if key == "landsat":
        return LandsatHarmonizedSource(config.harmonization, config.landsat)
    if key == "sentinel2":
        return Sentinel2Source(config.sentinel2.max_cloud_pct)

    presets = {
        "era5": (ERA5_MONTHLY_COLLECTION, None),
        "terraclimate": (TERRACLIMATE_COLLECTION, "terraclimate"),
    }
    collection_id, default_preset = presets.get(key, (name, None))
    preset = scale_preset or default_preset
    if preset is not None and preset not in SCALE_PRESETS:
        raise ValueError(f"Unknown scale preset {preset!r}; choose from {sorted(SCALE_PRESETS)}")
    return SingleCollectionSource(
        collection_id=collection_id,
        scale_groups=SCALE_PRESETS[preset] if preset else (),
        name=key if key in presets else collection_id,
    )
