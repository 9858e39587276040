"""Per-window multi-mission Landsat collection with priority fallback."""

from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

from loguru import logger

from rs_timeseries.catalog import ImageCatalog
from rs_timeseries.config import HarmonizationConfig, LandsatConfig
from rs_timeseries.geo import Aoi
from rs_timeseries.preprocessing.harmonize import OLI_TO_ETM, harmonize_to_reference
from rs_timeseries.preprocessing.masks import LANDSAT_C2_SCALE, apply_scale_factors, mask_cloud_snow
from rs_timeseries.raster import ImageSequence, RasterImage
from rs_timeseries.sensors import (
    LANDSAT_PRIORITY,
    QA_BAND,
    REFERENCE_BANDS,
    LandsatMission,
    SensorGroup,
)
from rs_timeseries.temporal.windows import DateWindow


def prepare_landsat_image(
    image: RasterImage,
    mission: LandsatMission,
    harmonization: HarmonizationConfig,
    apply_scale: bool = False,
) -> RasterImage:
    """Scale (optional), cloud/snow mask, harmonize OLI, keep reference bands + QA."""
    if apply_scale:
        image = apply_scale_factors(image, LANDSAT_C2_SCALE)
    image = mask_cloud_snow(image)
    if mission.harmonize:
        dn_scale = 1.0 if apply_scale else harmonization.dn_scale
        image = harmonize_to_reference(image, OLI_TO_ETM, dn_scale, passthrough=(QA_BAND,))
    return image.select(REFERENCE_BANDS + (QA_BAND,)).set(sensor=mission.code)


def get_sensor_collection(
    catalog: ImageCatalog,
    mission: LandsatMission,
    window: DateWindow,
    aoi: Aoi,
    harmonization: Optional[HarmonizationConfig] = None,
    landsat: Optional[LandsatConfig] = None,
) -> ImageSequence:
    harmonization = harmonization or HarmonizationConfig()
    landsat = landsat or LandsatConfig()
    images = (
        catalog.collection(mission.collection_id, window.start, window.end)
        .filter_date(window.start, window.end)
        .filter_bounds(aoi)
    )
    return images.map(
        lambda img: prepare_landsat_image(
            img, mission, harmonization, landsat.apply_scale_factors,
        )
    )


def select_priority_group(
    groups: Sequence[Tuple[SensorGroup, ImageSequence]],
) -> Tuple[Optional[str], ImageSequence]:
    """First group whose predicate accepts its images; empty if none does."""
    for group, images in groups:
        if group.predicate(images):
            return group.name, images
    return None, ImageSequence()


def get_combined_collection(
    catalog: ImageCatalog,
    window: DateWindow,
    aoi: Aoi,
    harmonization: Optional[HarmonizationConfig] = None,
    landsat: Optional[LandsatConfig] = None,
    priority: Sequence[SensorGroup] = LANDSAT_PRIORITY,
) -> ImageSequence:
    """Merged, harmonized Landsat images for one window.

    Availability is decided per window: a later group in *priority* is used
    only when every earlier group's predicate fails for this window.
    """
    per_mission: Dict[str, ImageSequence] = {}
    evaluated = []
    for group in priority:
        merged = ImageSequence()
        for mission in group.missions:
            if mission.code not in per_mission:
                per_mission[mission.code] = get_sensor_collection(
                    catalog, mission, window, aoi, harmonization, landsat,
                )
            merged = merged.merge(per_mission[mission.code])
        evaluated.append((group, merged))
        if group.predicate(merged):
            break

    name, images = select_priority_group(evaluated)
    counts = ", ".join(f"{code}={len(seq)}" for code, seq in per_mission.items())
    logger.debug(f"Window {window}: {counts} -> group {name} ({len(images)} images)")
    return images
