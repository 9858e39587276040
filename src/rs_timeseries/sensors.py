"""Sensor catalog ids and the Landsat availability-priority table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple

from rs_timeseries.raster import ImageSequence


@dataclass(frozen=True)
class LandsatMission:
    code: str
    harmonize: bool = False

    @property
    def collection_id(self) -> str:
        return f"LANDSAT/{self.code}/C02/T1_L2"


LT05 = LandsatMission("LT05")
LE07 = LandsatMission("LE07")
LC08 = LandsatMission("LC08", harmonize=True)
LC09 = LandsatMission("LC09", harmonize=True)

LANDSAT_MISSIONS: Tuple[LandsatMission, ...] = (LT05, LE07, LC08, LC09)

# ETM+-domain surface reflectance bands every merged Landsat image carries.
REFERENCE_BANDS: Tuple[str, ...] = ("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B7")
QA_BAND = "QA_PIXEL"

SENTINEL2_COLLECTION = "COPERNICUS/S2_SR_HARMONIZED"
SENTINEL2_BANDS: Tuple[str, ...] = (
    "B2", "B3", "B4", "B5", "B6", "B7", "B8", "B8A", "B11", "B12",
)
ERA5_MONTHLY_COLLECTION = "ECMWF/ERA5/MONTHLY"
TERRACLIMATE_COLLECTION = "IDAHO_EPSCOR/TERRACLIMATE"


def has_images(images: ImageSequence) -> bool:
    return images.size() > 0


def always(images: ImageSequence) -> bool:
    return True


@dataclass(frozen=True)
class SensorGroup:
    """One row of the priority table: missions merged together when *predicate* holds."""

    name: str
    missions: Tuple[LandsatMission, ...]
    predicate: Callable[[ImageSequence], bool]


# LE07 carries the post-2003 scan-line-corrector gaps, so it is used only
# for windows where no other mission has imagery.
LANDSAT_PRIORITY: Tuple[SensorGroup, ...] = (
    SensorGroup("primary", (LT05, LC08, LC09), has_images),
    SensorGroup("fallback", (LE07,), always),
)
