"""Spectral index registry and band arithmetic.

Every index is a fixed formula over *roles* (blue, red, nir, ...) which each
sensor family maps to its own band names: Landsat in the ETM+ domain
(``SR_B1``..``SR_B7``, after OLI harmonization) and Sentinel-2 (``B2``..``B12``).

Arithmetic runs on masked arrays: a zero denominator, the square root of a
negative value, or any non-finite intermediate becomes a masked pixel, never
``nan``/``inf`` and never an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

import numpy as np

from rs_timeseries.errors import UnknownIndexError
from rs_timeseries.raster import RasterImage


class SensorFamily(str, Enum):
    LANDSAT = "landsat"
    SENTINEL2 = "sentinel2"


@dataclass(frozen=True)
class BandRoles:
    """Band name playing each spectral role for one sensor family."""

    blue: str
    green: str
    red: str
    nir: str
    swir1: str
    swir2: str
    nir_narrow: Optional[str] = None
    red_edge1: Optional[str] = None
    red_edge2: Optional[str] = None
    red_edge3: Optional[str] = None


LANDSAT_BANDS = BandRoles(
    blue="SR_B1", green="SR_B2", red="SR_B3", nir="SR_B4",
    swir1="SR_B5", swir2="SR_B7", nir_narrow="SR_B4",
)

SENTINEL2_BANDS = BandRoles(
    blue="B2", green="B3", red="B4", nir="B8",
    swir1="B11", swir2="B12", nir_narrow="B8A",
    red_edge1="B5", red_edge2="B6", red_edge3="B7",
)

FAMILY_BANDS: Dict[SensorFamily, BandRoles] = {
    SensorFamily.LANDSAT: LANDSAT_BANDS,
    SensorFamily.SENTINEL2: SENTINEL2_BANDS,
}


class SpectralIndex(str, Enum):
    BSI = "BSI"
    CRE = "CRE"
    DRS = "DRS"
    DSWI = "DSWI"
    EVI = "EVI"
    GNDVI = "GNDVI"
    LAI = "LAI"
    NBR = "NBR"
    NDMI = "NDMI"
    NDRE1 = "NDRE1"
    NDRE2 = "NDRE2"
    NDRE3 = "NDRE3"
    NDRS = "NDRS"
    NDRS_STRESSED = "NDRS_stressed"
    NDSI = "NDSI"
    NDVI = "NDVI"
    NDWI = "NDWI"
    RDI = "RDI"
    SAVI = "SAVI"
    SI = "SI"


@dataclass(frozen=True)
class IndexParams:
    """Tunable constants; DRS bounds are scene statistics supplied by the caller."""

    ndrs_min: float = 0.0
    ndrs_max: float = 1.0
    ndrs_threshold: float = 0.5


Input = Union[str, SpectralIndex]


@dataclass(frozen=True)
class IndexDefinition:
    """``formula(*arrays, params)`` over *inputs*: role names or earlier indices."""

    index: SpectralIndex
    inputs: Tuple[Input, ...]
    formula: Callable[..., np.ma.MaskedArray]

    @property
    def depends_on(self) -> Tuple[SpectralIndex, ...]:
        return tuple(i for i in self.inputs if isinstance(i, SpectralIndex))

    def band_names(self, roles: BandRoles) -> Optional[Tuple[str, ...]]:
        """Concrete input band names, or None if *roles* lacks one."""
        names = []
        for item in self.inputs:
            if isinstance(item, SpectralIndex):
                names.append(item.value)
            else:
                name = getattr(roles, item)
                if name is None:
                    return None
                names.append(name)
        return tuple(names)


# ---------------------------------------------------------------------------
# Formulas
# ---------------------------------------------------------------------------

def normalized_difference(a, b) -> np.ma.MaskedArray:
    """``(a - b) / (a + b)``; masked where ``a + b == 0``."""
    a = np.ma.asarray(a, dtype="float64")
    b = np.ma.asarray(b, dtype="float64")
    return _finalize(np.ma.divide(a - b, a + b))


def _finalize(values) -> np.ma.MaskedArray:
    return np.ma.masked_invalid(np.ma.asarray(values, dtype="float64"))


def _evi(blue, red, nir, p):
    return 2.5 * np.ma.divide(nir - red, nir + 6 * red - 7.5 * blue + 1)


def _bsi(blue, red, nir, swir1, p):
    return np.ma.divide((red + swir1) - (nir + blue), (red + swir1) + (nir + blue))


def _ndrs(drs, p):
    span = p.ndrs_max - p.ndrs_min
    if span == 0:
        raise ValueError("ndrs_max must differ from ndrs_min")
    return (drs - p.ndrs_min) / span


def _ndrs_stressed(ndrs, p):
    return np.ma.greater(ndrs, p.ndrs_threshold).astype("float64")


_DEFINITIONS: Tuple[IndexDefinition, ...] = (
    IndexDefinition(SpectralIndex.NDVI, ("nir", "red"),
                    lambda nir, red, p: normalized_difference(nir, red)),
    IndexDefinition(SpectralIndex.NDMI, ("nir", "swir1"),
                    lambda nir, swir1, p: normalized_difference(nir, swir1)),
    IndexDefinition(SpectralIndex.NDWI, ("nir_narrow", "swir1"),
                    lambda nir, swir1, p: normalized_difference(nir, swir1)),
    IndexDefinition(SpectralIndex.NDSI, ("green", "swir1"),
                    lambda green, swir1, p: normalized_difference(green, swir1)),
    IndexDefinition(SpectralIndex.GNDVI, ("nir", "green"),
                    lambda nir, green, p: normalized_difference(nir, green)),
    IndexDefinition(SpectralIndex.NBR, ("nir", "swir2"),
                    lambda nir, swir2, p: normalized_difference(nir, swir2)),
    IndexDefinition(SpectralIndex.EVI, ("blue", "red", "nir"), _evi),
    IndexDefinition(SpectralIndex.LAI, (SpectralIndex.EVI,),
                    lambda evi, p: 3.618 * evi - 0.118),
    IndexDefinition(SpectralIndex.SAVI, ("nir", "red"),
                    lambda nir, red, p: np.ma.divide(nir - red, nir + red + 0.428) * 1.428),
    IndexDefinition(SpectralIndex.BSI, ("blue", "red", "nir", "swir1"), _bsi),
    IndexDefinition(SpectralIndex.SI, ("blue", "green", "red"),
                    lambda blue, green, red, p: (1 - blue) * (1 - green) * (1 - red)),
    IndexDefinition(SpectralIndex.DSWI, ("nir", "green", "red", "swir1"),
                    lambda nir, green, red, swir1, p: np.ma.divide(nir + green, red + swir1)),
    IndexDefinition(SpectralIndex.DRS, ("red", "swir1"),
                    lambda red, swir1, p: np.ma.sqrt(red ** 2 + swir1 ** 2)),
    IndexDefinition(SpectralIndex.NDRS, (SpectralIndex.DRS,), _ndrs),
    IndexDefinition(SpectralIndex.NDRS_STRESSED, (SpectralIndex.NDRS,), _ndrs_stressed),
    IndexDefinition(SpectralIndex.NDRE1, ("red_edge2", "red_edge1"),
                    lambda re2, re1, p: normalized_difference(re2, re1)),
    IndexDefinition(SpectralIndex.NDRE2, ("red_edge3", "red_edge1"),
                    lambda re3, re1, p: normalized_difference(re3, re1)),
    IndexDefinition(SpectralIndex.NDRE3, ("nir_narrow", "red_edge3"),
                    lambda nir, re3, p: normalized_difference(nir, re3)),
    IndexDefinition(SpectralIndex.CRE, ("red_edge3", "red_edge1"),
                    lambda re3, re1, p: np.ma.divide(re3, re1) - 1),
    IndexDefinition(SpectralIndex.RDI, ("swir2", "nir_narrow"),
                    lambda swir2, nir, p: np.ma.divide(swir2, nir)),
)

REGISTRY: Dict[SpectralIndex, IndexDefinition] = {d.index: d for d in _DEFINITIONS}


# ---------------------------------------------------------------------------
# Registry lookups
# ---------------------------------------------------------------------------

def _supported(index: SpectralIndex, roles: BandRoles) -> bool:
    definition = REGISTRY[index]
    if definition.band_names(roles) is None:
        return False
    return all(_supported(dep, roles) for dep in definition.depends_on)


def available_indices(family: SensorFamily) -> Tuple[SpectralIndex, ...]:
    roles = FAMILY_BANDS[SensorFamily(family)]
    return tuple(i for i in SpectralIndex if _supported(i, roles))


def resolve_indices(
    names: Iterable[Union[str, SpectralIndex]],
    family: SensorFamily = SensorFamily.LANDSAT,
) -> Tuple[SpectralIndex, ...]:
    """Validate user-supplied index names (case-insensitive) for *family*.

    Raises :class:`UnknownIndexError` listing every bad name at once;
    duplicates are dropped, order is kept.
    """
    family = SensorFamily(family)
    lookup = {i.value.lower(): i for i in SpectralIndex}
    supported = set(available_indices(family))

    resolved, unknown = [], []
    for name in names:
        index = lookup.get(str(getattr(name, "value", name)).strip().lower())
        if index is None or index not in supported:
            unknown.append(str(getattr(name, "value", name)))
        elif index not in resolved:
            resolved.append(index)
    if unknown:
        raise UnknownIndexError(unknown, [i.value for i in supported], family.value)
    return tuple(resolved)


def application_order(indices: Iterable[SpectralIndex]) -> Tuple[SpectralIndex, ...]:
    """*indices* in caller order with derived dependencies inserted first."""
    ordered = []

    def visit(index: SpectralIndex) -> None:
        if index in ordered:
            return
        for dep in REGISTRY[index].depends_on:
            visit(dep)
        ordered.append(index)

    for index in indices:
        visit(SpectralIndex(index))
    return tuple(ordered)


# ---------------------------------------------------------------------------
# Image operations
# ---------------------------------------------------------------------------

def compute_index(
    image: RasterImage,
    index: SpectralIndex,
    roles: BandRoles = LANDSAT_BANDS,
    params: Optional[IndexParams] = None,
) -> np.ma.MaskedArray:
    definition = REGISTRY[SpectralIndex(index)]
    names = definition.band_names(roles)
    if names is None:
        raise UnknownIndexError([definition.index.value], [], "these band roles")
    image.require(*names)
    arrays = [image.band(n).astype("float64") for n in names]
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        return _finalize(definition.formula(*arrays, params or IndexParams()))


def add_index(
    image: RasterImage,
    index: SpectralIndex,
    roles: BandRoles = LANDSAT_BANDS,
    params: Optional[IndexParams] = None,
) -> RasterImage:
    """Return *image* plus one float64 band named after *index*."""
    values = compute_index(image, index, roles, params)
    return image.add_bands({SpectralIndex(index).value: values}, overwrite=True)


def add_indices(
    image: RasterImage,
    indices: Iterable[SpectralIndex],
    roles: BandRoles = LANDSAT_BANDS,
    params: Optional[IndexParams] = None,
) -> RasterImage:
    for index in application_order(indices):
        image = add_index(image, index, roles, params)
    return image
