"""Immutable multi-band raster with a property map.

Each band is a ``numpy.ma.MaskedArray`` on the image's :class:`GridSpec`;
the mask marks no-data pixels.  Every operation returns a new image and
leaves the receiver untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from rasterio.enums import Resampling
from rasterio.features import geometry_mask
from rasterio.warp import reproject

from rs_timeseries.errors import BandMissingError, GridMismatchError
from rs_timeseries.raster.grid import GridSpec


def _as_masked(name: str, values, grid: GridSpec) -> np.ma.MaskedArray:
    arr = np.ma.asarray(values)
    if arr.shape != grid.shape:
        raise GridMismatchError(
            f"Band {name!r} has shape {arr.shape}, grid expects {grid.shape}"
        )
    mask = np.ma.getmaskarray(arr).copy()
    data = np.ma.getdata(arr)
    if np.issubdtype(data.dtype, np.floating):
        mask |= ~np.isfinite(data)
    return np.ma.MaskedArray(data, mask=mask)


@dataclass(frozen=True, eq=False)
class RasterImage:
    bands: Mapping[str, np.ma.MaskedArray]
    grid: GridSpec
    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        normalized = {
            name: _as_masked(name, values, self.grid)
            for name, values in self.bands.items()
        }
        object.__setattr__(self, "bands", MappingProxyType(normalized))
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))

    @classmethod
    def empty(cls, grid: GridSpec, band_names: Iterable[str],
              properties: Optional[Mapping[str, Any]] = None) -> "RasterImage":
        """An image whose every pixel of every band is masked."""
        bands = {
            name: np.ma.masked_all(grid.shape, dtype="float64")
            for name in band_names
        }
        return cls(bands, grid, properties or {})

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def band_names(self) -> Tuple[str, ...]:
        return tuple(self.bands)

    @property
    def id(self) -> Optional[str]:
        return self.properties.get("id")

    @property
    def time_start(self) -> Optional[datetime]:
        return self.properties.get("time_start")

    def band(self, name: str) -> np.ma.MaskedArray:
        try:
            return self.bands[name]
        except KeyError:
            raise BandMissingError(name, self.id, self.band_names) from None

    def require(self, *names: str) -> None:
        """Raise :class:`BandMissingError` for the first absent band."""
        for name in names:
            if name not in self.bands:
                raise BandMissingError(name, self.id, self.band_names)

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def _replace(self, bands=None, properties=None) -> "RasterImage":
        return RasterImage(
            self.bands if bands is None else bands,
            self.grid,
            self.properties if properties is None else properties,
        )

    def select(self, names: Sequence[str]) -> "RasterImage":
        """Keep only *names*, in the given order."""
        self.require(*names)
        return self._replace(bands={n: self.bands[n] for n in names})

    def add_bands(
        self,
        bands: Union[Mapping[str, Any], "RasterImage"],
        overwrite: bool = False,
    ) -> "RasterImage":
        if isinstance(bands, RasterImage):
            if bands.grid != self.grid:
                raise GridMismatchError("Cannot add bands from an image on another grid")
            bands = bands.bands
        clash = set(bands) & set(self.bands)
        if clash and not overwrite:
            raise ValueError(f"Bands already present: {sorted(clash)}")
        merged = dict(self.bands)
        merged.update(bands)
        return self._replace(bands=merged)

    def rename(self, mapping: Mapping[str, str]) -> "RasterImage":
        self.require(*mapping)
        return self._replace(bands={mapping.get(n, n): a for n, a in self.bands.items()})

    def update_mask(self, flagged: np.ndarray, skip: Iterable[str] = ()) -> "RasterImage":
        """Mask pixels where *flagged* is True in every band not in *skip*."""
        flagged = np.asarray(flagged, dtype=bool)
        if flagged.shape != self.grid.shape:
            raise GridMismatchError(
                f"Mask shape {flagged.shape} does not match grid {self.grid.shape}"
            )
        skip = set(skip)
        bands = {}
        for name, arr in self.bands.items():
            if name in skip:
                bands[name] = arr
            else:
                bands[name] = np.ma.MaskedArray(arr.data, mask=arr.mask | flagged)
        return self._replace(bands=bands)

    def clip(self, aoi) -> "RasterImage":
        """Mask pixels whose centre falls outside *aoi* (a :class:`~rs_timeseries.geo.Aoi`)."""
        geom = aoi.to_crs(self.grid.crs)
        outside = geometry_mask(
            [geom], out_shape=self.grid.shape, transform=self.grid.transform,
        )
        return self.update_mask(outside)

    def set(self, properties: Optional[Mapping[str, Any]] = None, **kwargs) -> "RasterImage":
        merged = dict(self.properties)
        merged.update(properties or {})
        merged.update(kwargs)
        return self._replace(properties=merged)

    def __repr__(self) -> str:
        return f"RasterImage(id={self.id!r}, bands={list(self.band_names)}, shape={self.grid.shape})"


def reproject_image(
    image: RasterImage,
    grid: GridSpec,
    resampling: Resampling = Resampling.nearest,
) -> RasterImage:
    """Resample every band of *image* onto *grid*; masked pixels stay masked."""
    if image.grid == grid:
        return image
    bands = {}
    for name, arr in image.bands.items():
        destination = np.full(grid.shape, np.nan, dtype="float64")
        reproject(
            source=arr.astype("float64").filled(np.nan),
            destination=destination,
            src_transform=image.grid.transform,
            src_crs=image.grid.crs,
            src_nodata=np.nan,
            dst_transform=grid.transform,
            dst_crs=grid.crs,
            dst_nodata=np.nan,
            resampling=resampling,
        )
        bands[name] = np.ma.masked_invalid(destination)
    return RasterImage(bands, grid, image.properties)
