"""Shared fixtures: a small UTM grid, image factories, points and an AOI."""

from datetime import datetime

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import Point

from rs_timeseries.geo import Aoi
from rs_timeseries.raster import GridSpec, RasterImage


CRS = "EPSG:32612"
ORIGIN_X = 500_000.0
ORIGIN_Y = 4_000_000.0
SCALE = 30.0
SIZE = 10

LANDSAT_ETM_BANDS = ("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B7")
LANDSAT_OLI_BANDS = ("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B6", "SR_B7")


def _pixel_centre(row, col):
    """Map coordinates of the centre of pixel (*row*, *col*) on the test grid."""
    return ORIGIN_X + SCALE * col + SCALE / 2, ORIGIN_Y - SCALE * row - SCALE / 2


@pytest.fixture
def pixel_centre():
    return _pixel_centre


@pytest.fixture
def grid():
    return GridSpec.from_bounds(
        (ORIGIN_X, ORIGIN_Y - SIZE * SCALE, ORIGIN_X + SIZE * SCALE, ORIGIN_Y), SCALE, CRS,
    )


@pytest.fixture
def make_image(grid):
    """Factory: ``make_image({"SR_B3": 0.1, "QA_PIXEL": qa_array}, time_start="2020-01-05")``.

    Scalars are broadcast over the whole grid.
    """
    def _make(bands, time_start=None, **properties):
        arrays = {}
        for name, value in bands.items():
            if np.isscalar(value):
                arrays[name] = np.full(grid.shape, float(value))
            else:
                arrays[name] = value
        if time_start is not None:
            properties["time_start"] = datetime.fromisoformat(time_start)
        return RasterImage(arrays, grid, properties)

    return _make


@pytest.fixture
def make_landsat(make_image):
    """Factory for an ETM-domain (LT05/LE07) or OLI (LC08/LC09) scene with a clear QA band."""
    def _make(time_start, red=0.1, nir=0.5, oli=False, qa=0, image_id=None, **extra):
        names = LANDSAT_OLI_BANDS if oli else LANDSAT_ETM_BANDS
        bands = {name: 0.2 for name in names}
        if oli:
            bands.update({"SR_B4": red, "SR_B5": nir})
        else:
            bands.update({"SR_B3": red, "SR_B4": nir})
        bands["QA_PIXEL"] = qa
        bands.update(extra)
        props = {"id": image_id} if image_id else {}
        return make_image(bands, time_start=time_start, **props)

    return _make


@pytest.fixture
def aoi(grid):
    return Aoi(grid.footprint(), CRS)


@pytest.fixture
def points():
    """Two sites on the grid plus one far outside it."""
    return gpd.GeoDataFrame(
        {"St_SttK": ["A", "B", "FAR"], "Project": ["p1", "p1", "p2"]},
        geometry=[
            Point(*_pixel_centre(2, 2)),
            Point(*_pixel_centre(7, 5)),
            Point(ORIGIN_X + 50_000, ORIGIN_Y + 50_000),
        ],
        crs=CRS,
    )
