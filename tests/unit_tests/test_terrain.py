"""Tests for DEM-derived terrain metrics."""

import math

import numpy as np
import pytest

from rs_timeseries.errors import BandMissingError
from rs_timeseries.preprocessing.terrain import (
    TerrainMetric,
    TerrainParams,
    add_terrain_metrics,
    parse_metrics,
)
from rs_timeseries.raster.filters import neighbourhood_mean


@pytest.fixture
def east_ramp(make_image, grid):
    """Elevation rising 0.1 m per metre towards the east."""
    cols = np.arange(grid.width) * 30.0
    return make_image({"elevation": np.tile(0.1 * cols, (grid.height, 1))})


@pytest.fixture
def north_ramp(make_image, grid):
    rows = np.arange(grid.height)[:, None] * 30.0
    return make_image({"elevation": np.tile(100.0 - 0.1 * rows, (1, grid.width))})


def test_slope_and_aspect_east_ramp(east_ramp):
    out = add_terrain_metrics(east_ramp, ["slope", "aspect"])
    assert float(out.band("slope")[5, 5]) == pytest.approx(math.degrees(math.atan(0.1)))
    # faces downhill to the west
    assert float(out.band("aspect")[5, 5]) == pytest.approx(270.0)


def test_north_ramp_faces_south(north_ramp):
    out = add_terrain_metrics(north_ramp, [TerrainMetric.ASPECT, TerrainMetric.NORTHNESS])
    assert float(out.band("aspect")[5, 5]) == pytest.approx(180.0)
    assert float(out.band("northness")[5, 5]) == pytest.approx(-1.0)


def test_tpi_flat_and_peak(make_image, grid):
    flat = add_terrain_metrics(make_image({"elevation": 100.0}), ["TPI"], TerrainParams(tpi_radius_px=2))
    assert np.allclose(flat.band("TPI").filled(np.nan), 0.0)

    dem = np.full(grid.shape, 100.0)
    dem[5, 5] = 125.0
    peak = add_terrain_metrics(make_image({"elevation": dem}), ["TPI"], TerrainParams(tpi_radius_px=2))
    assert float(peak.band("TPI")[5, 5]) == pytest.approx(25.0 - 25.0 / 25)


def test_hli_on_flat_ground(make_image):
    latitude = 40.0
    out = add_terrain_metrics(
        make_image({"elevation": 10.0}), ["HLI"], TerrainParams(hli_latitude=latitude),
    )
    expected = math.exp(1.582 * math.cos(math.radians(latitude)) - 1.467)
    assert float(out.band("HLI")[5, 5]) == pytest.approx(expected)


def test_twi_needs_upslope_area(east_ramp):
    with pytest.raises(BandMissingError):
        add_terrain_metrics(east_ramp, ["TWI"])

    with_upa = east_ramp.add_bands({"upa": np.full(east_ramp.grid.shape, 2.0)})
    twi = add_terrain_metrics(with_upa, ["TWI"]).band("TWI")
    assert float(twi[5, 5]) == pytest.approx(math.log(2.0e6 / 0.1))


def test_twi_masks_flat_pixels(make_image):
    image = make_image({"elevation": 5.0, "upa": 1.0})
    assert add_terrain_metrics(image, ["TWI"]).band("TWI").mask.all()


def test_masked_dem_propagates(make_image, grid):
    dem = np.full(grid.shape, 50.0)
    dem[4, 4] = np.nan
    out = add_terrain_metrics(make_image({"elevation": dem}), ["slope"])
    assert out.band("slope").mask[4, 4]


def test_neighbourhood_mean_ignores_masked():
    values = np.ma.array(np.ones((5, 5)) * 2.0, mask=np.zeros((5, 5), dtype=bool))
    values.mask[2, 2] = True
    values.data[2, 2] = 1000.0
    mean = neighbourhood_mean(values, 1)
    assert float(mean[2, 2]) == pytest.approx(2.0)
    assert float(mean[0, 0]) == pytest.approx(2.0)


def test_parse_metrics():
    assert parse_metrics(["tpi", "Slope"]) == (TerrainMetric.TPI, TerrainMetric.SLOPE)
    with pytest.raises(ValueError):
        parse_metrics(["curvature"])
