"""Tests for QA bit masks, snow flags and scale factors."""

import numpy as np
import pytest

from rs_timeseries.errors import BandMissingError
from rs_timeseries.preprocessing.masks import (
    LANDSAT_C2_SCALE,
    SENTINEL2_SCALE,
    TERRACLIMATE_SCALE,
    add_snow,
    apply_scale_factors,
    decode_bits,
    mask_cloud,
    mask_cloud_snow,
    mask_fill,
    mask_s2_clouds,
)


def _qa(grid, **pixels):
    qa = np.zeros(grid.shape)
    for key, value in pixels.items():
        row, col = (int(v) for v in key[1:].split("_"))
        qa[row, col] = value
    return qa


def test_decode_bits():
    qa = np.ma.array([0, 1 << 3, 1 << 5, (1 << 3) | (1 << 4), 0], mask=[0, 0, 0, 0, 1])
    assert decode_bits(qa, (3, 4)).tolist() == [False, True, False, True, True]
    assert decode_bits(qa, (5,)).tolist() == [False, False, True, False, True]


def test_cloud_snow_mask(make_image, grid):
    qa = _qa(grid, p0_0=1 << 3, p0_1=1 << 4, p0_2=1 << 5, p0_3=1 << 1)
    image = make_image({"SR_B3": 0.1, "QA_PIXEL": qa})

    masked = mask_cloud_snow(image)
    red = masked.band("SR_B3")
    assert red.mask[0, :3].all()
    assert not red.mask[0, 3]
    assert not masked.band("QA_PIXEL").mask.any()

    cloud_only = mask_cloud(image).band("SR_B3")
    assert cloud_only.mask[0, 0] and cloud_only.mask[0, 1]
    assert not cloud_only.mask[0, 2]


def test_masking_is_idempotent(make_image, grid):
    image = make_image({"SR_B3": 0.1, "QA_PIXEL": _qa(grid, p4_4=1 << 3)})
    once = mask_cloud_snow(image)
    twice = mask_cloud_snow(once)
    assert (once.band("SR_B3").mask == twice.band("SR_B3").mask).all()


def test_fill_mask(make_image, grid):
    image = make_image({"SR_B3": 0.1, "QA_PIXEL": _qa(grid, p9_9=1)})
    assert mask_fill(image).band("SR_B3").mask.sum() == 1


def test_s2_clouds(make_image, grid):
    qa = _qa(grid, p1_1=1 << 10, p2_2=1 << 11)
    masked = mask_s2_clouds(make_image({"B4": 0.1, "QA60": qa})).band("B4")
    assert masked.mask[1, 1] and masked.mask[2, 2]
    assert masked.mask.sum() == 2


def test_mask_requires_qa_band(make_image):
    with pytest.raises(BandMissingError):
        mask_cloud_snow(make_image({"SR_B3": 0.1}))


def test_add_snow(make_image, grid):
    ndsi = np.full(grid.shape, 0.2)
    ndsi[0, 0] = 0.6
    snow = add_snow(make_image({"NDSI": ndsi}), threshold=0.4).band("snow")
    assert float(snow[0, 0]) == 1.0
    assert float(snow[1, 1]) == 0.0


def test_landsat_scale_factors(make_image):
    image = make_image({"SR_B1": 10000, "ST_B6": 1000, "QA_PIXEL": 21824})
    scaled = apply_scale_factors(image, LANDSAT_C2_SCALE)
    assert float(scaled.band("SR_B1")[0, 0]) == pytest.approx(0.075)
    assert float(scaled.band("ST_B6")[0, 0]) == pytest.approx(1000 * 0.00341802 + 149.0)
    assert float(scaled.band("QA_PIXEL")[0, 0]) == 21824


def test_sentinel2_scale_matches_band_names_only(make_image):
    scaled = apply_scale_factors(make_image({"B8A": 2500, "QA60": 1024}), SENTINEL2_SCALE)
    assert float(scaled.band("B8A")[0, 0]) == pytest.approx(0.25)
    assert float(scaled.band("QA60")[0, 0]) == 1024


def test_terraclimate_scale_groups(make_image):
    image = make_image({"tmmx": 250, "pdsi": -150, "vap": 1500, "ro": 7})
    scaled = apply_scale_factors(image, TERRACLIMATE_SCALE)
    assert float(scaled.band("tmmx")[0, 0]) == pytest.approx(25.0)
    assert float(scaled.band("pdsi")[0, 0]) == pytest.approx(-1.5)
    assert float(scaled.band("vap")[0, 0]) == pytest.approx(1.5)
    assert float(scaled.band("ro")[0, 0]) == 7
