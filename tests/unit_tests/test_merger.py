"""Tests for the per-window Landsat priority merge."""

from datetime import date

import numpy as np
import pytest

from rs_timeseries.catalog import InMemoryCatalog
from rs_timeseries.compositing.merger import (
    get_combined_collection,
    get_sensor_collection,
    prepare_landsat_image,
    select_priority_group,
)
from rs_timeseries.config import HarmonizationConfig
from rs_timeseries.raster import ImageSequence
from rs_timeseries.sensors import LANDSAT_PRIORITY, LC08, LE07, LT05
from rs_timeseries.temporal.windows import DateWindow


JAN = DateWindow(date(2020, 1, 1), date(2020, 2, 1))
FEB = DateWindow(date(2020, 2, 1), date(2020, 3, 1))
MAR = DateWindow(date(2020, 3, 1), date(2020, 4, 1))


@pytest.fixture
def catalog(make_landsat):
    return InMemoryCatalog({
        LC08.collection_id: [
            make_landsat("2020-01-10", red=1000, nir=3000, oli=True, image_id="LC08_jan"),
        ],
        LT05.collection_id: [
            make_landsat("2020-01-20", red=900, nir=2000, image_id="LT05_jan"),
        ],
        LE07.collection_id: [
            make_landsat("2020-01-15", image_id="LE07_jan"),
            make_landsat("2020-02-15", image_id="LE07_feb"),
        ],
    })


def test_primary_group_wins_when_available(catalog, aoi):
    images = get_combined_collection(catalog, JAN, aoi)
    assert sorted(images.property_values("id")) == ["LC08_jan", "LT05_jan"]
    assert sorted(images.property_values("sensor")) == ["LC08", "LT05"]


def test_fallback_only_without_primary_imagery(catalog, aoi):
    images = get_combined_collection(catalog, FEB, aoi)
    assert images.property_values("id") == ["LE07_feb"]


def test_empty_window(catalog, aoi):
    assert get_combined_collection(catalog, MAR, aoi).size() == 0


def test_merged_images_share_reference_bands(catalog, aoi):
    images = get_combined_collection(catalog, JAN, aoi)
    for img in images:
        assert img.band_names == ("SR_B1", "SR_B2", "SR_B3", "SR_B4", "SR_B5", "SR_B7", "QA_PIXEL")


def test_oli_is_harmonized_etm_is_not(catalog, aoi):
    by_id = {img.id: img for img in get_combined_collection(catalog, JAN, aoi)}
    assert float(by_id["LC08_jan"].band("SR_B3")[0, 0]) == pytest.approx((1000 + 22) / 0.9825)
    assert float(by_id["LT05_jan"].band("SR_B3")[0, 0]) == 900


def test_clouds_masked_before_merge(make_landsat, grid, aoi):
    qa = np.zeros(grid.shape)
    qa[0, 0] = 1 << 3
    catalog = InMemoryCatalog({LT05.collection_id: [make_landsat("2020-01-05", qa=qa)]})
    image = get_sensor_collection(catalog, LT05, JAN, aoi).first()
    assert image.band("SR_B3").mask[0, 0]
    assert not image.band("SR_B3").mask[1, 1]


def test_scale_factors_switch_harmonization_to_unit_reflectance(make_landsat):
    dn = 10000.0
    image = make_landsat("2020-01-05", red=dn, oli=True)
    out = prepare_landsat_image(image, LC08, HarmonizationConfig(dn_scale=10000.0), apply_scale=True)
    reflectance = dn * 0.0000275 - 0.2
    assert float(out.band("SR_B3")[0, 0]) == pytest.approx((reflectance + 0.0022) / 0.9825)


def test_images_outside_window_or_aoi_excluded(make_landsat, aoi):
    from shapely.geometry import box

    from rs_timeseries.geo import Aoi

    catalog = InMemoryCatalog({LT05.collection_id: [make_landsat("2020-02-01")]})
    assert get_sensor_collection(catalog, LT05, JAN, aoi).size() == 0

    elsewhere = Aoi(box(0, 0, 10, 10), "EPSG:32612")
    catalog = InMemoryCatalog({LT05.collection_id: [make_landsat("2020-01-05")]})
    assert get_sensor_collection(catalog, LT05, JAN, elsewhere).size() == 0


def test_select_priority_group_with_no_accepting_group():
    name, images = select_priority_group(
        [(group, ImageSequence()) for group in LANDSAT_PRIORITY[:1]],
    )
    assert name is None
    assert images.size() == 0
