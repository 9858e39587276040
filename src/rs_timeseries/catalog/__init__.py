from rs_timeseries.catalog.geotiff import GeoTiffCatalog, read_geotiff
from rs_timeseries.catalog.memory import ImageCatalog, InMemoryCatalog

__all__ = ["GeoTiffCatalog", "ImageCatalog", "InMemoryCatalog", "read_geotiff"]
