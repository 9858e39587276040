from rs_timeseries.raster.grid import GridSpec
from rs_timeseries.raster.image import RasterImage, reproject_image
from rs_timeseries.raster.sequence import ImageSequence

__all__ = ["GridSpec", "ImageSequence", "RasterImage", "reproject_image"]
