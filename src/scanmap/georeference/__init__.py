"""Discovery of rasters georeferenced in an external GIS application."""

from .catalog import (
    GeoreferenceCatalog,
    GeoreferencedRaster,
    GeoreferenceError,
    raster_bounds,
    read_gcp_count,
)

__all__ = [
    "GeoreferenceCatalog",
    "GeoreferencedRaster",
    "GeoreferenceError",
    "raster_bounds",
    "read_gcp_count",
]
