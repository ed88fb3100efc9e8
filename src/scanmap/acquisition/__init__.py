"""Vector boundary acquisition from public geodata services."""

from scanmap.acquisition.overpass import (
    BoundaryClient,
    BoundaryCollection,
    BoundaryFeature,
    BoundaryQueryError,
    BoundingBox,
    build_query,
    parse_elements,
    write_geojson,
)

__all__ = [
    "BoundaryClient",
    "BoundaryCollection",
    "BoundaryFeature",
    "BoundaryQueryError",
    "BoundingBox",
    "build_query",
    "parse_elements",
    "write_geojson",
]
