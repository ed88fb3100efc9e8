"""Interactive web map composition."""

from .builder import TileLayer, VectorOverlay, WebMapBuilder, layer_from_tilejson, load_overlay

__all__ = ["TileLayer", "VectorOverlay", "WebMapBuilder", "layer_from_tilejson", "load_overlay"]
