"""scanmap: scanned rasters to tiled interactive web maps."""

from __future__ import annotations

import importlib
from typing import Any

__all__ = [
    "BoundaryClient",
    "CompressionReport",
    "FileRecord",
    "GeoreferenceCatalog",
    "InventoryManager",
    "PillowImageDelegate",
    "PipelineConfig",
    "PublishingManager",
    "TilingManager",
    "WebMapBuilder",
    "load_config",
    "nth_largest",
    "report",
    "scan",
]

_MODULE_MAP = {
    "BoundaryClient": ("scanmap.acquisition", "BoundaryClient"),
    "CompressionReport": ("scanmap.core", "CompressionReport"),
    "FileRecord": ("scanmap.core", "FileRecord"),
    "GeoreferenceCatalog": ("scanmap.georeference", "GeoreferenceCatalog"),
    "InventoryManager": ("scanmap.inventory", "InventoryManager"),
    "PillowImageDelegate": ("scanmap.inventory", "PillowImageDelegate"),
    "PipelineConfig": ("scanmap.config", "PipelineConfig"),
    "PublishingManager": ("scanmap.publishing", "PublishingManager"),
    "TilingManager": ("scanmap.tiling", "TilingManager"),
    "WebMapBuilder": ("scanmap.webmap", "WebMapBuilder"),
    "load_config": ("scanmap.config", "load_config"),
    "nth_largest": ("scanmap.inventory", "nth_largest"),
    "report": ("scanmap.inventory", "report"),
    "scan": ("scanmap.inventory", "scan"),
}


def __getattr__(name: str) -> Any:
    if name not in _MODULE_MAP:
        raise AttributeError(f"module 'scanmap' has no attribute '{name}'")
    module_name, attr = _MODULE_MAP[name]
    module = importlib.import_module(module_name)
    return getattr(module, attr)
