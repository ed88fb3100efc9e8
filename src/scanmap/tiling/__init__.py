"""Tile generation for georeferenced rasters."""

from .manager import TileCommandError, TileRunner, TileSet, TilingManager, summarize_tiles

__all__ = ["TileCommandError", "TileRunner", "TileSet", "TilingManager", "summarize_tiles"]
