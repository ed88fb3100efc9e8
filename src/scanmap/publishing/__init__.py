"""Static hosting publication for generated tiles."""

from .manager import PublishError, PublishingManager, PublishResult, is_remote, tile_url_template

__all__ = ["PublishError", "PublishingManager", "PublishResult", "is_remote", "tile_url_template"]
