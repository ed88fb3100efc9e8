"""Configuration loading utilities for scanmap."""

from .loader import ConfigLoader, PipelineConfig, load_config

__all__ = ["ConfigLoader", "PipelineConfig", "load_config"]
