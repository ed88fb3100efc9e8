"""Configuration management with YAML and JSON support."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

import yaml

from scanmap.core.models import (
    BoundaryConfig,
    CompressionConfig,
    GeoreferenceConfig,
    PublishingConfig,
    TilingConfig,
    WebMapConfig,
)

SectionT = TypeVar("SectionT")


@dataclass
class PipelineConfig:
    """Top-level configuration object for the scanmap pipeline."""

    source_dir: Path = Path("scans")
    output_dir: Path = Path("output")
    compression: CompressionConfig = field(default_factory=CompressionConfig)
    boundaries: BoundaryConfig = field(default_factory=BoundaryConfig)
    georeference: GeoreferenceConfig = field(default_factory=GeoreferenceConfig)
    tiling: TilingConfig = field(default_factory=TilingConfig)
    publishing: PublishingConfig = field(default_factory=PublishingConfig)
    webmap: WebMapConfig = field(default_factory=WebMapConfig)

    def resolve_relative_paths(self, base_dir: Path) -> None:
        """Resolve relative directories against the provided base directory."""

        if not self.source_dir.is_absolute():
            self.source_dir = base_dir / self.source_dir
        if not self.output_dir.is_absolute():
            self.output_dir = base_dir / self.output_dir

    @property
    def georeference_dir(self) -> Path:
        folder = Path(self.georeference.folder)
        return folder if folder.is_absolute() else self.output_dir / folder


class ConfigLoader:
    """Load pipeline configuration files in YAML or JSON format."""

    def __init__(self, base_dir: Optional[Path] = None) -> None:
        self._base_dir = base_dir or Path.cwd()

    def load(self, path: Path | str) -> PipelineConfig:
        """Parse a configuration file and return a populated dataclass."""

        config_path = self._resolve_path(Path(path))
        payload = self._load_payload(config_path)
        config = self._build_config(payload)
        config.resolve_relative_paths(config_path.parent)
        return config

    def _resolve_path(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return (self._base_dir / path).resolve()

    def _load_payload(self, path: Path) -> Dict[str, Any]:
        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as handle:
                payload = yaml.safe_load(handle) or {}
        elif suffix == ".json":
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle) or {}
        else:
            raise ValueError(f"Unsupported configuration format: {suffix}")
        if not isinstance(payload, dict):
            raise ValueError("configuration root must be a mapping")
        return payload

    def _build_config(self, payload: Dict[str, Any]) -> PipelineConfig:
        known = {item.name for item in fields(PipelineConfig)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")

        compression = _section(payload, "compression", CompressionConfig)
        for key in ("max_dimension", "quality"):
            value = getattr(compression, key)
            setattr(compression, key, int(value))
        if compression.max_image_pixels is not None:
            compression.max_image_pixels = int(compression.max_image_pixels)

        boundaries = _section(payload, "boundaries", BoundaryConfig)
        boundaries.timeout_seconds = int(boundaries.timeout_seconds)

        tiling = _section(payload, "tiling", TilingConfig)
        for key in ("min_zoom", "max_zoom", "processes"):
            setattr(tiling, key, int(getattr(tiling, key)))

        webmap = _section(payload, "webmap", WebMapConfig)
        webmap.zoom = int(webmap.zoom)

        return PipelineConfig(
            source_dir=Path(payload.get("source_dir", "scans")),
            output_dir=Path(payload.get("output_dir", "output")),
            compression=compression,
            boundaries=boundaries,
            georeference=_section(payload, "georeference", GeoreferenceConfig),
            tiling=tiling,
            publishing=_section(payload, "publishing", PublishingConfig),
            webmap=webmap,
        )


def _section(payload: Dict[str, Any], name: str, cls: Type[SectionT]) -> SectionT:
    section = payload.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name} section must be a mapping")
    allowed = {item.name for item in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(section) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in {name} section: {', '.join(unknown)}")
    return cls(**section)


def load_config(path: Path | str, *, base_dir: Optional[Path] = None) -> PipelineConfig:
    """Convenience wrapper around :class:`ConfigLoader`."""

    loader = ConfigLoader(base_dir=base_dir)
    return loader.load(path)
