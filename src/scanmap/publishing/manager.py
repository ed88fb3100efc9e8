"""Publish tile trees to static hosting and describe them with TileJSON."""

from __future__ import annotations

import json
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from scanmap.core.models import TileMetadata
from scanmap.logging import get_logger
from scanmap.tiling.manager import TileCommandError, TileRunner

LOGGER = get_logger(__name__)

# host:path or user@host:path, but not a Windows drive letter.
_REMOTE_PATTERN = re.compile(r"^(?:[\w.-]+@)?[\w.-]{2,}:.+$")


class PublishError(RuntimeError):
    """Raised when a tile tree cannot be copied to its destination."""


@dataclass(frozen=True)
class PublishResult:
    source: Path
    destination: str
    remote: bool


def is_remote(destination: str) -> bool:
    if "://" in destination:
        raise PublishError(f"Unsupported destination URL: {destination}; use a directory or host:path")
    return bool(_REMOTE_PATTERN.match(destination))


def tile_url_template(base_url: str, tileset_name: str, extension: str = "png") -> str:
    """Return the ``{z}/{x}/{y}`` URL under which a published tileset is served."""

    return f"{base_url.rstrip('/')}/{tileset_name.strip('/')}/{{z}}/{{x}}/{{y}}.{extension.lstrip('.')}"


class PublishingManager:
    """Copy generated tiles to a hosting location reachable over HTTP."""

    def __init__(self, *, rsync: str = "rsync", dry_run: bool = False) -> None:
        self._rsync = rsync
        self._dry_run = dry_run
        self._runner = TileRunner(dry_run=dry_run)

    def publish(self, tile_dir: Path, destination: str) -> PublishResult:
        """Copy ``tile_dir`` to ``destination`` (a directory or ``host:path``)."""

        if not tile_dir.is_dir():
            raise PublishError(f"Tile directory not found: {tile_dir}")

        if is_remote(destination):
            target = destination.rstrip("/") + "/" + tile_dir.name
            command = [self._rsync, "-a", "--delete", f"{tile_dir}/", f"{target}/"]
            try:
                self._runner.run(command, description="upload tiles via rsync")
            except TileCommandError as exc:
                raise PublishError(str(exc)) from exc
            return PublishResult(source=tile_dir, destination=target, remote=True)

        target_path = Path(destination) / tile_dir.name
        LOGGER.info(
            "publishing step",
            extra={"description": "copy tiles to hosting directory", "source": str(tile_dir), "target": str(target_path)},
        )
        if not self._dry_run:
            try:
                shutil.copytree(tile_dir, target_path, dirs_exist_ok=True)
            except (OSError, shutil.Error) as exc:
                raise PublishError(f"Failed to copy {tile_dir} to {target_path}: {exc}") from exc
        return PublishResult(source=tile_dir, destination=str(target_path), remote=False)

    def generate_tilejson(self, metadata: TileMetadata, destination: Path) -> Path:
        payload = {
            "tilejson": "3.0.0",
            "name": metadata.name,
            "description": metadata.description,
            "version": metadata.version,
            "attribution": metadata.attribution,
            "scheme": metadata.scheme,
            "tiles": list(metadata.tiles),
            "minzoom": metadata.minzoom,
            "maxzoom": metadata.maxzoom,
            "bounds": list(metadata.bounds),
            "center": list(metadata.center),
            "format": metadata.format.lower(),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        LOGGER.info("publishing step", extra={"description": "write TileJSON metadata", "path": str(destination)})
        if not self._dry_run:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return destination
