"""Tile pyramid generation via GDAL's gdal2tiles utility."""

from __future__ import annotations

import importlib.util
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from scanmap.core.models import TilingConfig
from scanmap.logging import get_logger

LOGGER = get_logger(__name__)

RESAMPLING_METHODS = (
    "average",
    "near",
    "bilinear",
    "cubic",
    "cubicspline",
    "lanczos",
    "antialias",
    "mode",
    "max",
    "min",
    "med",
    "q1",
    "q3",
)
WEBVIEWERS = ("all", "google", "openlayers", "leaflet", "mapml", "none")
TILE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp"}


class TileCommandError(RuntimeError):
    """Raised when an external command exits with a non-zero code."""


class TileRunner:
    """Execute external commands and propagate failures with context."""

    def __init__(self, *, dry_run: bool = False) -> None:
        self._dry_run = dry_run

    def run(self, command: Sequence[str], *, description: str) -> None:
        LOGGER.info("tiling step", extra={"description": description, "command": " ".join(command)})
        if self._dry_run:
            return
        try:
            proc = subprocess.run(list(command), check=True, text=True, capture_output=True)
        except FileNotFoundError as exc:
            raise TileCommandError(f"Executable not found: {command[0]}") from exc
        except subprocess.CalledProcessError as exc:
            msg = f"Command failed: {' '.join(command)}"
            if exc.stdout:
                msg += f"\n--- stdout ---\n{exc.stdout}"
            if exc.stderr:
                msg += f"\n--- stderr ---\n{exc.stderr}"
            raise TileCommandError(msg) from exc
        if proc.stdout:
            LOGGER.debug(proc.stdout.strip())
        if proc.stderr:
            LOGGER.debug(proc.stderr.strip())


@dataclass
class TileSet:
    """Directory tree produced by one gdal2tiles run."""

    source: Path
    directory: Path
    min_zoom: int
    max_zoom: int
    scheme: str
    tile_format: str
    viewer: Optional[Path] = None
    tile_counts: Dict[int, int] = field(default_factory=dict)

    @property
    def total_tiles(self) -> int:
        return sum(self.tile_counts.values())


class TilingManager:
    """Generate XYZ/TMS tile pyramids from georeferenced rasters."""

    def __init__(
        self,
        config: Optional[TilingConfig] = None,
        *,
        output_dir: Path,
        dry_run: bool = False,
    ) -> None:
        self._config = config or TilingConfig()
        self._output_dir = output_dir
        self._dry_run = dry_run
        self._runner = TileRunner(dry_run=dry_run)
        self._gdal2tiles_cmd = self._resolve_gdal2tiles()
        self._output_dir.mkdir(parents=True, exist_ok=True)

    def generate_tiles(
        self,
        source: Path,
        *,
        min_zoom: Optional[int] = None,
        max_zoom: Optional[int] = None,
        resampling: Optional[str] = None,
        output_dir: Optional[Path] = None,
        xyz: Optional[bool] = None,
        webviewer: Optional[str] = None,
        processes: Optional[int] = None,
    ) -> TileSet:
        """Run gdal2tiles over ``source`` and return the resulting tile set."""

        low = self._config.min_zoom if min_zoom is None else min_zoom
        high = self._config.max_zoom if max_zoom is None else max_zoom
        if low < 0 or high < low:
            raise ValueError(f"Invalid zoom range: {low}-{high}")
        method = (resampling or self._config.resampling).lower()
        if method not in RESAMPLING_METHODS:
            raise ValueError(f"Unsupported resampling method for gdal2tiles: {method}")
        viewer = (webviewer or self._config.webviewer).lower()
        if viewer not in WEBVIEWERS:
            raise ValueError(f"Unsupported web viewer for gdal2tiles: {viewer}")
        use_xyz = self._config.xyz if xyz is None else xyz
        worker_count = max(1, processes or self._config.processes)
        tile_format = self._config.tile_format.lower()
        destination = output_dir or (self._output_dir / source.stem)

        if self._gdal2tiles_cmd is None and not self._dry_run:
            raise TileCommandError("gdal2tiles not found; install GDAL command-line utilities")

        command = list(self._gdal2tiles_cmd or ["gdal2tiles"])
        command.extend(
            [
                f"--zoom={low}-{high}",
                f"--resampling={method}",
                f"--webviewer={viewer}",
                f"--processes={worker_count}",
                f"--tiledriver={tile_format.upper()}",
            ]
        )
        if use_xyz:
            command.append("--xyz")
        command.extend([str(source), str(destination)])

        start = time.perf_counter()
        self._runner.run(command, description="generate tile pyramid via gdal2tiles")
        LOGGER.debug("gdal2tiles finished", extra={"duration_s": f"{time.perf_counter() - start:.2f}"})

        tileset = TileSet(
            source=source,
            directory=destination,
            min_zoom=low,
            max_zoom=high,
            scheme="xyz" if use_xyz else "tms",
            tile_format=tile_format,
            viewer=_viewer_page(destination, viewer),
        )
        if not self._dry_run:
            tileset.tile_counts = summarize_tiles(destination)
            LOGGER.info(
                "tile pyramid ready",
                extra={"directory": str(destination), "tiles": tileset.total_tiles, "zooms": f"{low}-{high}"},
            )
        return tileset

    def _resolve_gdal2tiles(self) -> Optional[List[str]]:
        for name in ("gdal2tiles", "gdal2tiles.py"):
            candidate = shutil.which(name)
            if candidate:
                return [candidate]
        if importlib.util.find_spec("osgeo_utils") is not None:
            return [sys.executable, "-m", "osgeo_utils.gdal2tiles"]
        return None


def summarize_tiles(directory: Path) -> Dict[int, int]:
    """Count tile images per zoom level in a ``{z}/{x}/{y}`` tree."""

    counts: Dict[int, int] = {}
    if not directory.is_dir():
        return counts
    for zoom_dir in directory.iterdir():
        if not zoom_dir.is_dir() or not zoom_dir.name.isdigit():
            continue
        total = sum(
            1
            for tile in zoom_dir.glob("*/*")
            if tile.is_file() and tile.suffix.lower() in TILE_SUFFIXES
        )
        counts[int(zoom_dir.name)] = total
    return dict(sorted(counts.items()))


_VIEWER_PAGES = {
    "all": "leaflet.html",
    "google": "googlemaps.html",
    "leaflet": "leaflet.html",
    "mapml": "mapml.mapml",
    "openlayers": "openlayers.html",
}


def _viewer_page(destination: Path, viewer: str) -> Optional[Path]:
    page = _VIEWER_PAGES.get(viewer)
    return destination / page if page else None
