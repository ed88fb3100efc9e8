"""Discover rasters produced by an interactive georeferencing session."""

from __future__ import annotations

import csv
import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from scanmap.inventory.delegates import pixel_limit
from scanmap.inventory.scanner import DEFAULT_PATTERN, scan
from scanmap.logging import get_logger

LOGGER = get_logger(__name__)

# ModelPixelScale, ModelTiepoint, ModelTransformation.
GEOTIFF_TAGS = (33550, 33922, 34264)
WORLD_FILE_SUFFIXES = (".tfw", ".tifw", ".tiffw", ".jgw", ".jpgw", ".wld")


class GeoreferenceError(RuntimeError):
    """Raised when a raster's spatial reference cannot be read."""


@dataclass(frozen=True)
class GeoreferencedRaster:
    path: Path
    method: str
    gcp_count: Optional[int] = None


class GeoreferenceCatalog:
    """Index the spatially-referenced rasters placed in a folder."""

    def __init__(
        self,
        folder: Path,
        *,
        extension_pattern: str = DEFAULT_PATTERN,
        gdalinfo: str = "gdalinfo",
    ) -> None:
        self._folder = folder
        self._pattern = extension_pattern
        self._gdalinfo = gdalinfo
        self._unreferenced: List[Path] = []

    @property
    def unreferenced(self) -> List[Path]:
        return list(self._unreferenced)

    def scan(self) -> List[GeoreferencedRaster]:
        """Return georeferenced rasters in path order; others are logged and skipped."""

        rasters: List[GeoreferencedRaster] = []
        self._unreferenced = []
        for record in sorted(scan(self._folder, self._pattern), key=lambda item: item.path):
            path = self._folder / record.path
            method = _reference_method(path)
            if method is None:
                LOGGER.warning("raster has no spatial reference", extra={"path": str(path)})
                self._unreferenced.append(path)
                continue
            rasters.append(GeoreferencedRaster(path=path, method=method, gcp_count=read_gcp_count(path)))
        LOGGER.info(
            "georeferenced rasters discovered",
            extra={"folder": str(self._folder), "rasters": len(rasters), "unreferenced": len(self._unreferenced)},
        )
        return rasters

    def bounds(self, raster: Path) -> Tuple[float, float, float, float]:
        return raster_bounds(raster, gdalinfo=self._gdalinfo)


def raster_bounds(path: Path, *, gdalinfo: str = "gdalinfo") -> Tuple[float, float, float, float]:
    """Return ``(west, south, east, north)`` in WGS84 using ``gdalinfo -json``."""

    command = [gdalinfo, "-json", str(path)]
    try:
        result = subprocess.run(command, check=True, capture_output=True, text=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise GeoreferenceError(f"Command failed: {' '.join(command)}") from exc
    try:
        info = json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise GeoreferenceError(f"gdalinfo returned invalid JSON for {path}") from exc

    extent = info.get("wgs84Extent") or {}
    rings = extent.get("coordinates") or []
    points = [point for ring in rings for point in ring if len(point) >= 2]
    if not points:
        raise GeoreferenceError(f"No WGS84 extent reported for {path}")
    lons = [float(point[0]) for point in points]
    lats = [float(point[1]) for point in points]
    return (min(lons), min(lats), max(lons), max(lats))


def read_gcp_count(raster: Path) -> Optional[int]:
    """Count enabled control points in a QGIS ``.points`` file beside ``raster``."""

    for candidate in (raster.with_name(raster.name + ".points"), raster.with_suffix(".points")):
        if candidate.is_file():
            break
    else:
        return None

    with candidate.open("r", encoding="utf-8", newline="") as handle:
        lines = [line for line in handle if line.strip() and not line.startswith("#")]
    reader = csv.DictReader(lines)
    count = 0
    for row in reader:
        enabled = (row.get("enable") or "1").strip()
        if enabled != "0":
            count += 1
    return count


def _reference_method(path: Path) -> Optional[str]:
    if _has_geotiff_tags(path):
        return "geotiff"
    for suffix in WORLD_FILE_SUFFIXES:
        if path.with_suffix(suffix).is_file() or path.with_suffix(suffix.upper()).is_file():
            return "worldfile"
    if path.with_name(path.name + ".aux.xml").is_file():
        return "auxxml"
    return None


def _has_geotiff_tags(path: Path) -> bool:
    if path.suffix.lower() not in {".tif", ".tiff"}:
        return False
    try:
        with pixel_limit(None), Image.open(path) as image:
            tags = getattr(image, "tag_v2", None)
            return tags is not None and any(tag in tags for tag in GEOTIFF_TAGS)
    except (UnidentifiedImageError, OSError):
        return False
