"""Dataclasses describing core scanmap entities."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

BYTES_PER_MB = 1_000_000


def bytes_to_mb(size_bytes: int) -> float:
    """Convert a byte count to decimal megabytes."""

    return size_bytes / BYTES_PER_MB


class Stage(str, Enum):
    """Derivative stages a raster can pass through."""

    RESIZE = "resize"
    REENCODE = "reencode"


class StageStatus(str, Enum):
    NOT_RUN = "not_run"
    FAILED = "failed"
    SUCCEEDED = "succeeded"


class FailureKind(str, Enum):
    """Why an image delegate could not produce a derivative."""

    MISSING_SOURCE = "missing_source"
    UNSUPPORTED_FORMAT = "unsupported_format"
    TOOL_ERROR = "tool_error"


@dataclass(frozen=True)
class DelegateFailure:
    kind: FailureKind
    message: str


@dataclass(frozen=True)
class DelegateResult:
    """Outcome of a single resize or re-encode invocation."""

    source: Path
    output: Optional[Path] = None
    size_bytes: Optional[int] = None
    failure: Optional[DelegateFailure] = None
    reused: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None and self.output is not None

    @classmethod
    def failed(cls, source: Path, kind: FailureKind, message: str) -> "DelegateResult":
        return cls(source=source, failure=DelegateFailure(kind=kind, message=message))


@dataclass(frozen=True)
class FileRecord:
    """One discovered raster file and its optional derivatives.

    ``path`` is relative to the scanned directory. Derivative fields stay
    ``None`` until the matching stage runs; a failed stage leaves the path
    and size empty and records the failure instead.
    """

    path: str
    original_size_mb: float
    resized_path: Optional[str] = None
    resized_size_mb: Optional[float] = None
    jpeg_path: Optional[str] = None
    jpeg_size_mb: Optional[float] = None
    resized_error: Optional[DelegateFailure] = None
    jpeg_error: Optional[DelegateFailure] = None

    @property
    def name(self) -> str:
        return Path(self.path).name

    def status(self, stage: Stage) -> StageStatus:
        if stage is Stage.RESIZE:
            size, error = self.resized_size_mb, self.resized_error
        else:
            size, error = self.jpeg_size_mb, self.jpeg_error
        if error is not None:
            return StageStatus.FAILED
        if size is None:
            return StageStatus.NOT_RUN
        return StageStatus.SUCCEEDED

    def derivative_size_mb(self, stage: Stage) -> Optional[float]:
        return self.resized_size_mb if stage is Stage.RESIZE else self.jpeg_size_mb

    def with_result(self, stage: Stage, result: DelegateResult) -> "FileRecord":
        """Return a copy of the record carrying ``result`` for ``stage``."""

        if result.ok:
            size_mb = bytes_to_mb(result.size_bytes or 0)
            output = str(result.output)
            if stage is Stage.RESIZE:
                return replace(self, resized_path=output, resized_size_mb=size_mb, resized_error=None)
            return replace(self, jpeg_path=output, jpeg_size_mb=size_mb, jpeg_error=None)
        if stage is Stage.RESIZE:
            return replace(self, resized_path=None, resized_size_mb=None, resized_error=result.failure)
        return replace(self, jpeg_path=None, jpeg_size_mb=None, jpeg_error=result.failure)


@dataclass(frozen=True)
class StageSummary:
    succeeded: int = 0
    failed: int = 0
    not_run: int = 0


@dataclass(frozen=True)
class CompressionReport:
    """Aggregate size statistics across an inventory."""

    file_count: int
    original_total_mb: float
    resized_total_mb: float
    jpeg_total_mb: float
    resized_ratio: Optional[float]
    jpeg_ratio: Optional[float]
    resized: StageSummary = field(default_factory=StageSummary)
    reencoded: StageSummary = field(default_factory=StageSummary)


@dataclass
class CompressionConfig:
    """Options that control the resize and re-encode stages."""

    extension_pattern: str = r"\.(jpe?g|tiff?)$"
    max_dimension: int = 1000
    target_format: str = "JPEG"
    quality: int = 75
    reencode_source: str = "original"
    reuse_existing: bool = False
    fail_fast: bool = False
    max_image_pixels: Optional[int] = None
    resized_subdir: str = "resized"
    reencoded_subdir: str = "reencoded"


@dataclass
class BoundaryConfig:
    """Geodata query parameters for the boundary overlay."""

    area: Optional[str] = None
    name: Optional[str] = None
    key: str = "name"
    overpass_url: str = "https://overpass-api.de/api/interpreter"
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    timeout_seconds: int = 60
    output: str = "boundaries.geojson"


@dataclass
class GeoreferenceConfig:
    folder: str = "georeferenced"


@dataclass
class TilingConfig:
    """Parameters forwarded to gdal2tiles."""

    min_zoom: int = 12
    max_zoom: int = 17
    resampling: str = "average"
    xyz: bool = True
    webviewer: str = "leaflet"
    processes: int = 1
    tile_format: str = "png"


@dataclass
class PublishingConfig:
    destination: Optional[str] = None
    base_url: Optional[str] = None


@dataclass
class WebMapConfig:
    title: str = "Historic imagery"
    zoom: int = 14
    basemap_url: str = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
    attribution: str = "&copy; OpenStreetMap contributors"
    output: str = "index.html"


@dataclass
class TileMetadata:
    """Metadata embedded in TileJSON outputs and the web map."""

    name: str
    description: str
    tiles: Tuple[str, ...]
    minzoom: int
    maxzoom: int
    bounds: Tuple[float, float, float, float] = (-180.0, -85.0511, 180.0, 85.0511)
    attribution: str = ""
    format: str = "png"
    scheme: str = "xyz"
    version: str = "1.0.0"

    @property
    def center(self) -> Tuple[float, float, int]:
        west, south, east, north = self.bounds
        return ((west + east) / 2.0, (south + north) / 2.0, self.minzoom + (self.maxzoom - self.minzoom) // 2)
