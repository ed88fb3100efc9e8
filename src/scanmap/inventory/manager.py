"""Inventory orchestration: scan, derive, and report on raster folders."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from scanmap.core.models import (
    CompressionConfig,
    CompressionReport,
    DelegateFailure,
    DelegateResult,
    FailureKind,
    FileRecord,
    Stage,
)
from scanmap.logging import get_logger

from .base import ImageDelegate
from .delegates import PillowImageDelegate, extension_for_format, normalize_format
from .report import report
from .scanner import derivative_names, scan

LOGGER = get_logger(__name__)


class DelegateError(RuntimeError):
    """Raised in fail-fast mode when a delegate cannot produce a derivative."""

    def __init__(self, path: str, stage: Stage, failure: DelegateFailure) -> None:
        super().__init__(f"{stage.value} failed for {path}: {failure.kind.value}: {failure.message}")
        self.path = path
        self.stage = stage
        self.failure = failure


class InventoryManager:
    """Run the resize and re-encode stages over a scanned inventory."""

    def __init__(
        self,
        source_dir: Path,
        *,
        output_dir: Path,
        config: Optional[CompressionConfig] = None,
        delegate: Optional[ImageDelegate] = None,
    ) -> None:
        self._source_dir = source_dir
        self._config = config or CompressionConfig()
        self._resized_dir = output_dir / self._config.resized_subdir
        self._reencoded_dir = output_dir / self._config.reencoded_subdir
        self._delegate = delegate or PillowImageDelegate(max_image_pixels=self._config.max_image_pixels)

    @property
    def resized_dir(self) -> Path:
        return self._resized_dir

    @property
    def reencoded_dir(self) -> Path:
        return self._reencoded_dir

    def scan(self) -> List[FileRecord]:
        return scan(self._source_dir, self._config.extension_pattern)

    def resize_all(self, records: Iterable[FileRecord], max_dimension: Optional[int] = None) -> List[FileRecord]:
        """Return new records with the resized derivative populated.

        Each output keeps the original file name inside the resized directory
        and is overwritten on every run unless ``reuse_existing`` applies.
        """

        dimension = max_dimension if max_dimension is not None else self._config.max_dimension
        if dimension < 1:
            raise ValueError("max_dimension must be a positive pixel count")
        self._resized_dir.mkdir(parents=True, exist_ok=True)
        params = {"stage": Stage.RESIZE.value, "max_dimension": dimension}

        updated: List[FileRecord] = []
        for record in records:
            source = self._source_dir / record.path
            destination = self._resized_dir / record.name
            result = self._cached_result(source, destination, params)
            if result is None:
                result = self._delegate.resize(source, destination, dimension)
                self._after_invoke(destination, result, params)
            updated.append(self._apply(record, Stage.RESIZE, result))
        return updated

    def reencode_all(
        self,
        records: Iterable[FileRecord],
        target_format: Optional[str] = None,
        quality: Optional[int] = None,
    ) -> List[FileRecord]:
        """Return new records with the re-encoded derivative populated."""

        fmt = normalize_format(target_format or self._config.target_format)
        quality_value = quality if quality is not None else self._config.quality
        if not 0 <= quality_value <= 100:
            raise ValueError("quality must be between 0 and 100")
        extension = extension_for_format(fmt)
        self._reencoded_dir.mkdir(parents=True, exist_ok=True)
        params = {"stage": Stage.REENCODE.value, "format": fmt, "quality": quality_value}

        rows = list(records)
        names = derivative_names((record.path for record in rows), extension)
        updated: List[FileRecord] = []
        for record in rows:
            destination = self._reencoded_dir / names[record.path]
            source = self._reencode_source(record)
            if source is None:
                result = DelegateResult.failed(
                    self._source_dir / record.path,
                    FailureKind.MISSING_SOURCE,
                    "resized derivative not available",
                )
            else:
                result = self._cached_result(source, destination, params)
                if result is None:
                    result = self._delegate.reencode(source, destination, fmt, quality_value)
                    self._after_invoke(destination, result, params)
            updated.append(self._apply(record, Stage.REENCODE, result))
        return updated

    def report(self, records: Iterable[FileRecord]) -> CompressionReport:
        return report(records)

    def _reencode_source(self, record: FileRecord) -> Optional[Path]:
        mode = self._config.reencode_source.lower()
        if mode == "original":
            return self._source_dir / record.path
        if mode == "resized":
            return Path(record.resized_path) if record.resized_path else None
        raise ValueError(f"Unsupported reencode_source: {self._config.reencode_source}")

    def _apply(self, record: FileRecord, stage: Stage, result: DelegateResult) -> FileRecord:
        if result.ok:
            LOGGER.info(
                "derivative written",
                extra={
                    "stage": stage.value,
                    "path": record.path,
                    "output": str(result.output),
                    "size_bytes": result.size_bytes,
                    "reused": result.reused,
                },
            )
        else:
            failure = result.failure or DelegateFailure(FailureKind.TOOL_ERROR, "delegate returned no output")
            LOGGER.warning(
                "derivative failed",
                extra={"stage": stage.value, "path": record.path, "kind": failure.kind.value, "error": failure.message},
            )
            if self._config.fail_fast:
                raise DelegateError(record.path, stage, failure)
            result = DelegateResult(source=result.source, failure=failure)
        return record.with_result(stage, result)

    def _cached_result(self, source: Path, destination: Path, params: Dict[str, Any]) -> Optional[DelegateResult]:
        if not self._config.reuse_existing:
            return None
        meta_path = _metadata_path_for_output(destination)
        if not destination.exists() or not meta_path.exists() or not source.exists():
            return None
        try:
            cached = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        if cached.get("params") != params or cached.get("md5") != _hash_file(source):
            return None
        return DelegateResult(source=source, output=destination, size_bytes=destination.stat().st_size, reused=True)

    def _after_invoke(self, destination: Path, result: DelegateResult, params: Dict[str, Any]) -> None:
        meta_path = _metadata_path_for_output(destination)
        if not self._config.reuse_existing or not result.ok:
            # The output was rewritten or lost, so an older sidecar no longer describes it.
            meta_path.unlink(missing_ok=True)
            return
        payload = {"source": str(result.source.resolve()), "md5": _hash_file(result.source), "params": params}
        try:
            meta_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("failed to persist hash metadata", extra={"path": str(meta_path), "error": str(exc)})


def _metadata_path_for_output(output: Path) -> Path:
    return output.with_suffix(output.suffix + ".hash.json")


def _hash_file(path: Path) -> str:
    checksum = hashlib.md5()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            checksum.update(chunk)
    return checksum.hexdigest()
