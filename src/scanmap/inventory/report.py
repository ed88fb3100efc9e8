"""Compression statistics and report persistence."""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from scanmap.core.models import CompressionReport, FileRecord, Stage, StageStatus, StageSummary

from .scanner import scan


def report(records: Iterable[FileRecord]) -> CompressionReport:
    """Summarize original and derivative sizes across ``records``.

    Derivative totals skip records whose stage did not run or failed. Each
    ratio divides the originals of the records that *do* have a derivative
    by the derivative total, so missing entries are excluded from both sides.
    """

    rows = list(records)
    resized_total, resized_ratio = _stage_totals(rows, Stage.RESIZE)
    jpeg_total, jpeg_ratio = _stage_totals(rows, Stage.REENCODE)
    return CompressionReport(
        file_count=len(rows),
        original_total_mb=sum(row.original_size_mb for row in rows),
        resized_total_mb=resized_total,
        jpeg_total_mb=jpeg_total,
        resized_ratio=resized_ratio,
        jpeg_ratio=jpeg_ratio,
        resized=_stage_summary(rows, Stage.RESIZE),
        reencoded=_stage_summary(rows, Stage.REENCODE),
    )


def _stage_totals(rows: Sequence[FileRecord], stage: Stage) -> Tuple[float, Optional[float]]:
    populated = [row for row in rows if row.derivative_size_mb(stage) is not None]
    derivative_total = sum(row.derivative_size_mb(stage) or 0.0 for row in populated)
    original_total = sum(row.original_size_mb for row in populated)
    ratio = original_total / derivative_total if derivative_total > 0 else None
    return derivative_total, ratio


def _stage_summary(rows: Sequence[FileRecord], stage: Stage) -> StageSummary:
    statuses = [row.status(stage) for row in rows]
    return StageSummary(
        succeeded=statuses.count(StageStatus.SUCCEEDED),
        failed=statuses.count(StageStatus.FAILED),
        not_run=statuses.count(StageStatus.NOT_RUN),
    )


def verify_derivatives(
    records: Iterable[FileRecord],
    derivative_dir: Path,
    *,
    extension_pattern: str = r"\.(jpe?g|tiff?|png|webp)$",
) -> List[Tuple[FileRecord, float]]:
    """Re-scan ``derivative_dir`` and return derivatives larger than their original.

    A derivative belongs to the record with the same file name (resize stage),
    the record whose full name it extends (``sheet.tif.jpg``), or the only
    record sharing its stem (``sheet.tif`` -> ``sheet.jpg``).
    """

    rows = list(records)
    by_name = {row.name.lower(): row for row in rows}
    by_stem: Dict[str, List[FileRecord]] = {}
    for row in rows:
        by_stem.setdefault(Path(row.path).stem.lower(), []).append(row)

    derived: Dict[str, float] = {}
    for item in scan(derivative_dir, extension_pattern):
        name = Path(item.path).name.lower()
        stem = Path(item.path).stem.lower()
        owner = by_name.get(name) or by_name.get(stem)
        if owner is None and len(by_stem.get(stem, [])) == 1:
            owner = by_stem[stem][0]
        if owner is not None:
            derived[owner.path] = item.original_size_mb

    oversized: List[Tuple[FileRecord, float]] = []
    for record in rows:
        size = derived.get(record.path)
        if size is not None and size > record.original_size_mb:
            oversized.append((record, size))
    return oversized


def report_to_dict(summary: CompressionReport, records: Iterable[FileRecord]) -> Dict[str, object]:
    return {
        "summary": asdict(summary),
        "files": [_record_to_dict(record) for record in records],
    }


def write_report(summary: CompressionReport, records: Iterable[FileRecord], path: Path, *, indent: int = 2) -> Path:
    payload = report_to_dict(summary, records)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=indent, default=str), encoding="utf-8")
    return path


def _record_to_dict(record: FileRecord) -> Dict[str, object]:
    payload: Dict[str, object] = {
        "path": record.path,
        "original_size_mb": record.original_size_mb,
        "resized_path": record.resized_path,
        "resized_size_mb": record.resized_size_mb,
        "jpeg_path": record.jpeg_path,
        "jpeg_size_mb": record.jpeg_size_mb,
        "resize_status": record.status(Stage.RESIZE).value,
        "reencode_status": record.status(Stage.REENCODE).value,
    }
    for key, failure in (("resize_error", record.resized_error), ("reencode_error", record.jpeg_error)):
        if failure is not None:
            payload[key] = {"kind": failure.kind.value, "message": failure.message}
    return payload
