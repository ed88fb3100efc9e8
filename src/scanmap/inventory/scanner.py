"""Directory scanning and size ordering for raster inventories."""

from __future__ import annotations

import re
from collections import Counter
from pathlib import Path
from typing import Dict, Iterable, List

from scanmap.core.models import FileRecord, bytes_to_mb
from scanmap.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_PATTERN = r"\.(jpe?g|tiff?)$"


def scan(directory: Path | str, extension_pattern: str = DEFAULT_PATTERN) -> List[FileRecord]:
    """Return records for the raster files directly inside ``directory``.

    File names are matched case-insensitively against ``extension_pattern``.
    A missing or unreadable directory raises ``OSError``; a directory with no
    matching files yields an empty list. The result follows
    :func:`order_by_size`.
    """

    root = Path(directory)
    matcher = re.compile(extension_pattern, re.IGNORECASE)
    records: List[FileRecord] = []
    for path in root.iterdir():
        if not path.is_file() or not matcher.search(path.name):
            continue
        records.append(FileRecord(path=path.name, original_size_mb=bytes_to_mb(path.stat().st_size)))

    if not records:
        LOGGER.info("no raster files matched", extra={"directory": str(root), "pattern": extension_pattern})
        return []

    ordered = order_by_size(records)
    LOGGER.info(
        "scanned raster inventory",
        extra={
            "directory": str(root),
            "files": len(ordered),
            "total_mb": round(sum(record.original_size_mb for record in ordered), 3),
        },
    )
    return ordered


def order_by_size(records: Iterable[FileRecord]) -> List[FileRecord]:
    """Order records largest first; equal sizes fall back to path order."""

    return sorted(records, key=lambda record: (-record.original_size_mb, record.path))


def nth_largest(records: Iterable[FileRecord], rank: int) -> FileRecord:
    """Return the record at 1-based ``rank`` in :func:`order_by_size` order."""

    ordered = order_by_size(records)
    if rank < 1 or rank > len(ordered):
        raise IndexError(f"rank {rank} outside inventory of {len(ordered)} files")
    return ordered[rank - 1]


def derivative_names(paths: Iterable[str], extension: str) -> Dict[str, str]:
    """Map each path to a unique derivative file name ending in ``extension``.

    ``sheet.tif`` becomes ``sheet.jpg``. When several paths would land on the
    same name (``sheet.tif`` and ``sheet.jpg``), each keeps its full name
    instead: ``sheet.tif.jpg`` and ``sheet.jpg.jpg``. Names are compared
    case-insensitively.
    """

    names = {path: f"{Path(path).stem}{extension}" for path in paths}
    while True:
        counts = Counter(name.lower() for name in names.values())
        clashing = [
            path
            for path, name in names.items()
            if counts[name.lower()] > 1 and name != f"{Path(path).name}{extension}"
        ]
        if not clashing:
            return names
        for path in clashing:
            names[path] = f"{Path(path).name}{extension}"
