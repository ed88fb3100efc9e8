from pathlib import Path

import pytest

from scanmap.core.models import FileRecord
from scanmap.inventory.scanner import derivative_names, nth_largest, order_by_size, scan

SHEET_SIZES_MB = [149, 8, 666, 10, 181, 72]


@pytest.fixture()
def sheet_dir(tmp_path: Path, make_sparse_file) -> Path:  # type: ignore[no-untyped-def]
    folder = tmp_path / "scans"
    for index, size in enumerate(SHEET_SIZES_MB):
        make_sparse_file(folder / f"sheet_{index:02d}.tif", size * 1_000_000)
    return folder


def test_scan_orders_largest_first(sheet_dir: Path) -> None:
    records = scan(sheet_dir)

    assert [record.original_size_mb for record in records] == [666.0, 181.0, 149.0, 72.0, 10.0, 8.0]
    assert records[0].path == "sheet_02.tif"
    assert len({record.path for record in records}) == len(records)


def test_nth_largest_matches_positional_order(sheet_dir: Path) -> None:
    records = scan(sheet_dir)

    assert nth_largest(records, 3).original_size_mb == 149.0
    assert nth_largest(records, 5) == records[4]
    assert nth_largest(records, 5).original_size_mb == 10.0


def test_nth_largest_sorts_unordered_input() -> None:
    records = [
        FileRecord(path="a.tif", original_size_mb=1.0),
        FileRecord(path="b.tif", original_size_mb=3.0),
        FileRecord(path="c.tif", original_size_mb=2.0),
    ]

    assert nth_largest(records, 1).path == "b.tif"
    with pytest.raises(IndexError):
        nth_largest(records, 4)
    with pytest.raises(IndexError):
        nth_largest(records, 0)


def test_order_by_size_breaks_ties_by_path() -> None:
    records = [
        FileRecord(path="z.tif", original_size_mb=5.0),
        FileRecord(path="a.tif", original_size_mb=5.0),
    ]

    assert [record.path for record in order_by_size(records)] == ["a.tif", "z.tif"]


def test_scan_matches_extensions_case_insensitively(tmp_path: Path, make_sparse_file) -> None:  # type: ignore[no-untyped-def]
    for name in ("upper.JPG", "lower.jpg", "plate.tif", "PLATE2.TIF", "notes.txt", "preview.png"):
        make_sparse_file(tmp_path / name, 1_000)
    (tmp_path / "folder.tif").mkdir()

    names = sorted(record.path for record in scan(tmp_path))

    assert names == ["PLATE2.TIF", "lower.jpg", "plate.tif", "upper.JPG"]


def test_scan_uses_custom_pattern(tmp_path: Path, make_sparse_file) -> None:  # type: ignore[no-untyped-def]
    make_sparse_file(tmp_path / "a.png", 2_000_000)
    make_sparse_file(tmp_path / "b.tif", 1_000_000)

    records = scan(tmp_path, r"\.png$")

    assert [record.path for record in records] == ["a.png"]
    assert records[0].original_size_mb == 2.0


def test_scan_returns_empty_list_without_matches(tmp_path: Path) -> None:
    (tmp_path / "readme.txt").write_text("nothing here", encoding="utf-8")

    assert scan(tmp_path) == []


def test_scan_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        scan(tmp_path / "missing")


def test_derivative_names_disambiguate_shared_stems() -> None:
    names = derivative_names(["sheet.tif", "SHEET.jpg", "plate.tif", "sheet.tif.tif"], ".jpg")

    assert names == {
        "sheet.tif": "sheet.tif.jpg",
        "SHEET.jpg": "SHEET.jpg.jpg",
        "plate.tif": "plate.jpg",
        "sheet.tif.tif": "sheet.tif.tif.jpg",
    }
    assert len({name.lower() for name in names.values()}) == 4
