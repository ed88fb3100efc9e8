from pathlib import Path

import pytest
from PIL import Image

from scanmap.core.models import FailureKind
from scanmap.inventory.delegates import PillowImageDelegate, extension_for_format, normalize_format


@pytest.fixture()
def delegate() -> PillowImageDelegate:
    return PillowImageDelegate()


def _noisy_rgb(size):  # type: ignore[no-untyped-def]
    bands = [Image.effect_noise(size, sigma) for sigma in (40, 60, 80)]
    return Image.merge("RGB", bands)


def test_resize_fits_landscape_into_box(tmp_path: Path, delegate: PillowImageDelegate, make_image) -> None:  # type: ignore[no-untyped-def]
    source = make_image(tmp_path / "aerial.tif", size=(2760, 1244))
    destination = tmp_path / "out" / "aerial.tif"

    result = delegate.resize(source, destination, 1000)

    assert result.ok
    assert result.size_bytes == destination.stat().st_size
    with Image.open(destination) as image:
        assert image.width == 1000
        assert abs(image.height - 451) <= 1
        assert image.format == "TIFF"


def test_resize_fits_portrait_into_box(tmp_path: Path, delegate: PillowImageDelegate, make_image) -> None:  # type: ignore[no-untyped-def]
    source = make_image(tmp_path / "sheet.jpg", size=(1244, 2760))
    destination = tmp_path / "out" / "sheet.jpg"

    assert delegate.resize(source, destination, 1000).ok
    with Image.open(destination) as image:
        assert image.height == 1000
        assert abs(image.width - 451) <= 1


def test_resize_does_not_upscale(tmp_path: Path, delegate: PillowImageDelegate, make_image) -> None:  # type: ignore[no-untyped-def]
    source = make_image(tmp_path / "small.tif", size=(300, 200))
    destination = tmp_path / "out" / "small.tif"

    assert delegate.resize(source, destination, 1000).ok
    with Image.open(destination) as image:
        assert image.size == (300, 200)


def test_reencode_lower_quality_is_smaller(tmp_path: Path, delegate: PillowImageDelegate) -> None:
    source = tmp_path / "noisy.tif"
    _noisy_rgb((400, 300)).save(source)

    low = delegate.reencode(source, tmp_path / "low.jpg", "JPEG", 10)
    high = delegate.reencode(source, tmp_path / "high.jpg", "jpg", 95)

    assert low.ok and high.ok
    assert (low.size_bytes or 0) < (high.size_bytes or 0)
    with Image.open(tmp_path / "low.jpg") as image:
        assert image.format == "JPEG"


def test_reencode_converts_alpha_for_jpeg(tmp_path: Path, delegate: PillowImageDelegate, make_image) -> None:  # type: ignore[no-untyped-def]
    source = make_image(tmp_path / "overlay.png", mode="RGBA", color=(10, 20, 30, 128))

    result = delegate.reencode(source, tmp_path / "overlay.jpg", "JPEG", 80)

    assert result.ok
    with Image.open(tmp_path / "overlay.jpg") as image:
        assert image.mode == "RGB"


def test_missing_source_is_reported(tmp_path: Path, delegate: PillowImageDelegate) -> None:
    result = delegate.resize(tmp_path / "absent.tif", tmp_path / "out" / "absent.tif", 500)

    assert not result.ok
    assert result.failure is not None
    assert result.failure.kind is FailureKind.MISSING_SOURCE


def test_unreadable_source_is_unsupported_format(tmp_path: Path, delegate: PillowImageDelegate) -> None:
    source = tmp_path / "broken.tif"
    source.write_bytes(b"definitely not a tiff")

    result = delegate.resize(source, tmp_path / "out" / "broken.tif", 500)

    assert result.failure is not None
    assert result.failure.kind is FailureKind.UNSUPPORTED_FORMAT


def test_invalid_arguments_raise(tmp_path: Path, delegate: PillowImageDelegate, make_image) -> None:  # type: ignore[no-untyped-def]
    source = make_image(tmp_path / "a.jpg")

    with pytest.raises(ValueError):
        delegate.resize(source, tmp_path / "b.jpg", 0)
    with pytest.raises(ValueError):
        delegate.reencode(source, tmp_path / "b.jpg", "JPEG", 101)
    with pytest.raises(ValueError):
        delegate.reencode(source, tmp_path / "b.xyz", "NOT-A-FORMAT", 50)


def test_format_helpers() -> None:
    assert normalize_format("jpg") == "JPEG"
    assert normalize_format("tif") == "TIFF"
    assert extension_for_format("JPEG") == ".jpg"
    assert extension_for_format("webp") == ".webp"


def test_failed_write_removes_partial_output(
    tmp_path: Path, delegate: PillowImageDelegate, make_image, monkeypatch: pytest.MonkeyPatch  # type: ignore[no-untyped-def]
) -> None:
    source = make_image(tmp_path / "plate.tif", size=(600, 400))
    destination = tmp_path / "out" / "plate.tif"
    destination.parent.mkdir()
    destination.write_bytes(b"stale derivative")

    def truncated_save(self, fp, *args, **kwargs):  # type: ignore[no-untyped-def]
        Path(fp).write_bytes(b"partial")
        raise OSError("disk full")

    monkeypatch.setattr(Image.Image, "save", truncated_save)

    result = delegate.resize(source, destination, 100)

    assert result.failure is not None
    assert result.failure.kind is FailureKind.TOOL_ERROR
    assert "disk full" in result.failure.message
    assert not destination.exists()
