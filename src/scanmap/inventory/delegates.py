"""Pillow-backed image delegate for resize and re-encode stages."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

from PIL import Image, UnidentifiedImageError

from scanmap.core.models import DelegateResult, FailureKind
from scanmap.logging import get_logger

from .base import ImageDelegate

LOGGER = get_logger(__name__)

FORMAT_EXTENSIONS = {
    "JPEG": ".jpg",
    "PNG": ".png",
    "TIFF": ".tif",
    "WEBP": ".webp",
}

# Modes the JPEG encoder accepts without conversion.
_JPEG_MODES = {"RGB", "L", "CMYK"}


def normalize_format(target_format: str) -> str:
    """Return Pillow's name for ``target_format`` or raise ``ValueError``."""

    fmt = target_format.strip().upper()
    if fmt in {"JPG", "JPE"}:
        fmt = "JPEG"
    elif fmt == "TIF":
        fmt = "TIFF"
    Image.init()
    if fmt not in Image.SAVE:
        raise ValueError(f"Unsupported target format: {target_format}")
    return fmt


def extension_for_format(target_format: str) -> str:
    fmt = normalize_format(target_format)
    return FORMAT_EXTENSIONS.get(fmt, f".{fmt.lower()}")


@contextmanager
def pixel_limit(limit: Optional[int]) -> Iterator[None]:
    previous = Image.MAX_IMAGE_PIXELS
    Image.MAX_IMAGE_PIXELS = limit
    try:
        yield
    finally:
        Image.MAX_IMAGE_PIXELS = previous


class PillowImageDelegate(ImageDelegate):
    """Write derivatives with Pillow, reporting failures as typed results."""

    def __init__(self, *, max_image_pixels: Optional[int] = None) -> None:
        # Scanned map sheets routinely exceed Pillow's decompression-bomb limit.
        self._max_image_pixels = max_image_pixels

    def resize(self, source: Path, destination: Path, max_dimension: int) -> DelegateResult:
        if max_dimension < 1:
            raise ValueError("max_dimension must be a positive pixel count")

        def write(image: Image.Image) -> None:
            resized = image.copy()
            resized.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
            resized.save(destination, format=image.format, **_carry_profile(image))

        return self._invoke(source, destination, write)

    def reencode(self, source: Path, destination: Path, target_format: str, quality: int) -> DelegateResult:
        if not 0 <= quality <= 100:
            raise ValueError("quality must be between 0 and 100")
        fmt = normalize_format(target_format)

        def write(image: Image.Image) -> None:
            converted = image
            if fmt == "JPEG" and image.mode not in _JPEG_MODES:
                converted = image.convert("RGB")
            converted.save(destination, format=fmt, quality=quality, optimize=True, **_carry_profile(image))

        return self._invoke(source, destination, write)

    def _invoke(
        self,
        source: Path,
        destination: Path,
        write: Callable[[Image.Image], None],
    ) -> DelegateResult:
        if not source.is_file():
            return DelegateResult.failed(source, FailureKind.MISSING_SOURCE, f"Source not found: {source}")
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            with pixel_limit(self._max_image_pixels), Image.open(source) as image:
                write(image)
        except UnidentifiedImageError as exc:
            failure = (FailureKind.UNSUPPORTED_FORMAT, str(exc))
        except (KeyError, ValueError) as exc:
            # Pillow raises these for modes or formats the encoder cannot write.
            failure = (FailureKind.UNSUPPORTED_FORMAT, str(exc))
        except (OSError, Image.DecompressionBombError) as exc:
            failure = (FailureKind.TOOL_ERROR, str(exc))
        else:
            return DelegateResult(source=source, output=destination, size_bytes=destination.stat().st_size)

        if destination != source:
            # Drop partial output so later scans never mistake it for a derivative.
            destination.unlink(missing_ok=True)
        return DelegateResult.failed(source, *failure)


def _carry_profile(image: Image.Image) -> Dict[str, Any]:
    profile = image.info.get("icc_profile")
    return {"icc_profile": profile} if profile else {}
