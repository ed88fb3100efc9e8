from pathlib import Path
from typing import Callable, Tuple

import pytest
from PIL import Image


@pytest.fixture()
def make_image() -> Callable[..., Path]:
    def factory(path: Path, size: Tuple[int, int] = (64, 48), mode: str = "RGB", color=(120, 80, 40)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new(mode, size, color).save(path)
        return path

    return factory


@pytest.fixture()
def make_sparse_file() -> Callable[[Path, int], Path]:
    """Create a file reporting ``size`` bytes without writing its contents."""

    def factory(path: Path, size: int) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as handle:
            handle.truncate(size)
        return path

    return factory
