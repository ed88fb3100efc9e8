"""Protocol definitions for image derivative delegates."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from scanmap.core.models import DelegateResult


class ImageDelegate(Protocol):
    """Interface for the external tool that writes image derivatives."""

    def resize(self, source: Path, destination: Path, max_dimension: int) -> DelegateResult:
        """Write ``source`` scaled to fit a ``max_dimension`` square box."""

    def reencode(self, source: Path, destination: Path, target_format: str, quality: int) -> DelegateResult:
        """Write ``source`` re-encoded as ``target_format`` at ``quality``."""
