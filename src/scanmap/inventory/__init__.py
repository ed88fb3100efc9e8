"""Raster inventory, derivative generation, and compression reporting."""

from .base import ImageDelegate
from .delegates import PillowImageDelegate, extension_for_format, normalize_format
from .manager import DelegateError, InventoryManager
from .report import report, verify_derivatives, write_report
from .scanner import DEFAULT_PATTERN, nth_largest, order_by_size, scan

__all__ = [
    "DEFAULT_PATTERN",
    "DelegateError",
    "ImageDelegate",
    "InventoryManager",
    "PillowImageDelegate",
    "extension_for_format",
    "nth_largest",
    "normalize_format",
    "order_by_size",
    "report",
    "scan",
    "verify_derivatives",
    "write_report",
]
