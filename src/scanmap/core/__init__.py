"""Core data models for scanmap."""

from .models import (
    BoundaryConfig,
    CompressionConfig,
    CompressionReport,
    DelegateFailure,
    DelegateResult,
    FailureKind,
    FileRecord,
    GeoreferenceConfig,
    PublishingConfig,
    Stage,
    StageStatus,
    StageSummary,
    TileMetadata,
    TilingConfig,
    WebMapConfig,
    bytes_to_mb,
)

__all__ = [
    "BoundaryConfig",
    "CompressionConfig",
    "CompressionReport",
    "DelegateFailure",
    "DelegateResult",
    "FailureKind",
    "FileRecord",
    "GeoreferenceConfig",
    "PublishingConfig",
    "Stage",
    "StageStatus",
    "StageSummary",
    "TileMetadata",
    "TilingConfig",
    "WebMapConfig",
    "bytes_to_mb",
]
