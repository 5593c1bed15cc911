"""Domain models for the format pipeline."""

from __future__ import annotations

from .models import (
    BlockDevice,
    FormatJob,
    FormatRequest,
    PartitionSpec,
    PipelineStage,
    TableKind,
)


__all__ = [
    "BlockDevice",
    "FormatJob",
    "FormatRequest",
    "PartitionSpec",
    "PipelineStage",
    "TableKind",
]
