"""Domain model for the format pipeline.

Replaces raw lsblk dicts and loose globals with type-safe objects that are
built during the scan and threaded through validate, unmount, partition and
format.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from usb_formatter.config.settings import DEFAULT_LABEL, GPT_THRESHOLD_BYTES


FAT32_LABEL_MAX_LENGTH = 11

# Names whose trailing digits are part of the disk name, so partitions get "pN"
_DIGIT_SUFFIXED_DISK = re.compile(
    r"^(?P<base>nvme\d+n\d+|mmcblk\d+|loop\d+|md\d+|dm-\d+)(?:p\d+)?$"
)


def base_device_path(device_path: str) -> str:
    """Strip the partition suffix from a device path.

    /dev/sdb1 -> /dev/sdb, /dev/nvme0n1p2 -> /dev/nvme0n1,
    /dev/mmcblk0p1 -> /dev/mmcblk0. Whole-disk paths are returned unchanged.
    """
    directory, name = os.path.split(device_path)
    match = _DIGIT_SUFFIXED_DISK.match(name)
    if match:
        base = match.group("base")
    else:
        base = name.rstrip("0123456789") or name
    return os.path.join(directory or "/dev", base)


def partition_path_for(parent: str, number: int = 1) -> str:
    """Derive the node of partition ``number`` on ``parent``.

    /dev/sdb -> /dev/sdb1, /dev/nvme0n1 -> /dev/nvme0n1p1,
    /dev/mmcblk0 -> /dev/mmcblk0p1.
    """
    suffix = "p" if parent[-1:].isdigit() else ""
    return f"{parent}{suffix}{number}"


def normalize_label(label: str | None, default: str = DEFAULT_LABEL) -> str:
    """Upper-case, then truncate to the FAT32 limit of 11 characters.

    Blank input falls back to ``default``.
    """
    if not label or not label.strip():
        label = default
    return label.upper()[:FAT32_LABEL_MAX_LENGTH]


def _as_bool(value: Any) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes"}


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


# ==============================================================================
# Block Device Domain
# ==============================================================================


@dataclass(frozen=True)
class BlockDevice:
    """A whole-disk block device found during the scan."""

    path: str  # e.g., "/dev/sdb"
    size_bytes: int
    removable: bool | None = None  # None when /sys/block/*/removable is absent
    fstype: str | None = None  # e.g., "vfat"
    label: str | None = None  # Filesystem label
    mountpoints: tuple[str, ...] = ()
    model: str | None = None

    @property
    def name(self) -> str:
        """Kernel name (e.g., sdb)."""
        return os.path.basename(self.path)

    @classmethod
    def from_lsblk_dict(
        cls, device: dict[str, Any], removable: bool | None = None
    ) -> BlockDevice:
        """Convert an lsblk JSON entry (with optional children) to a BlockDevice.

        Filesystem type and label fall back to the first child partition that
        has one. Mountpoints are collected from the device and its children.

        Args:
            device: Entry from ``lsblk -J -b`` output
            removable: Value read from sysfs; overrides lsblk's RM column

        Raises:
            KeyError: If neither "path" nor "name" is present
        """
        path = device.get("path") or f"/dev/{device['name']}"
        children = device.get("children", []) or []

        fstype = device.get("fstype")
        label = device.get("label")
        if not fstype:
            for child in children:
                if child.get("fstype"):
                    fstype = child.get("fstype")
                    label = label or child.get("label")
                    break

        mountpoints: list[str] = []
        for entry in [device, *children]:
            for key in ("mountpoint", "mountpoints"):
                value = entry.get(key)
                if isinstance(value, str):
                    value = [value]
                for mountpoint in value or []:
                    if mountpoint and mountpoint not in mountpoints:
                        mountpoints.append(mountpoint)

        model = device.get("model")
        if model:
            model = model.strip() or None

        if removable is None:
            removable = _as_bool(device.get("rm"))

        return cls(
            path=path,
            size_bytes=_as_int(device.get("size")),
            removable=removable,
            fstype=fstype or None,
            label=label or None,
            mountpoints=tuple(mountpoints),
            model=model,
        )


# ==============================================================================
# Partitioning Domain
# ==============================================================================


class TableKind(Enum):
    """Partition table type, valued by its parted label name."""

    MBR = "msdos"
    GPT = "gpt"

    @classmethod
    def for_size(
        cls, size_bytes: int, threshold: int = GPT_THRESHOLD_BYTES
    ) -> TableKind:
        """GPT strictly above the threshold (2 TiB), MBR at or below it."""
        return cls.GPT if size_bytes > threshold else cls.MBR


@dataclass(frozen=True)
class PartitionSpec:
    """Table and single partition to create on ``parent``."""

    parent: str
    table_kind: TableKind
    partition_path: str

    @classmethod
    def for_device(
        cls, parent: str, size_bytes: int, threshold: int = GPT_THRESHOLD_BYTES
    ) -> PartitionSpec:
        return cls(
            parent=parent,
            table_kind=TableKind.for_size(size_bytes, threshold),
            partition_path=partition_path_for(parent),
        )


@dataclass(frozen=True)
class FormatRequest:
    """A FAT32 format of one partition."""

    partition_path: str
    label: str = DEFAULT_LABEL
    filesystem: str = "vfat"

    @classmethod
    def create(
        cls, partition_path: str, label: str | None, default_label: str = DEFAULT_LABEL
    ) -> FormatRequest:
        return cls(
            partition_path=partition_path,
            label=normalize_label(label, default_label),
        )


# ==============================================================================
# Pipeline Domain
# ==============================================================================


class PipelineStage(Enum):
    """Stages of a format job, in order."""

    SCANNING = "scanning"
    SELECTED = "selected"
    VALIDATED = "validated"
    UNMOUNTED = "unmounted"
    PARTITIONED = "partitioned"
    FORMATTED = "formatted"
    FAILED = "failed"


PIPELINE_ORDER = (
    PipelineStage.SCANNING,
    PipelineStage.SELECTED,
    PipelineStage.VALIDATED,
    PipelineStage.UNMOUNTED,
    PipelineStage.PARTITIONED,
    PipelineStage.FORMATTED,
)


@dataclass
class FormatJob:
    """A single run of the format pipeline.

    Carries the user's choices and accumulates what each stage produced.
    """

    device_path: str
    label: str | None = None
    force: bool = False
    require_partition_node: bool = False
    root_device: str | None = None
    size_bytes: int | None = None
    stage: PipelineStage = PipelineStage.SELECTED
    warnings: list[Warning] = field(default_factory=list)
    unmounted: list[str] = field(default_factory=list)
    partition: PartitionSpec | None = None
    partition_confirmed: bool = False
    format_request: FormatRequest | None = None

    @property
    def base_device(self) -> str:
        return base_device_path(self.device_path)

    def select(self, device_path: str, size_bytes: int | None = None) -> None:
        """Record the chosen device and leave the SCANNING stage."""
        self.device_path = device_path
        self.size_bytes = size_bytes
        self.advance(PipelineStage.SELECTED)

    def advance(self, stage: PipelineStage) -> None:
        """Move to the next stage; anything but the immediate successor is refused."""
        if self.stage is PipelineStage.FAILED:
            raise ValueError(f"Job for {self.device_path} already failed")
        current = PIPELINE_ORDER.index(self.stage)
        if stage not in PIPELINE_ORDER or PIPELINE_ORDER.index(stage) != current + 1:
            raise ValueError(
                f"Cannot move from {self.stage.value} to {stage.value}"
            )
        self.stage = stage

    def fail(self) -> None:
        self.stage = PipelineStage.FAILED
