"""Block device discovery and removable-device filtering.

Device Detection:
    Candidates come from the SCSI, NVMe and MMC device namespaces
    (/dev/sd*, /dev/nvme*, /dev/mmcblk*). Every candidate is reduced to its
    base device (sdb1 -> sdb, nvme0n1p2 -> nvme0n1) and deduplicated, so a
    disk with three partitions is reported once.

Filtering Logic:
    1. Must be a block-special node
    2. Must NOT be the device holding the root filesystem
    3. Must expose /sys/block/<name>/removable and it must read "1"

    Devices without a removable attribute are excluded from the listing.
    An explicit device given on the command line bypasses this filter and is
    checked by storage.validation instead.

Device Details:
    lsblk with JSON output supplies size, filesystem type, label and model;
    the mount table supplies the active mountpoints.

Operations:
    - run_command(): Run an external command with debug logging
    - get_root_device(): Base device of the root filesystem
    - read_removable(): sysfs removable attribute
    - enumerate_devices(): Removable, non-root devices in discovery order
    - describe_device(): BlockDevice for one path
    - device_summary(): One-line human description
    - human_size(): Bytes to KiB/MiB/GiB

Example:
    >>> from usb_formatter.storage.devices import enumerate_devices
    >>> for device in enumerate_devices():
    ...     print(device.path, device_summary(device))
    /dev/sdb Size: 7.5GiB Filesystem: vfat Mounted at: /media/usb Model: Cruzer
"""

from __future__ import annotations

import glob
import json
import os
import stat
import subprocess
from pathlib import Path
from typing import Iterable, Optional, Sequence

from usb_formatter.domain.models import BlockDevice, base_device_path
from usb_formatter.logging import LoggerFactory


DEVICE_GLOBS = ("/dev/sd*", "/dev/nvme*", "/dev/mmcblk*")
SYS_BLOCK = Path("/sys/block")
LSBLK_COLUMNS = "NAME,PATH,TYPE,SIZE,RM,FSTYPE,LABEL,MODEL,MOUNTPOINT"

log = LoggerFactory.for_usb()
command_log = LoggerFactory.for_command()


def run_command(
    command: Sequence[str],
    check: bool = True,
    log_output: bool = True,
    log_command: bool = True,
) -> subprocess.CompletedProcess:
    if log_command:
        command_log.debug(f"Running command: {' '.join(command)}")
    try:
        result = subprocess.run(command, check=check, text=True, capture_output=True)
    except subprocess.CalledProcessError as error:
        command_log.debug(f"Command failed: {' '.join(command)}")
        if error.stdout:
            command_log.debug(f"stdout: {error.stdout.strip()}")
        if error.stderr:
            command_log.debug(f"stderr: {error.stderr.strip()}")
        raise
    if result.stdout and (log_output or result.returncode != 0):
        command_log.trace(f"stdout: {result.stdout.strip()}")
    if result.stderr and (log_output or result.returncode != 0):
        command_log.debug(f"stderr: {result.stderr.strip()}")
    if log_command:
        command_log.debug(f"Command completed with return code {result.returncode}")
    return result


def human_size(size_bytes: Optional[int]) -> str:
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KiB", "MiB", "GiB", "TiB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PiB"


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def get_root_device() -> Optional[str]:
    """Resolve the base device that holds ``/``.

    Btrfs reports sources like ``/dev/sda2[/@]``; the bracketed subvolume is
    dropped before the partition suffix is stripped. Returns None when the
    source is not a /dev node (overlay, tmpfs) or findmnt is unavailable.
    """
    try:
        result = run_command(
            ["findmnt", "-n", "-o", "SOURCE", "/"], check=False, log_output=False
        )
    except OSError as error:
        log.debug(f"findmnt unavailable: {error}")
        return None
    if result.returncode != 0:
        return None
    source = result.stdout.strip().split("[", 1)[0].strip()
    if not source.startswith("/dev/"):
        log.debug(f"Root filesystem source {source!r} is not a block device")
        return None
    return base_device_path(source)


def read_removable(device_path: str) -> Optional[bool]:
    """Read /sys/block/<base>/removable; None when the attribute is absent."""
    name = os.path.basename(base_device_path(device_path))
    attribute = SYS_BLOCK / name / "removable"
    try:
        value = attribute.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return value == "1"


def read_model(device_path: str) -> Optional[str]:
    name = os.path.basename(base_device_path(device_path))
    try:
        model = (SYS_BLOCK / name / "device" / "model").read_text(encoding="utf-8")
    except OSError:
        return None
    return model.strip() or None


def iter_candidate_paths(patterns: Iterable[str] = DEVICE_GLOBS) -> list[str]:
    """Base device paths found under the device namespaces, deduplicated."""
    seen: list[str] = []
    for pattern in patterns:
        for path in sorted(glob.glob(pattern)):
            if not is_block_device(path):
                continue
            base = base_device_path(path)
            if base not in seen:
                seen.append(base)
    return seen


def _query_lsblk(device_path: str) -> Optional[dict]:
    try:
        result = run_command(
            ["lsblk", "-J", "-b", "-o", LSBLK_COLUMNS, device_path],
            check=False,
            log_output=False,
        )
    except OSError as error:
        log.debug(f"lsblk unavailable: {error}")
        return None
    if result.returncode != 0:
        log.debug(f"lsblk failed for {device_path}: {result.stderr.strip()}")
        return None
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as error:
        log.debug(f"lsblk returned invalid JSON for {device_path}: {error}")
        return None
    devices = data.get("blockdevices", []) or []
    return devices[0] if devices else None


def describe_device(device_path: str, removable: Optional[bool] = None) -> BlockDevice:
    """Build a BlockDevice for the base device of ``device_path``.

    Missing lsblk data leaves size at 0 and the optional fields empty.
    """
    from usb_formatter.storage.mount import find_mountpoints

    base = base_device_path(device_path)
    if removable is None:
        removable = read_removable(base)
    entry = _query_lsblk(base) or {"path": base}
    device = BlockDevice.from_lsblk_dict(entry, removable=removable)

    active_mounts = find_mountpoints(base)
    model = device.model or read_model(base)
    return BlockDevice(
        path=base,
        size_bytes=device.size_bytes,
        removable=removable,
        fstype=device.fstype,
        label=device.label,
        mountpoints=tuple(active_mounts) or device.mountpoints,
        model=model,
    )


def device_summary(device: BlockDevice) -> str:
    info = []
    if device.size_bytes:
        info.append(f"Size: {human_size(device.size_bytes)}")
    if device.fstype:
        info.append(f"Filesystem: {device.fstype}")
    else:
        info.append("Filesystem: Unknown/Unformatted")
    if device.mountpoints:
        info.append(f"Mounted at: {', '.join(device.mountpoints)}")
    else:
        info.append("Mounted: No")
    if device.model:
        info.append(f"Model: {device.model}")
    return " ".join(info)


def enumerate_devices(
    root_device: Optional[str] = None,
    patterns: Iterable[str] = DEVICE_GLOBS,
) -> list[BlockDevice]:
    """Removable, non-root block devices in discovery order.

    Args:
        root_device: Base device of the root filesystem; resolved when omitted
        patterns: Glob patterns of the device namespaces to scan

    Returns:
        BlockDevice list, empty when nothing qualifies
    """
    if root_device is None:
        root_device = get_root_device()

    found: list[BlockDevice] = []
    for base in iter_candidate_paths(patterns):
        if root_device and base == root_device:
            log.debug(f"Skipping {base}: holds the root filesystem")
            continue
        removable = read_removable(base)
        if not removable:
            log.trace(f"Skipping {base}: not removable ({removable})")
            continue
        found.append(describe_device(base, removable=removable))

    if found:
        log.debug(f"Found {len(found)} USB devices: {', '.join(d.name for d in found)}")
    else:
        log.debug("No removable devices found")
    return found
