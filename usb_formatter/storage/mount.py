"""Mount table queries and unmounting for a target device.

A disk may be mounted several times (one mount per partition, or bind
mounts of the same partition). All of them are found by matching the base
device of every /proc/mounts source against the target's base device.

Unmounting is all-or-nothing from the caller's point of view: the first
mountpoint that cannot be released raises UnmountFailedError and the
pipeline stops before anything is partitioned.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path

from usb_formatter.domain.models import base_device_path
from usb_formatter.logging import LoggerFactory
from usb_formatter.storage.devices import run_command
from usb_formatter.storage.exceptions import UnmountFailedError


PROC_MOUNTS = Path("/proc/mounts")

log = LoggerFactory.for_mount()

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    """Decode the octal escapes /proc/mounts uses for spaces, tabs and newlines."""
    return _OCTAL_ESCAPE.sub(lambda match: chr(int(match.group(1), 8)), field)


def read_mount_table(path: Path = PROC_MOUNTS) -> list[tuple[str, str]]:
    """Return (source, mountpoint) pairs from the kernel mount table."""
    entries: list[tuple[str, str]] = []
    try:
        with open(path, "r", encoding="utf-8") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) > 1:
                    entries.append((_unescape(parts[0]), _unescape(parts[1])))
    except FileNotFoundError:
        log.debug(f"{path} not available")
    return entries


def find_mountpoints(device_path: str) -> list[str]:
    """Active mountpoints of ``device_path`` and any of its partitions."""
    base = base_device_path(device_path)
    mountpoints: list[str] = []
    for source, mountpoint in read_mount_table():
        if not source.startswith("/dev/"):
            continue
        if base_device_path(source) == base and mountpoint not in mountpoints:
            mountpoints.append(mountpoint)
    return mountpoints


def unmount_device(device_path: str) -> list[str]:
    """Unmount every mountpoint of the device.

    Nested mounts are released first (deepest path first).

    Args:
        device_path: Device or partition path (e.g., /dev/sdb)

    Returns:
        Mountpoints that were unmounted, in unmount order

    Raises:
        UnmountFailedError: On the first mountpoint that stays mounted
    """
    base = base_device_path(device_path)
    mountpoints = find_mountpoints(base)
    if not mountpoints:
        log.debug(f"No mounted partitions on {base}")
        return []

    log.info("Device is mounted, unmounting...")
    try:
        run_command(["sync"], check=False, log_output=False)
    except OSError as error:
        log.debug(f"Sync failed: {error}")

    unmounted: list[str] = []
    for mountpoint in sorted(mountpoints, key=lambda mp: mp.count("/"), reverse=True):
        try:
            run_command(["umount", mountpoint], check=True)
        except subprocess.CalledProcessError as error:
            reason = (error.stderr or "").strip()
            log.error(f"Failed to unmount {mountpoint}")
            raise UnmountFailedError(base, mountpoint, reason) from error
        except OSError as error:
            log.error(f"Failed to unmount {mountpoint}")
            raise UnmountFailedError(base, mountpoint, str(error)) from error
        log.success(f"Unmounted {mountpoint}")
        unmounted.append(mountpoint)
    return unmounted
