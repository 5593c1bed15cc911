"""Partition table creation with kernel re-read polling.

Partitioning:
    - MBR (parted label "msdos") for devices up to 2 TiB, GPT above
    - A single partition spanning 0%-100% of the device, optimally aligned
    - Partition node derived from the parent name (sdb -> sdb1,
      nvme0n1 -> nvme0n1p1, mmcblk0 -> mmcblk0p1)

Kernel Visibility:
    The kernel does not always expose the new partition node synchronously.
    After parted returns, the table is re-read and the derived node is polled
    for a bounded number of attempts; every retry waits for udev and every
    few retries re-issues the re-read. A node that never appears is reported
    back to the caller rather than raised here.

Operations:
    - partition_device(): Main entry point
    - create_partition_table(): mklabel + mkpart
    - wait_for_path(): Bounded existence poll with a retry callback
    - reread_partition_table(): Best-effort partprobe / blockdev --rereadpt
"""

from __future__ import annotations

import contextlib
import os
import shutil
import subprocess
import time
from typing import Callable, Optional

from usb_formatter.config.settings import (
    DEFAULT_PARTITION_POLL_ATTEMPTS,
    DEFAULT_PARTITION_POLL_INTERVAL,
    DEFAULT_PARTITION_RESCAN_EVERY,
    GPT_THRESHOLD_BYTES,
)
from usb_formatter.domain.models import PartitionSpec
from usb_formatter.logging import LoggerFactory
from usb_formatter.storage.devices import run_command
from usb_formatter.storage.exceptions import PartitionTableError


log = LoggerFactory.for_format()


def _run_best_effort(command: list[str]) -> None:
    if not shutil.which(command[0]):
        log.debug(f"Skipping {command[0]}: command not found")
        return
    with contextlib.suppress(subprocess.CalledProcessError, OSError):
        run_command(command, check=False, log_output=False)


def settle() -> None:
    _run_best_effort(["udevadm", "settle", "--timeout=5"])


def reread_partition_table(device_path: str) -> None:
    """Ask the kernel to re-read the partition table of ``device_path``."""
    _run_best_effort(["partprobe", device_path])
    _run_best_effort(["blockdev", "--rereadpt", device_path])
    settle()


def wipe_signatures(device_path: str) -> None:
    """Remove stale filesystem and table signatures so parted starts clean."""
    log.debug(f"Wiping filesystem signatures from {device_path}")
    _run_best_effort(["wipefs", "-a", device_path])


def wait_for_path(
    path: str,
    max_attempts: int = DEFAULT_PARTITION_POLL_ATTEMPTS,
    interval: float = DEFAULT_PARTITION_POLL_INTERVAL,
    on_retry: Optional[Callable[[int], None]] = None,
    exists: Callable[[str], bool] = os.path.exists,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll for ``path`` up to ``max_attempts`` times.

    Args:
        path: Node to wait for
        max_attempts: Number of existence checks
        interval: Seconds between checks
        on_retry: Called with the attempt number after every failed check
            except the last
        exists: Existence predicate
        sleep: Delay function

    Returns:
        True as soon as the path exists, False after the last failed check
    """
    for attempt in range(1, max_attempts + 1):
        if exists(path):
            log.trace(f"{path} present after {attempt} check(s)")
            return True
        if attempt == max_attempts:
            break
        log.trace(f"{path} not present yet (attempt {attempt}/{max_attempts})")
        if on_retry is not None:
            on_retry(attempt)
        sleep(interval)
    return False


def make_rescan(
    device_path: str, rescan_every: int = DEFAULT_PARTITION_RESCAN_EVERY
) -> Callable[[int], None]:
    """Retry callback: settle udev each time, re-read the table every N attempts."""

    def rescan(attempt: int) -> None:
        if rescan_every > 0 and attempt % rescan_every == 0:
            log.debug(f"Re-reading partition table on {device_path} (attempt {attempt})")
            reread_partition_table(device_path)
        else:
            settle()

    return rescan


def _run_parted(device_path: str, step: str, args: list[str]) -> None:
    command = ["parted", "-s", *args]
    try:
        result = run_command(command, check=False)
    except OSError as error:
        raise PartitionTableError(device_path, step, str(error)) from error
    if result.returncode != 0:
        stderr_msg = (result.stderr or "").strip() or "no error message"
        log.error(f"parted failed: {stderr_msg} (rc={result.returncode})")
        raise PartitionTableError(device_path, step, stderr_msg)


def create_partition_table(spec: PartitionSpec) -> None:
    """Write a fresh table and one full-size partition.

    Raises:
        PartitionTableError: If either parted call fails
    """
    log.info(
        f"Creating {spec.table_kind.name} partition table on {spec.parent}"
    )
    _run_parted(
        spec.parent,
        "create partition table",
        [spec.parent, "mklabel", spec.table_kind.value],
    )
    log.debug(f"Creating primary partition on {spec.parent}")
    _run_parted(
        spec.parent,
        "create partition",
        ["-a", "optimal", spec.parent, "mkpart", "primary", "fat32", "0%", "100%"],
    )


def partition_device(
    device_path: str,
    size_bytes: int,
    *,
    gpt_threshold: int = GPT_THRESHOLD_BYTES,
    max_attempts: int = DEFAULT_PARTITION_POLL_ATTEMPTS,
    interval: float = DEFAULT_PARTITION_POLL_INTERVAL,
    rescan_every: int = DEFAULT_PARTITION_RESCAN_EVERY,
) -> tuple[PartitionSpec, bool]:
    """Partition ``device_path`` and wait for the new node.

    Args:
        device_path: Whole-disk device (e.g., /dev/sdb)
        size_bytes: Device size, selects MBR or GPT
        gpt_threshold: Size above which GPT is used
        max_attempts: Partition node existence checks
        interval: Seconds between checks
        rescan_every: Re-read the table every N failed checks

    Returns:
        (spec, confirmed) where confirmed says whether the node appeared

    Raises:
        PartitionTableError: If parted fails
    """
    spec = PartitionSpec.for_device(device_path, size_bytes, gpt_threshold)
    log.debug(
        f"Partition plan for {device_path}: {spec.table_kind.name}, "
        f"partition {spec.partition_path}"
    )

    wipe_signatures(device_path)
    create_partition_table(spec)

    _run_best_effort(["sync"])
    reread_partition_table(device_path)

    confirmed = wait_for_path(
        spec.partition_path,
        max_attempts=max_attempts,
        interval=interval,
        on_retry=make_rescan(device_path, rescan_every),
    )
    if confirmed:
        log.debug(f"Partition node found: {spec.partition_path}")
    return spec, confirmed
