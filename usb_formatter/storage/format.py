"""FAT32 filesystem creation on a freshly created partition.

The filesystem is always written to the partition node, never to the raw
parent device, so it lands inside the new partition boundaries.

Tools:
    mkfs.vfat is preferred, mkfs.fat (same dosfstools binary under its
    newer name) is the fallback. Neither present -> FormatUtilityMissingError.

Command:
    <tool> -F 32 -I -n <LABEL> <partition>

    -F 32  FAT32
    -I     Do not refuse to format a whole device or a partitioned node
    -n     Volume label (already normalized to 11 upper-case characters)

No rollback: a failed format leaves the new partition table in place.
"""

from __future__ import annotations

import shutil
from typing import Optional

from usb_formatter.domain.models import FormatRequest
from usb_formatter.logging import LoggerFactory
from usb_formatter.storage.devices import run_command
from usb_formatter.storage.exceptions import (
    FormatFailedError,
    FormatUtilityMissingError,
)


FAT32_TOOLS = ("mkfs.vfat", "mkfs.fat")

log = LoggerFactory.for_format()


def find_fat32_tool() -> str:
    """Return the first available FAT32 mkfs tool.

    Raises:
        FormatUtilityMissingError: If none is installed
    """
    for tool in FAT32_TOOLS:
        if shutil.which(tool):
            return tool
    raise FormatUtilityMissingError(FAT32_TOOLS)


def build_format_command(request: FormatRequest, tool: str) -> list[str]:
    return [tool, "-F", "32", "-I", "-n", request.label, request.partition_path]


def format_partition(request: FormatRequest, parent: Optional[str] = None) -> None:
    """Format ``request.partition_path`` as FAT32.

    Args:
        request: Partition and normalized label
        parent: Whole-disk device the partition belongs to; formatting it
            directly is refused

    Raises:
        FormatUtilityMissingError: If no mkfs tool is installed
        FormatFailedError: If the target is the raw parent or mkfs fails
    """
    if parent is not None and request.partition_path == parent:
        raise FormatFailedError(
            request.partition_path, detail="refusing to format the raw parent device"
        )

    tool = find_fat32_tool()
    command = build_format_command(request, tool)
    log.info(f"Formatting {request.partition_path} to FAT32 (label {request.label})...")

    try:
        result = run_command(command, check=False)
    except OSError as error:
        raise FormatFailedError(request.partition_path, detail=str(error)) from error

    if result.returncode != 0:
        stderr_output = (result.stderr or "").strip() or "no error message"
        log.error(f"Format command failed with code {result.returncode}")
        log.error(f"Command: {' '.join(command)}")
        log.error(f"Error output: {stderr_output}")
        raise FormatFailedError(
            request.partition_path, result.returncode, stderr_output
        )

    log.success(f"Device {request.partition_path} formatted successfully to FAT32")
