"""Safety validation before any destructive call.

The single hard invariant of the formatter lives here: the target's base
device must never be the device that holds the root filesystem. That check
does not depend on size or removability.

Validation raises for fatal conditions and returns non-fatal warnings so the
caller decides how to present them.

Example:
    from usb_formatter.storage.validation import validate_target

    try:
        warnings = validate_target("/dev/sdb")
    except RootDeviceProtectedError:
        # Refuse to continue
        raise
"""

from __future__ import annotations

from typing import Optional

from usb_formatter.domain.models import base_device_path
from usb_formatter.logging import LoggerFactory

from .devices import get_root_device, is_block_device, read_removable
from .exceptions import (
    DeviceNotFoundError,
    NotRemovableWarning,
    RootDeviceProtectedError,
    StorageWarning,
)


log = LoggerFactory.for_usb()


def validate_device_exists(device_path: str) -> None:
    """Raise DeviceNotFoundError unless ``device_path`` is a block device."""
    if not device_path:
        raise DeviceNotFoundError("(empty name)")
    if not is_block_device(device_path):
        raise DeviceNotFoundError(device_path)


def validate_not_root_device(device_path: str, root_device: Optional[str]) -> None:
    """Raise RootDeviceProtectedError when the base device holds ``/``."""
    if root_device and base_device_path(device_path) == base_device_path(root_device):
        raise RootDeviceProtectedError(device_path, root_device)


def check_removable(device_path: str) -> list[StorageWarning]:
    if read_removable(device_path):
        return []
    warning = NotRemovableWarning(device_path)
    log.warning(f"Device {device_path} does not appear to be removable")
    log.warning("Proceeding anyway, but please verify this is correct")
    return [warning]


def validate_target(
    device_path: str, root_device: Optional[str] = None
) -> list[StorageWarning]:
    """Perform all validations required before formatting.

    Args:
        device_path: Device chosen by the user (e.g., /dev/sdb)
        root_device: Base device of the root filesystem; resolved when omitted

    Returns:
        Non-fatal warnings (NotRemovableWarning)

    Raises:
        DeviceNotFoundError: If the path is not a block device
        RootDeviceProtectedError: If the device holds the root filesystem
    """
    # 1. Check device exists
    validate_device_exists(device_path)

    # 2. Check it is not the root device (CRITICAL)
    if root_device is None:
        root_device = get_root_device()
    validate_not_root_device(device_path, root_device)

    # 3. Removability is advisory only
    return check_removable(device_path)
