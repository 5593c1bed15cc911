"""Custom exceptions for storage operations.

This module defines a hierarchy of exceptions for the format pipeline so the
CLI can report a precise, human-readable reason for every abort.

Exception Hierarchy:
    StorageError (base)
        ├── DeviceError
        │   ├── DeviceNotFoundError
        │   ├── RootDeviceProtectedError
        │   └── InvalidSelectionError
        ├── MountError
        │   └── UnmountFailedError
        ├── PartitionError
        │   ├── PartitionTableError
        │   └── PartitionNodeMissingError
        └── FormatError
            ├── FormatUtilityMissingError
            └── FormatFailedError

    StorageWarning (non-fatal, collected on the job)
        ├── NotRemovableWarning
        └── PartitionNodeNotConfirmedWarning

    PrivilegeError

Usage:
    from usb_formatter.storage.exceptions import RootDeviceProtectedError

    if base_device == root_device:
        raise RootDeviceProtectedError(device_path, root_device)
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for all storage operations."""



class DeviceError(StorageError):
    """Base exception for device-related errors."""



class DeviceNotFoundError(DeviceError):
    """Device path is not a block device."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        super().__init__(f"Device does not exist: {device_name}")


class RootDeviceProtectedError(DeviceError):
    """Device holds the root filesystem."""

    def __init__(self, device_name: str, root_device: str):
        self.device_name = device_name
        self.root_device = root_device
        super().__init__(
            f"Cannot format root filesystem device: {device_name} "
            f"(root device is {root_device})"
        )


class InvalidSelectionError(DeviceError):
    """Interactive device selection was out of range or not a number."""

    def __init__(self, selection: str, count: int):
        self.selection = selection
        self.count = count
        super().__init__(f"Invalid selection {selection!r}: expected 1-{count}")


class MountError(StorageError):
    """Base exception for mount-related errors."""



class UnmountFailedError(MountError):
    """A mountpoint of the target device could not be unmounted."""

    def __init__(self, device_name: str, mountpoint: str, reason: str = ""):
        self.device_name = device_name
        self.mountpoint = mountpoint
        self.reason = reason
        msg = f"Failed to unmount {mountpoint} on {device_name}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PartitionError(StorageError):
    """Base exception for partitioning errors."""



class PartitionTableError(PartitionError):
    """parted failed to write the table or the partition."""

    def __init__(self, device_name: str, step: str, detail: str = ""):
        self.device_name = device_name
        self.step = step
        self.detail = detail
        msg = f"Failed to {step} on {device_name}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class PartitionNodeMissingError(PartitionError):
    """Partition node never appeared and strict mode is on."""

    def __init__(self, partition_path: str, attempts: int):
        self.partition_path = partition_path
        self.attempts = attempts
        super().__init__(
            f"Partition {partition_path} did not appear after {attempts} attempts"
        )


class FormatError(StorageError):
    """Base exception for format operations."""



class FormatUtilityMissingError(FormatError):
    """No FAT32 mkfs tool is installed."""

    def __init__(self, candidates: tuple[str, ...]):
        self.candidates = candidates
        super().__init__(
            f"{' or '.join(candidates)} not found. Please install dosfstools"
        )


class FormatFailedError(FormatError):
    """The mkfs tool exited non-zero or was pointed at the wrong node."""

    def __init__(self, device: str, returncode: int | None = None, detail: str = ""):
        self.device = device
        self.returncode = returncode
        self.detail = detail
        msg = f"Failed to format device {device}"
        if returncode is not None:
            msg += f" (exit status {returncode})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class StorageWarning(UserWarning):
    """Base class for non-fatal storage conditions."""



class NotRemovableWarning(StorageWarning):
    """Target does not report itself as removable."""

    def __init__(self, device_name: str):
        self.device_name = device_name
        super().__init__(
            f"Device {device_name} does not appear to be removable; "
            "proceeding anyway, but please verify this is correct"
        )


class PartitionNodeNotConfirmedWarning(StorageWarning):
    """Partition node was not seen; formatting continues with the derived name."""

    def __init__(self, partition_path: str, attempts: int):
        self.partition_path = partition_path
        self.attempts = attempts
        super().__init__(
            f"Partition {partition_path} not confirmed after {attempts} attempts; "
            "formatting the derived path anyway"
        )


class PrivilegeError(Exception):
    """Root privileges are required and cannot be obtained."""
