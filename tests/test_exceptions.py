"""Tests for the storage exception hierarchy."""

import pytest

from usb_formatter.storage.exceptions import (
    DeviceError,
    DeviceNotFoundError,
    FormatError,
    FormatFailedError,
    FormatUtilityMissingError,
    InvalidSelectionError,
    MountError,
    NotRemovableWarning,
    PartitionError,
    PartitionNodeMissingError,
    PartitionNodeNotConfirmedWarning,
    PartitionTableError,
    PrivilegeError,
    RootDeviceProtectedError,
    StorageError,
    StorageWarning,
    UnmountFailedError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error, parent",
        [
            (DeviceNotFoundError("/dev/sdz"), DeviceError),
            (RootDeviceProtectedError("/dev/sda", "/dev/sda"), DeviceError),
            (InvalidSelectionError("9", 2), DeviceError),
            (UnmountFailedError("/dev/sdb", "/media/usb"), MountError),
            (PartitionTableError("/dev/sdb", "create partition table"), PartitionError),
            (PartitionNodeMissingError("/dev/sdb1", 15), PartitionError),
            (FormatUtilityMissingError(("mkfs.vfat",)), FormatError),
            (FormatFailedError("/dev/sdb1"), FormatError),
        ],
    )
    def test_all_errors_are_storage_errors(self, error, parent):
        assert isinstance(error, parent)
        assert isinstance(error, StorageError)

    def test_warnings_are_not_errors(self):
        for warning in (
            NotRemovableWarning("/dev/sdc"),
            PartitionNodeNotConfirmedWarning("/dev/sdb1", 15),
        ):
            assert isinstance(warning, StorageWarning)
            assert isinstance(warning, UserWarning)
            assert not isinstance(warning, StorageError)

    def test_privilege_error_is_separate(self):
        assert not issubclass(PrivilegeError, StorageError)


class TestMessages:
    def test_device_not_found(self):
        assert str(DeviceNotFoundError("/dev/sdz")) == "Device does not exist: /dev/sdz"

    def test_root_device_names_both(self):
        message = str(RootDeviceProtectedError("/dev/sda2", "/dev/sda"))
        assert "/dev/sda2" in message
        assert "root device is /dev/sda" in message

    def test_unmount_reason_optional(self):
        assert str(UnmountFailedError("/dev/sdb", "/media/usb")) == (
            "Failed to unmount /media/usb on /dev/sdb"
        )
        assert str(UnmountFailedError("/dev/sdb", "/media/usb", "busy")).endswith(
            ": busy"
        )

    def test_partition_table_step(self):
        error = PartitionTableError("/dev/sdb", "create partition", "bad geometry")
        assert str(error) == "Failed to create partition on /dev/sdb: bad geometry"

    def test_missing_utility_mentions_dosfstools(self):
        error = FormatUtilityMissingError(("mkfs.vfat", "mkfs.fat"))
        assert str(error) == (
            "mkfs.vfat or mkfs.fat not found. Please install dosfstools"
        )

    def test_format_failed_with_status(self):
        error = FormatFailedError("/dev/sdb1", 1, "I/O error")
        assert str(error) == "Failed to format device /dev/sdb1 (exit status 1): I/O error"

    def test_node_warning_mentions_attempts(self):
        warning = PartitionNodeNotConfirmedWarning("/dev/sdb1", 15)
        assert "/dev/sdb1" in str(warning)
        assert "15 attempts" in str(warning)
