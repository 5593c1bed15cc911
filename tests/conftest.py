"""
Pytest configuration and shared fixtures for usb-formatter tests.

No test touches real block devices: every fixture here describes devices as
lsblk, sysfs and /proc/mounts would report them.
"""

import json
import subprocess
from typing import Any, Dict
from unittest.mock import Mock

import pytest

from usb_formatter.config import settings


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def default_settings():
    """Run every test against the built-in defaults, not the user's file."""
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)
    yield
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)


@pytest.fixture
def temp_settings_file(tmp_path):
    """Path to a settings file inside a temporary config directory."""
    settings_dir = tmp_path / ".config" / "usb-formatter"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "settings.json"


# ==============================================================================
# Device Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_usb_device() -> Dict[str, Any]:
    """
    Fixture providing a USB stick as returned by ``lsblk -J -b``.

    Returns:
        Dict with one mounted vfat partition.
    """
    return {
        "name": "sdb",
        "path": "/dev/sdb",
        "type": "disk",
        "size": 8000000000,
        "rm": True,
        "fstype": None,
        "label": None,
        "model": "Cruzer Blade    ",
        "mountpoint": None,
        "children": [
            {
                "name": "sdb1",
                "path": "/dev/sdb1",
                "type": "part",
                "size": 7998537728,
                "rm": True,
                "fstype": "vfat",
                "label": "OLDLABEL",
                "model": None,
                "mountpoint": "/media/usb",
            }
        ],
    }


@pytest.fixture
def mock_system_disk() -> Dict[str, Any]:
    """
    Fixture providing the NVMe disk that holds the root filesystem.
    """
    return {
        "name": "nvme0n1",
        "path": "/dev/nvme0n1",
        "type": "disk",
        "size": "512110190592",
        "rm": "0",
        "fstype": None,
        "label": None,
        "model": "Samsung SSD 970",
        "mountpoint": None,
        "children": [
            {
                "name": "nvme0n1p1",
                "path": "/dev/nvme0n1p1",
                "type": "part",
                "size": "536870912",
                "fstype": "vfat",
                "label": None,
                "mountpoint": "/boot/efi",
            },
            {
                "name": "nvme0n1p2",
                "path": "/dev/nvme0n1p2",
                "type": "part",
                "size": "511571722240",
                "fstype": "ext4",
                "label": None,
                "mountpoint": "/",
            },
        ],
    }


@pytest.fixture
def mock_lsblk_output(mock_usb_device) -> str:
    """JSON string as printed by ``lsblk -J -b ... /dev/sdb``."""
    return json.dumps({"blockdevices": [mock_usb_device]})


@pytest.fixture
def mock_proc_mounts() -> str:
    """Contents of /proc/mounts with the root disk and a mounted USB stick."""
    return (
        "/dev/nvme0n1p2 / ext4 rw,relatime 0 0\n"
        "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0\n"
        "/dev/nvme0n1p1 /boot/efi vfat rw,relatime 0 0\n"
        "/dev/sdb1 /media/usb vfat rw,nosuid,nodev,relatime 0 0\n"
    )


# ==============================================================================
# Subprocess Mock Fixtures
# ==============================================================================


@pytest.fixture
def mock_subprocess_success(mocker) -> Mock:
    """subprocess.run that always succeeds with empty output."""
    mock_result = Mock()
    mock_result.returncode = 0
    mock_result.stdout = ""
    mock_result.stderr = ""
    return mocker.patch("subprocess.run", return_value=mock_result)


@pytest.fixture
def mock_subprocess_failure(mocker) -> Mock:
    """subprocess.run that raises CalledProcessError when check=True."""

    def raise_error(*args, **kwargs):
        raise subprocess.CalledProcessError(1, args[0], stderr="Mock error")

    return mocker.patch("subprocess.run", side_effect=raise_error)
