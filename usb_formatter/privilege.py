"""Root privilege check and sudo re-exec."""

from __future__ import annotations

import os
import shutil
import sys
from typing import Sequence

from usb_formatter.logging import LoggerFactory
from usb_formatter.storage.exceptions import PrivilegeError


log = LoggerFactory.for_system()


def is_root() -> bool:
    return os.geteuid() == 0


def ensure_root(argv: Sequence[str], module: str = "usb_formatter") -> None:
    """Return when running as root, otherwise replace the process with sudo.

    The re-executed process runs ``python -m <module>`` with the same
    arguments, so it never returns here on success.

    Raises:
        PrivilegeError: If not root and sudo is not installed
    """
    if is_root():
        return
    sudo = shutil.which("sudo")
    if not sudo:
        raise PrivilegeError("This tool must be run as root (use sudo)")
    command = [sudo, sys.executable, "-m", module, *argv]
    log.info("Root privileges required, re-running with sudo...")
    log.debug(f"Re-executing: {' '.join(command)}")
    os.execv(sudo, command)
