"""Command line entry point for the USB FAT32 formatter."""

from __future__ import annotations

import argparse
import sys
from typing import Callable, Optional, Sequence

from usb_formatter.config import settings
from usb_formatter.domain.models import (
    BlockDevice,
    FormatJob,
    PipelineStage,
    normalize_label,
)
from usb_formatter.logging import LoggerFactory, setup_logging
from usb_formatter.pipeline import run_format_job
from usb_formatter.privilege import ensure_root
from usb_formatter.storage.devices import (
    describe_device,
    device_summary,
    enumerate_devices,
    get_root_device,
)
from usb_formatter.storage.exceptions import (
    InvalidSelectionError,
    PrivilegeError,
    StorageError,
    UnmountFailedError,
)


log = LoggerFactory.for_system()

USAGE_EPILOG = """\
examples:
  usb-formatter                   Interactive mode - select device from menu
  usb-formatter /dev/sdb          Format specific device
  usb-formatter --list            List available USB devices
  usb-formatter --force /dev/sdb  Format without confirmation (dangerous!)

WARNING: This will erase all data on the selected USB drive!
"""


class _ArgumentParser(argparse.ArgumentParser):
    """Print the full usage to stderr and exit 1 on bad arguments."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_help(sys.stderr)
        self.exit(1, f"\n{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="usb-formatter",
        description="USB FAT32 Formatter - Format USB drives to FAT32 format",
        epilog=USAGE_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-l", "--list", action="store_true", help="List available USB devices and exit"
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Skip confirmation prompt (use with caution!)",
    )
    parser.add_argument(
        "--label",
        help="Volume label (max 11 characters, upper-cased); prompted when omitted",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail if the new partition node cannot be confirmed",
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", help="Enable verbose debug output"
    )
    parser.add_argument(
        "--trace", action="store_true", help="Enable very verbose trace output"
    )
    parser.add_argument(
        "device",
        nargs="?",
        metavar="DEVICE",
        help="Target device to format (e.g., /dev/sdb); interactive mode if omitted",
    )
    return parser


def print_banner() -> None:
    print("USB FAT32 Formatter CLI")
    print("================================")
    print()


def print_devices(devices: Sequence[BlockDevice]) -> None:
    print("Available USB devices:")
    print("=====================")
    print()
    for index, device in enumerate(devices, start=1):
        print(f"{index}) {device.path}")
        print(f"   {device_summary(device)}")
        print()


def select_device(
    devices: Sequence[BlockDevice],
    input_fn: Callable[[str], str] = input,
) -> BlockDevice:
    """Ask the user to pick one of ``devices`` by number.

    Raises:
        InvalidSelectionError: If the answer is not a number in range
    """
    print_devices(devices)
    try:
        selection = input_fn(f"Select device number (1-{len(devices)}): ").strip()
    except EOFError:
        selection = ""
    if not (selection.isascii() and selection.isdigit()):
        raise InvalidSelectionError(selection, len(devices))
    if not 1 <= int(selection) <= len(devices):
        raise InvalidSelectionError(selection, len(devices))
    return devices[int(selection) - 1]


def prompt_label(default: str, input_fn: Callable[[str], str] = input) -> str:
    try:
        answer = input_fn(f"Volume label [{default}]: ")
    except EOFError:
        answer = ""
    return normalize_label(answer, default)


def confirm_action(
    device: BlockDevice, label: str, input_fn: Callable[[str], str] = input
) -> bool:
    print()
    log.warning(f"You are about to format: {device.path}")
    print(f"   {device_summary(device)}")
    print(f"   New label: {label}")
    print()
    log.warning("ALL DATA ON THIS DEVICE WILL BE ERASED!")
    print()
    try:
        confirmation = input_fn("Type 'yes' to continue, anything else to cancel: ")
    except EOFError:
        confirmation = ""
    return confirmation.strip() == "yes"


def list_devices(root_device: Optional[str]) -> int:
    log.info("Scanning for USB devices...")
    print()
    devices = enumerate_devices(root_device)
    if not devices:
        log.warning("No USB devices found")
        return 1
    print_devices(devices)
    return 0


def format_usb(args: argparse.Namespace, root_device: Optional[str]) -> int:
    job = FormatJob(
        device_path="",
        force=args.force,
        require_partition_node=args.strict
        or settings.get_bool("require_partition_node"),
        root_device=root_device,
        stage=PipelineStage.SCANNING,
    )
    default_label = settings.get_setting("default_label", settings.DEFAULT_LABEL)

    if args.device:
        job.select(args.device)
    else:
        log.info("Scanning for USB devices...")
        devices = enumerate_devices(root_device)
        if not devices:
            log.error("No USB devices found")
            return 1
        print()
        try:
            chosen = select_device(devices)
        except InvalidSelectionError:
            job.fail()
            raise
        job.select(chosen.path, chosen.size_bytes)

    run_format_job(job, until=PipelineStage.VALIDATED)

    device = describe_device(job.base_device)
    if job.size_bytes is None:
        job.size_bytes = device.size_bytes
    log.info(f"Selected device: {job.device_path}")
    log.info(device_summary(device))

    if args.label is not None:
        job.label = normalize_label(args.label, default_label)
    elif args.force:
        job.label = normalize_label(None, default_label)
    else:
        job.label = prompt_label(default_label)

    if not args.force and not confirm_action(device, job.label):
        log.info("Operation cancelled")
        return 0

    run_format_job(job)

    print()
    log.success("USB drive formatted successfully!")
    log.info("You can now safely remove the USB drive")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug, trace=args.trace)

    try:
        ensure_root(argv)
    except PrivilegeError as error:
        log.error(str(error))
        return 1

    print_banner()
    root_device = get_root_device()
    log.debug(f"Root filesystem device: {root_device or 'unknown'}")

    if args.list:
        return list_devices(root_device)

    try:
        return format_usb(args, root_device)
    except UnmountFailedError as error:
        log.error(str(error))
        log.error("Failed to unmount device. Please unmount manually and try again")
        return 1
    except StorageError as error:
        log.error(str(error))
        return 1
