"""Recursively remove macOS metadata files from a directory tree.

Finder, Spotlight and AppleDouble leave files such as .DS_Store and ._*
on every volume a Mac touches. Only regular files are matched; directories
with the same names (a real .Trashes folder, for example) are left alone.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence

from usb_formatter.logging import LoggerFactory, setup_logging


APPLE_PATTERNS = (
    ".DS_Store",
    "._*",
    ".Spotlight-V100",
    ".Trashes",
    ".fseventsd",
    ".TemporaryItems",
    ".DocumentRevisions-V100",
    ".VolumeIcon.icns",
    ".AppleDB",
    ".AppleDesktop",
    ".AppleDouble",
)

log = LoggerFactory.for_cleaner()


@dataclass
class CleanResult:
    found: int = 0
    deleted: int = 0
    failed: list[Path] = field(default_factory=list)


def find_apple_files(root: Path, pattern: str) -> Iterator[Path]:
    """Regular files under ``root`` whose name matches ``pattern``."""
    for path in sorted(root.rglob(pattern)):
        if path.is_file() and not path.is_symlink():
            yield path


def clean_apple_files(
    root: Path,
    dry_run: bool = False,
    verbose: bool = False,
    patterns: Sequence[str] = APPLE_PATTERNS,
) -> CleanResult:
    """Delete (or with ``dry_run`` only count) Apple metadata files under ``root``.

    A file that cannot be deleted is logged and recorded in ``failed``; the
    scan continues.
    """
    result = CleanResult()
    log.info(f"Scanning directory recursively: {root}")
    if dry_run:
        log.info("DRY RUN MODE - No files will be deleted")

    for pattern in patterns:
        matches = list(find_apple_files(root, pattern))
        if not matches:
            continue
        log.info(f"Found {len(matches)} file(s) matching pattern: {pattern}")
        for path in matches:
            if verbose:
                print(f"  {path}")
            if dry_run:
                continue
            try:
                path.unlink()
            except OSError as error:
                log.warning(f"Failed to delete: {path} ({error})")
                result.failed.append(path)
            else:
                result.deleted += 1
        result.found += len(matches)

    if result.found == 0:
        log.success(f"No Apple files found in {root}")
    elif dry_run:
        log.info(f"Would delete {result.found} Apple file(s)")
    else:
        log.success(f"Deleted {result.deleted} out of {result.found} Apple file(s)")
    return result


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_help(sys.stderr)
        self.exit(1, f"\n{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="clean-apple-files",
        description="Apple File Cleaner - Recursively removes Apple system files",
        epilog="Apple files that will be removed:\n    " + ", ".join(APPLE_PATTERNS),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show detailed output"
    )
    parser.add_argument(
        "-d", "--debug", action="store_true", help="Enable verbose debug output"
    )
    parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        metavar="DIRECTORY",
        help="Target directory to clean (default: current directory)",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug)

    target = Path(args.directory)
    if not target.is_dir():
        log.error(f"Directory does not exist: {args.directory}")
        return 1
    target = target.resolve()

    print("Apple File Cleaner CLI")
    print("================================")
    print()

    clean_apple_files(target, dry_run=args.dry_run, verbose=args.verbose)

    print()
    log.info("Operation completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
