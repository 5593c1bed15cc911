"""USB FAT32 formatter and Apple metadata cleaner."""

from usb_formatter.__version__ import __version__

__all__ = ["__version__"]
