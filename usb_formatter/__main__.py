import sys

from usb_formatter.main import main


if __name__ == "__main__":
    sys.exit(main())
