"""Block device discovery, validation, unmounting, partitioning and formatting."""
