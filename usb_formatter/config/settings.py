"""Settings storage for formatter configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "USB_FORMATTER_SETTINGS_PATH",
        Path.home() / ".config" / "usb-formatter" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_LABEL = "USB_DRIVE"
GPT_THRESHOLD_BYTES = 2 * 1024**4  # 2 TiB
DEFAULT_PARTITION_POLL_ATTEMPTS = 15
DEFAULT_PARTITION_POLL_INTERVAL = 0.3
DEFAULT_PARTITION_RESCAN_EVERY = 5

DEFAULT_SETTINGS: dict[str, Any] = {
    "default_label": DEFAULT_LABEL,
    "gpt_threshold_bytes": GPT_THRESHOLD_BYTES,
    "partition_poll_attempts": DEFAULT_PARTITION_POLL_ATTEMPTS,
    "partition_poll_interval": DEFAULT_PARTITION_POLL_INTERVAL,
    "partition_rescan_every": DEFAULT_PARTITION_RESCAN_EVERY,
    "require_partition_node": False,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings(path: Path | None = None) -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    path = path or SETTINGS_PATH
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def save_settings(path: Path | None = None) -> None:
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings_store.values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def set_setting(key: str, value: Any) -> None:
    settings_store.values[key] = value


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def get_int(key: str, default: int = 0) -> int:
    try:
        return int(get_setting(key, default))
    except (TypeError, ValueError):
        return default


def get_float(key: str, default: float = 0.0) -> float:
    try:
        return float(get_setting(key, default))
    except (TypeError, ValueError):
        return default


load_settings()
