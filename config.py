"""config.py — Process configuration from the environment and .env."""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv, set_key

ENV_FILE = Path(".env")

DEFAULT_STORAGE_DIR = Path.home() / ".speedbook"
DEFAULT_LOCAL_QUOTA_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_LOCAL_PAYLOAD_BYTES = 2 * 1024 * 1024
DEFAULT_AUTOSAVE_INTERVAL = 10.0     # seconds
DEFAULT_HOLD_THRESHOLD = 0.2         # seconds before a rewind press counts as a hold
DEFAULT_WPM = 300


@dataclass(frozen=True)
class ReaderConfig:
    storage_dir: Path = DEFAULT_STORAGE_DIR
    local_quota_bytes: int = DEFAULT_LOCAL_QUOTA_BYTES
    max_local_payload_bytes: int = DEFAULT_MAX_LOCAL_PAYLOAD_BYTES
    autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL
    hold_threshold: float = DEFAULT_HOLD_THRESHOLD
    default_wpm: int = DEFAULT_WPM

    @property
    def local_store_path(self) -> Path:
        return self.storage_dir / "local.json"

    @property
    def archive_dir(self) -> Path:
        return self.storage_dir / "archive"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "").strip()
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    return float(value) if value else default


def load_config(env_file: Path | None = None) -> ReaderConfig:
    """Read SPEEDBOOK_* settings from the environment (and .env if present)."""
    load_dotenv(env_file or ENV_FILE)
    storage_dir = os.getenv("SPEEDBOOK_STORAGE_DIR", "").strip()
    return ReaderConfig(
        storage_dir=Path(storage_dir).expanduser() if storage_dir else DEFAULT_STORAGE_DIR,
        local_quota_bytes=_env_int("SPEEDBOOK_LOCAL_QUOTA_BYTES", DEFAULT_LOCAL_QUOTA_BYTES),
        max_local_payload_bytes=_env_int(
            "SPEEDBOOK_MAX_LOCAL_PAYLOAD_BYTES", DEFAULT_MAX_LOCAL_PAYLOAD_BYTES
        ),
        autosave_interval=_env_float("SPEEDBOOK_AUTOSAVE_INTERVAL", DEFAULT_AUTOSAVE_INTERVAL),
        hold_threshold=_env_float("SPEEDBOOK_HOLD_THRESHOLD", DEFAULT_HOLD_THRESHOLD),
        default_wpm=_env_int("SPEEDBOOK_DEFAULT_WPM", DEFAULT_WPM),
    )


def save_default_wpm(wpm: int, env_file: Path | None = None) -> None:
    """Persist the preferred reading speed to .env for future runs."""
    env_file = env_file or ENV_FILE
    env_file.touch(exist_ok=True)
    set_key(str(env_file), "SPEEDBOOK_DEFAULT_WPM", str(wpm))
    os.environ["SPEEDBOOK_DEFAULT_WPM"] = str(wpm)
