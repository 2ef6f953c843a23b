"""storage.py — Key-value storage tiers for persisted reading sessions."""

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path

from exceptions import StorageQuotaError, StorageUnavailableError

logger = logging.getLogger(__name__)


def _write_atomic(path: Path, text: str) -> None:
    """Write text to path through a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w", encoding="utf-8", suffix=".tmp", delete=False, dir=path.parent
    ) as tmp:
        tmp.write(text)
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


class LocalStorage:
    """
    Small synchronous tier: every key lives in one JSON file with a size quota,
    in the manner of browser localStorage.
    """

    def __init__(self, path: Path, quota_bytes: int = 5 * 1024 * 1024):
        self.path = Path(path)
        self.quota_bytes = quota_bytes

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StorageUnavailableError(f"Cannot read {self.path}: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Local store %s is not valid JSON; starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def put(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        serialized = json.dumps(data)
        size = len(serialized.encode("utf-8"))
        if size > self.quota_bytes:
            raise StorageQuotaError(
                f"Local store quota exceeded writing {key!r}: {size} > {self.quota_bytes} bytes",
                size=size,
                quota=self.quota_bytes,
            )
        try:
            _write_atomic(self.path, serialized)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write {self.path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def has(self, key: str) -> bool:
        return key in self._load()

    def delete(self, key: str) -> None:
        data = self._load()
        if key not in data:
            return
        del data[key]
        try:
            _write_atomic(self.path, json.dumps(data))
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write {self.path}: {e}") from e


class ArchiveStorage:
    """Large asynchronous tier: one file per key, file I/O kept off the event loop."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", key)
        return self.directory / f"{safe}.json"

    async def put(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(_write_atomic, self._path(key), value)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write archive entry {key!r}: {e}") from e

    async def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageUnavailableError(f"Cannot read archive entry {key!r}: {e}") from e

    async def has(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).exists)

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._path(key).unlink, missing_ok=True)
        except OSError as e:
            raise StorageUnavailableError(f"Cannot delete archive entry {key!r}: {e}") from e
