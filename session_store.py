"""session_store.py — Persist and restore reading sessions across two storage tiers."""

import asyncio
import json
import logging

from exceptions import StorageError, StorageQuotaError
from models import Session, session_summary

logger = logging.getLogger(__name__)

SESSION_KEY = "speedbook-reading-session"
USE_ARCHIVE_KEY = "speedbook-use-archive"
MAX_LOCAL_PAYLOAD_BYTES = 2 * 1024 * 1024


class SessionStore:
    """
    Saves sessions to the small local tier and promotes to the archive tier
    when the local tier is full, the payload is too big, or the local tier is
    unusable. The promotion is remembered in a flag so later loads go
    straight to the archive.

    Nothing here raises: failures are logged and reported as False or None.
    """

    def __init__(self, local, archive, key: str = SESSION_KEY,
                 max_local_bytes: int = MAX_LOCAL_PAYLOAD_BYTES):
        self.local = local
        self.archive = archive
        self.key = key
        self.max_local_bytes = max_local_bytes
        self._use_archive: bool | None = None
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def uses_archive(self) -> bool:
        """Whether sessions have been promoted to the archive tier."""
        if self._use_archive is None:
            try:
                self._use_archive = self.local.get(USE_ARCHIVE_KEY) == "true"
            except StorageError as e:
                logger.warning("Local tier unreadable, assuming archive: %s", e)
                self._use_archive = True
        return self._use_archive

    def _mark_archive(self) -> None:
        self._use_archive = True
        try:
            self.local.put(USE_ARCHIVE_KEY, "true")
        except StorageError as e:
            logger.warning("Could not persist archive flag: %s", e)

    async def _save_to_archive(self, payload: str) -> bool:
        try:
            await self.archive.put(self.key, payload)
        except StorageError as e:
            logger.error("Archive tier failed to save session: %s", e)
            return False
        logger.info("Session saved to archive tier (%d bytes)", len(payload))
        return True

    async def _promote(self, payload: str, reason: str) -> bool:
        logger.info("Switching session storage to archive tier: %s", reason)
        self._mark_archive()
        try:
            self.local.delete(self.key)
        except StorageError as e:
            logger.debug("Could not drop stale local session: %s", e)
        return await self._save_to_archive(payload)

    async def save(self, session: Session) -> bool:
        """Persist a full session, replacing any previous one. Returns success."""
        try:
            payload = json.dumps(session.to_dict())
        except (TypeError, ValueError) as e:
            logger.error("Session is not serializable: %s", e)
            return False

        async with self._lock(self.key):
            if self.uses_archive():
                return await self._save_to_archive(payload)

            size = len(payload.encode("utf-8"))
            if size > self.max_local_bytes:
                return await self._promote(payload, f"payload is {size / (1024 * 1024):.2f}MB")

            try:
                self.local.put(self.key, payload)
            except StorageQuotaError as e:
                return await self._promote(payload, str(e))
            except StorageError as e:
                return await self._promote(payload, f"local tier unavailable ({e})")

            logger.debug("Session saved to local tier (%d bytes)", size)
            return True

    async def _read(self) -> str | None:
        if self.uses_archive():
            return await self.archive.get(self.key)
        try:
            data = self.local.get(self.key)
        except StorageError as e:
            logger.warning("Local tier read failed, trying archive: %s", e)
            data = None
        if data is None:
            data = await self.archive.get(self.key)
        return data

    async def load(self) -> dict | None:
        """Return the stored session as a dict, or None if absent or unreadable."""
        try:
            raw = await self._read()
        except StorageError as e:
            logger.error("Failed to load session: %s", e)
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Stored session is corrupt: %s", e)
            return None
        if not isinstance(data, dict):
            logger.error("Stored session has unexpected type %s", type(data).__name__)
            return None
        return data

    async def has(self) -> bool:
        try:
            if self.local.has(self.key):
                return True
        except StorageError as e:
            logger.debug("Local tier check failed: %s", e)
        try:
            return await self.archive.has(self.key)
        except StorageError as e:
            logger.warning("Archive tier check failed: %s", e)
            return False

    async def clear(self) -> bool:
        """Delete the session from both tiers and reset the archive flag."""
        success = True
        async with self._lock(self.key):
            try:
                self.local.delete(self.key)
                self.local.delete(USE_ARCHIVE_KEY)
            except StorageError as e:
                logger.error("Failed to clear local session: %s", e)
                success = False
            try:
                await self.archive.delete(self.key)
            except StorageError as e:
                logger.error("Failed to clear archived session: %s", e)
                success = False
            self._use_archive = None
        return success

    async def summary(self) -> dict | None:
        return session_summary(await self.load())
