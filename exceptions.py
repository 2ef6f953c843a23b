"""exceptions.py — Exception hierarchy for speedbook."""


class SpeedbookError(Exception):
    """Base exception for all speedbook errors."""


class IngestionError(SpeedbookError):
    """Raised when a document cannot be decoded into any sections."""

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        if source:
            message = f"{message} ({source})"
        super().__init__(message)


class StorageError(SpeedbookError):
    """Raised by a storage backend when a key cannot be read or written."""


class StorageQuotaError(StorageError):
    """Raised when a write would exceed a backend's capacity."""

    def __init__(self, message: str, size: int | None = None, quota: int | None = None) -> None:
        self.size = size
        self.quota = quota
        super().__init__(message)


class StorageUnavailableError(StorageError):
    """Raised when a backend cannot be used at all (disabled, unwritable)."""


class SessionCorruptedError(SpeedbookError):
    """Raised when a stored session cannot be rebuilt into a readable document."""
