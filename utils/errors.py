"""Error taxonomy shared by the feed, store, diff, notify and retention stages."""

from __future__ import annotations


class WatchError(Exception):
    pass


class ConfigError(WatchError):
    pass


class FetchError(WatchError):
    """Feed could not be fetched (network, non-2xx, invalid JSON). Fatal to a run."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NormalizationError(WatchError):
    """Malformed feed entry.

    Raised for the whole response only when it is not a list; per-occurrence
    problems are collected instead of raised.
    """

    def __init__(self, message: str, *, path: str = "") -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class StoreError(WatchError):
    pass


class StoreReadError(StoreError):
    pass


class SnapshotNotFound(StoreReadError):
    def __init__(self, location: str) -> None:
        super().__init__(f"not found: {location}")
        self.location = location


class StoreWriteError(StoreError):
    pass


class NotifyError(WatchError):
    def __init__(self, message: str, *, key: str = "") -> None:
        super().__init__(message)
        self.key = key


class RetentionError(WatchError):
    def __init__(self, message: str, *, location: str = "") -> None:
        super().__init__(message)
        self.location = location
