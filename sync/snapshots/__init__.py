"""Snapshot storage, diffing and retention."""

from __future__ import annotations

from .core import (
    DiffResult,
    Snapshot,
    dump_diff,
    dump_snapshot,
    load_diff,
    load_snapshot,
    read_snapshot,
    save_diff,
    save_snapshot,
)
from .diff import diff
from .retention import RetentionReport, purge
from .store import (
    BaseSnapshotStore,
    FileSnapshotStore,
    S3SnapshotStore,
    SASnapshotStore,
    StoredEntry,
    get_store,
)

__all__ = [
    "Snapshot",
    "DiffResult",
    "StoredEntry",
    "BaseSnapshotStore",
    "FileSnapshotStore",
    "S3SnapshotStore",
    "SASnapshotStore",
    "get_store",
    "dump_snapshot",
    "load_snapshot",
    "dump_diff",
    "load_diff",
    "save_snapshot",
    "save_diff",
    "read_snapshot",
    "diff",
    "purge",
    "RetentionReport",
]
