"""Snapshot and diff artifacts: model, JSON encoding, persistence helpers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from parse.normalize import Record
from utils import iso_z
from utils.errors import NormalizationError, StoreReadError

from .store import BaseSnapshotStore, StoredEntry


@dataclass(frozen=True)
class Snapshot:
    records: tuple[Record, ...]
    created_at: datetime
    location: str | None = None

    @property
    def keys(self) -> set[str]:
        return {r.key for r in self.records}


@dataclass(frozen=True)
class DiffResult:
    entries: tuple[tuple[str, Record], ...] = ()
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    reference: str | None = None
    snapshot: str | None = None

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def records(self) -> list[Record]:
        return [r for _, r in self.entries]


# ---------- Encoding ----------


def dump_snapshot(snapshot: Snapshot) -> str:
    obj = {
        "generated_at": iso_z(snapshot.created_at),
        "items": [r.to_dict() for r in snapshot.records],
    }
    return json.dumps(obj, ensure_ascii=False, indent=2)


def load_snapshot(payload: str, *, location: str | None, created_at: datetime) -> Snapshot:
    """Decode a stored snapshot; both ``{"items": [...]}`` and a bare list are accepted."""

    try:
        obj = json.loads(payload)
    except ValueError as e:
        raise StoreReadError(f"snapshot {location} is not valid JSON: {e}") from e
    if isinstance(obj, dict):
        items = obj.get("items") or []
    elif isinstance(obj, list):
        items = obj
    else:
        raise StoreReadError(f"snapshot {location} has unexpected shape {type(obj).__name__}")
    try:
        records = tuple(Record.from_dict(it) for it in items)
    except (NormalizationError, AttributeError) as e:
        raise StoreReadError(f"snapshot {location} holds an invalid record: {e}") from e
    return Snapshot(records=records, created_at=created_at, location=location)


def dump_diff(result: DiffResult) -> str:
    obj: dict[str, Any] = {
        "generated_at": iso_z(result.created_at),
        "reference": result.reference,
        "snapshot": result.snapshot,
        "items": [{"key": k, "record": r.to_dict()} for k, r in result.entries],
    }
    return json.dumps(obj, ensure_ascii=False, indent=2)


def load_diff(payload: str, *, created_at: datetime) -> DiffResult:
    try:
        obj = json.loads(payload)
        entries = tuple(
            (str(it["key"]), Record.from_dict(it["record"])) for it in obj.get("items") or []
        )
    except (ValueError, KeyError, TypeError, AttributeError, NormalizationError) as e:
        raise StoreReadError(f"invalid diff payload: {e}") from e
    return DiffResult(
        entries=entries,
        created_at=created_at,
        reference=obj.get("reference"),
        snapshot=obj.get("snapshot"),
    )


# ---------- Store helpers ----------


def save_snapshot(store: BaseSnapshotStore, collection: str, snapshot: Snapshot) -> Snapshot:
    """Persist the snapshot and return it with its storage location set."""
    location = store.put(collection, snapshot.created_at, dump_snapshot(snapshot))
    logger.info("Snapshot saved: {} ({} records)", location, len(snapshot.records))
    return Snapshot(records=snapshot.records, created_at=snapshot.created_at, location=location)


def save_diff(store: BaseSnapshotStore, collection: str, result: DiffResult) -> str:
    location = store.put(collection, result.created_at, dump_diff(result))
    logger.info("Diff saved: {} ({} new records)", location, len(result))
    return location


def read_snapshot(store: BaseSnapshotStore, entry: StoredEntry) -> Snapshot:
    return load_snapshot(
        store.get(entry.location), location=entry.location, created_at=entry.timestamp
    )
