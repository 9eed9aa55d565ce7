from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from loguru import logger

from utils.errors import RetentionError, StoreError

from .store import BaseSnapshotStore


@dataclass
class RetentionReport:
    collection: str
    deleted: list[str] = field(default_factory=list)
    failures: list[RetentionError] = field(default_factory=list)


def purge(
    store: BaseSnapshotStore,
    collection: str,
    older_than: timedelta,
    now: datetime | None = None,
) -> RetentionReport:
    """Delete every entry of `collection` whose age is at least `older_than`.

    Entries are handled one by one; a failed delete is recorded and the scan
    goes on. Safe to re-run after an interruption.
    """

    now = now or datetime.now(UTC)
    report = RetentionReport(collection=collection)
    try:
        entries = store.list_sorted_by_recency(collection)
    except StoreError as e:
        report.failures.append(RetentionError(f"cannot list {collection}: {e}"))
        logger.error("Retention: cannot list {}: {}", collection, e)
        return report

    for entry in entries:
        if now - entry.timestamp < older_than:
            continue
        try:
            store.delete(entry.location)
        except Exception as e:
            report.failures.append(RetentionError(str(e), location=entry.location))
            logger.error("Retention: failed to delete {}: {}", entry.location, e)
            continue
        report.deleted.append(entry.location)
        logger.debug("Retention: deleted {}", entry.location)

    logger.info(
        "Retention {}: deleted {}, failed {} (window {})",
        collection,
        len(report.deleted),
        len(report.failures),
        older_than,
    )
    return report
