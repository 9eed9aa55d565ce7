from __future__ import annotations

from datetime import UTC, datetime

from loguru import logger

from parse.normalize import Record

from .core import DiffResult, Snapshot


def diff(
    reference: Snapshot | None,
    current: Snapshot,
    *,
    created_at: datetime | None = None,
) -> DiffResult:
    """Return records of `current` whose identity key is absent from `reference`.

    Without a reference (first run) the result is empty. Output keeps the
    order of `current`; repeated keys in `current` are reported once, first
    occurrence wins. Records missing from `current` are not reported.
    """

    created_at = created_at or datetime.now(UTC)
    if reference is None:
        logger.info("No reference snapshot; treating run as bootstrap")
        return DiffResult(entries=(), created_at=created_at, snapshot=current.location)

    seen = reference.keys
    entries: list[tuple[str, Record]] = []
    for record in current.records:
        k = record.key
        if k in seen:
            continue
        seen.add(k)
        entries.append((k, record))

    logger.debug(
        "Diff {} -> {}: reference={}, current={}, new={}",
        reference.location,
        current.location,
        len(reference.records),
        len(current.records),
        len(entries),
    )
    return DiffResult(
        entries=tuple(entries),
        created_at=created_at,
        reference=reference.location,
        snapshot=current.location,
    )
