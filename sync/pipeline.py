"""One watch run: fetch → normalize → diff against latest → persist → notify → retain.

Failures before persistence abort the run. Notification and retention
problems are collected in the report and never undo the stored snapshot/diff
pair.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from loguru import logger

from parse.normalize import NormalizeResult, normalize
from utils import _log_samples
from utils.config import AppConfig
from utils.errors import (
    NormalizationError,
    NotifyError,
    RetentionError,
    SnapshotNotFound,
    WatchError,
)

from .snapshots import (
    BaseSnapshotStore,
    DiffResult,
    Snapshot,
    diff,
    purge,
    read_snapshot,
    save_diff,
    save_snapshot,
)
from .telegram_bot import NotifyOutcome


class Feed(Protocol):
    def fetch(self) -> Any: ...


class Notifier(Protocol):
    def notify_all(self, records: list) -> list[NotifyOutcome]: ...


class RunState(str, Enum):
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    LOCATING_REFERENCE = "locating_reference"
    DIFFING = "diffing"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    RETAINING = "retaining"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunReport:
    started_at: datetime
    state: RunState = RunState.FETCHING
    records: int = 0
    new_records: int = 0
    reference: str | None = None
    snapshot: str | None = None
    diff: str | None = None
    skipped: int = 0
    notified: int = 0
    normalization_errors: list[NormalizationError] = field(default_factory=list)
    notify_failures: list[NotifyError] = field(default_factory=list)
    retention_failures: list[RetentionError] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"state={self.state.value} records={self.records} new={self.new_records} "
            f"snapshot={self.snapshot} diff={self.diff} reference={self.reference} "
            f"skipped={self.skipped} notified={self.notified} "
            f"notify_failures={len(self.notify_failures)} "
            f"purged={len(self.deleted)} retention_failures={len(self.retention_failures)}"
        )


class Pipeline:
    def __init__(
        self,
        cfg: AppConfig,
        store: BaseSnapshotStore,
        feed: Feed,
        notifier: Notifier,
    ) -> None:
        self.cfg = cfg
        self.store = store
        self.feed = feed
        self.notifier = notifier
        self.last_report: RunReport | None = None

    def _enter(self, report: RunReport, state: RunState) -> None:
        logger.debug("Run state: {} -> {}", report.state.value, state.value)
        report.state = state

    def _locate_reference(self) -> Snapshot | None:
        entries = self.store.list_sorted_by_recency(self.cfg.snapshot_collection)
        if not entries:
            return None
        latest = entries[0]
        try:
            return read_snapshot(self.store, latest)
        except SnapshotNotFound:
            # Listed but gone (e.g. purged in between): same as no prior snapshot
            logger.warning("Latest snapshot {} disappeared; treating as first run", latest.location)
            return None

    def run(self, now: datetime | None = None) -> RunReport:
        now = now or datetime.now(UTC)
        report = RunReport(started_at=now)
        self.last_report = report
        dry_run = bool(self.cfg.dry_run)

        try:
            self._enter(report, RunState.FETCHING)
            raw = self.feed.fetch()

            self._enter(report, RunState.NORMALIZING)
            normalized: NormalizeResult = normalize(raw)
            report.normalization_errors = list(normalized.errors)
            report.skipped = normalized.skipped
            report.records = len(normalized.records)
            _log_samples(normalized.records)
            current = Snapshot(records=tuple(normalized.records), created_at=now)

            self._enter(report, RunState.LOCATING_REFERENCE)
            reference = self._locate_reference()
            report.reference = reference.location if reference else None

            self._enter(report, RunState.DIFFING)
            result: DiffResult = diff(reference, current, created_at=now)
            report.new_records = len(result)

            self._enter(report, RunState.PERSISTING)
            if dry_run:
                logger.info("Dry-run: snapshot and diff not persisted")
            else:
                current = save_snapshot(self.store, self.cfg.snapshot_collection, current)
                report.snapshot = current.location
                result = dataclasses.replace(result, snapshot=current.location)
                report.diff = save_diff(self.store, self.cfg.diff_collection, result)
        except WatchError as e:
            logger.error("Run failed while {}: {}", report.state.value, e)
            self._enter(report, RunState.FAILED)
            raise
        except Exception:
            logger.exception("Unexpected error while {}", report.state.value)
            self._enter(report, RunState.FAILED)
            raise

        self._enter(report, RunState.NOTIFYING)
        self._notify(report, result, dry_run=dry_run)

        self._enter(report, RunState.RETAINING)
        self._retain(report, now, dry_run=dry_run)

        self._enter(report, RunState.DONE)
        if report.notify_failures or report.retention_failures or report.normalization_errors:
            logger.warning("Run finished with non-fatal errors: {}", report.summary())
        else:
            logger.success("Run finished: {}", report.summary())
        return report

    def _notify(self, report: RunReport, result: DiffResult, *, dry_run: bool) -> None:
        if not len(result):
            logger.info("No new performances; no notifications sent")
            return
        if dry_run:
            for key, _ in result.entries:
                logger.info("Dry-run: would notify {}", key)
            return
        try:
            outcomes = self.notifier.notify_all(result.records)
        except Exception as e:
            logger.exception("Notification batch failed")
            report.notify_failures = [
                NotifyError(f"batch failed: {e}", key=k) for k, _ in result.entries
            ]
            return
        report.notify_failures = [
            o.error or NotifyError("notification failed", key=o.key) for o in outcomes if not o.ok
        ]
        report.notified = sum(1 for o in outcomes if o.ok)

    def _retain(self, report: RunReport, now: datetime, *, dry_run: bool) -> None:
        if dry_run:
            logger.info("Dry-run: retention skipped")
            return
        for collection in (self.cfg.snapshot_collection, self.cfg.diff_collection):
            try:
                rr = purge(self.store, collection, self.cfg.retention, now)
            except Exception as e:
                logger.exception("Retention failed for {}", collection)
                report.retention_failures.append(RetentionError(str(e)))
                continue
            report.deleted.extend(rr.deleted)
            report.retention_failures.extend(rr.failures)
