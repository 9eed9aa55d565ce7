"""Small utilities shared across modules."""

from __future__ import annotations

import re
import time
from collections.abc import Sequence
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:  # pragma: no cover
    from parse.normalize import Record

KEY_SEPARATOR = "|"

# "2024-03-01T18-30-00-123Z" as produced by storage_timestamp()
_STORAGE_TS_RE = re.compile(r"(\d{4}-\d{2}-\d{2})T(\d{2})-(\d{2})-(\d{2})-(\d{3})Z")


def identity_key(movie_id: int, event_id: int, day: date, time_str: str) -> str:
    """Return the identity key of one performance.

    Format: ``movieId|eventId|YYYY-MM-DD|time``. The separator never occurs in
    integer ids or ISO dates; callers must reject times that contain it.
    """

    return KEY_SEPARATOR.join((str(int(movie_id)), str(int(event_id)), day.isoformat(), time_str))


def iso_z(ts: datetime) -> str:
    """Format an aware datetime as a millisecond ISO string in UTC with a trailing Z."""

    ts = ts.astimezone(UTC)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def storage_timestamp(ts: datetime) -> str:
    """Return the key-safe form of a timestamp (``:`` and ``.`` replaced by ``-``)."""

    return iso_z(ts).replace(":", "-").replace(".", "-")


def parse_storage_timestamp(text: str) -> datetime | None:
    """Recover the UTC timestamp embedded in a storage key, or None."""

    m = _STORAGE_TS_RE.search(text or "")
    if not m:
        return None
    day, hh, mm, ss, ms = m.groups()
    try:
        base = datetime.strptime(f"{day} {hh}:{mm}:{ss}", "%Y-%m-%d %H:%M:%S")
    except ValueError:
        return None
    return base.replace(microsecond=int(ms) * 1000, tzinfo=UTC)


def logged_sleep(
    total_seconds: float,
    *,
    message: str = "Waiting",
    tick_seconds: float = 1.0,
    bar_width: int = 30,
) -> None:
    """Sleep with a simple textual progress bar logged via loguru."""

    try:
        total = float(total_seconds)
    except (TypeError, ValueError):
        total = 0.0
    if total <= 0:
        return

    logger.debug("{}: {} s", message, int(total))

    start = time.monotonic()
    end = start + total

    while True:
        now = time.monotonic()
        remaining = max(0.0, end - now)
        elapsed = total - remaining
        frac = min(1.0, elapsed / total)
        filled = int(round(bar_width * frac)) if bar_width > 0 else 0
        empty = bar_width - filled
        bar = (
            "[" + ("█" * filled) + (" " * max(0, empty)) + f"] {int(elapsed):02d}/{int(total):02d}s"
        )
        logger.opt(raw=True).debug("\r" + bar)
        if remaining <= 0:
            break
        time.sleep(tick_seconds if remaining > tick_seconds else remaining)

    logger.opt(raw=True).debug("\n")
    logger.debug("Wait finished")


def _log_samples(records: Sequence["Record"], *, max_items: int = 5) -> None:
    """Log a handful of normalized records for quick visibility in debug logs."""

    for sample in records[:max_items]:
        logger.debug(
            "Sample: {} {} | {} | screen {} | {}",
            sample.date.isoformat(),
            sample.time,
            sample.name,
            sample.screen,
            sample.key,
        )
