"""Flatten the UCI programming feed (movies → events → performances) into records."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from loguru import logger

from utils import KEY_SEPARATOR, identity_key
from utils.errors import NormalizationError


@dataclass(frozen=True)
class Record:
    """One performance of one movie, with movie- and event-level fields copied down."""

    movie_id: int
    event_id: int
    name: str
    date: date
    time: str
    screen: Any = None
    web_url: str | None = None
    buy_url: str | None = None
    poster_url: str | None = None
    is_purchasable: bool | None = None
    first_performance: Any = None
    movie_new: Any = None
    movie_path: str | None = None

    @property
    def key(self) -> str:
        return identity_key(self.movie_id, self.event_id, self.date, self.time)

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the feed's camelCase shape."""
        return {
            "movieId": self.movie_id,
            "eventId": self.event_id,
            "name": self.name,
            "isPurchasable": self.is_purchasable,
            "firstPerformance": self.first_performance,
            "date": self.date.isoformat(),
            "time": self.time,
            "movieNew": self.movie_new,
            "moviePath": self.movie_path,
            "screen": self.screen,
            "webUrl": self.web_url,
            "buyUrl": self.buy_url,
            "moviePosterMedium": self.poster_url,
        }

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> Record:
        """Rebuild a record from its stored form; raises NormalizationError if invalid."""
        return cls(
            movie_id=_require_int(obj, "movieId"),
            event_id=_require_int(obj, "eventId"),
            name=_require_str(obj, "name"),
            date=_parse_day(obj.get("date")),
            time=_require_time(obj),
            screen=obj.get("screen"),
            web_url=obj.get("webUrl"),
            buy_url=obj.get("buyUrl"),
            poster_url=obj.get("moviePosterMedium"),
            is_purchasable=obj.get("isPurchasable"),
            first_performance=obj.get("firstPerformance"),
            movie_new=obj.get("movieNew"),
            movie_path=obj.get("moviePath"),
        )


@dataclass
class NormalizeResult:
    records: list[Record] = field(default_factory=list)
    errors: list[NormalizationError] = field(default_factory=list)
    # Performance occurrences dropped, counting those under a skipped movie or event
    skipped: int = 0


# ---------- Field helpers ----------


def _require_int(obj: Mapping[str, Any], name: str) -> int:
    v = obj.get(name)
    if v is None or isinstance(v, bool):
        raise NormalizationError(f"missing or invalid {name}")
    try:
        return int(str(v).strip())
    except ValueError as e:
        raise NormalizationError(f"{name} is not an integer: {v!r}") from e


def _require_str(obj: Mapping[str, Any], name: str) -> str:
    v = obj.get(name)
    if v is None or str(v).strip() == "":
        raise NormalizationError(f"missing {name}")
    return str(v)


def _require_time(obj: Mapping[str, Any]) -> str:
    t = _require_str(obj, "time").strip()
    if KEY_SEPARATOR in t:
        raise NormalizationError(f"time contains {KEY_SEPARATOR!r}: {t!r}")
    return t


def _parse_day(v: Any) -> date:
    """Accept 'YYYY-MM-DD' or an ISO datetime and keep the date part."""
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    s = str(v or "").strip()
    if not s:
        raise NormalizationError("missing date")
    try:
        return date.fromisoformat(s[:10])
    except ValueError as e:
        raise NormalizationError(f"invalid date: {s!r}") from e


def _require_list(obj: Mapping[str, Any], name: str) -> list[Any]:
    v = obj.get(name)
    if not isinstance(v, list):
        raise NormalizationError(f"{name} is not a list")
    return v


def _occurrences(container: Any, *levels: str) -> int:
    """Best-effort count of performances beneath a skipped movie or event."""
    if not levels:
        return 1
    children = container.get(levels[0]) if isinstance(container, Mapping) else None
    if not isinstance(children, list):
        return 1
    return max(1, sum(_occurrences(c, *levels[1:]) for c in children))


# ---------- Public API ----------


def normalize(raw: Any) -> NormalizeResult:
    """Flatten a feed response into records, one per performance.

    Output follows source nesting order. Malformed movies, events or
    performances are skipped and reported in ``errors``; only a response that
    is not a list at all raises NormalizationError.
    """

    if not isinstance(raw, list):
        raise NormalizationError(f"feed response is {type(raw).__name__}, expected list")

    result = NormalizeResult()

    for mi, movie in enumerate(raw):
        mpath = f"[{mi}]"
        try:
            if not isinstance(movie, Mapping):
                raise NormalizationError("movie is not an object")
            movie_id = _require_int(movie, "movieId")
            name = _require_str(movie, "name")
            events = _require_list(movie, "events")
        except NormalizationError as e:
            result.errors.append(NormalizationError(str(e), path=mpath))
            result.skipped += _occurrences(movie, "events", "performances")
            continue

        for ei, event in enumerate(events):
            epath = f"{mpath}.events[{ei}]"
            try:
                if not isinstance(event, Mapping):
                    raise NormalizationError("event is not an object")
                event_id = _require_int(event, "eventId")
                day = _parse_day(event.get("date"))
                performances = _require_list(event, "performances")
            except NormalizationError as e:
                result.errors.append(NormalizationError(str(e), path=epath))
                result.skipped += _occurrences(event, "performances")
                continue

            for pi, perf in enumerate(performances):
                ppath = f"{epath}.performances[{pi}]"
                try:
                    if not isinstance(perf, Mapping):
                        raise NormalizationError("performance is not an object")
                    time_str = _require_time(perf)
                except NormalizationError as e:
                    result.errors.append(NormalizationError(str(e), path=ppath))
                    result.skipped += 1
                    continue
                result.records.append(
                    Record(
                        movie_id=movie_id,
                        event_id=event_id,
                        name=name,
                        date=day,
                        time=time_str,
                        screen=perf.get("screen"),
                        web_url=event.get("webUrl"),
                        buy_url=perf.get("buyUrl"),
                        poster_url=movie.get("moviePosterMedium"),
                        is_purchasable=movie.get("isPurchasable"),
                        first_performance=movie.get("firstPerformance"),
                        movie_new=event.get("movieNew"),
                        movie_path=event.get("moviePath"),
                    )
                )

    for err in result.errors:
        logger.warning("Skipped malformed feed entry {}", err)

    dupes = sum(c - 1 for c in Counter(r.key for r in result.records).values() if c > 1)
    if dupes:
        # Kept as received; the diff keeps the first record per key.
        logger.warning("Feed contains {} duplicate identity key(s)", dupes)

    logger.debug(
        "Normalized {} movies into {} records ({} skipped)",
        len(raw),
        len(result.records),
        result.skipped,
    )
    return result
