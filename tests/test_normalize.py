from __future__ import annotations

from datetime import date

import pytest

from conftest import event, movie, performance
from parse.normalize import Record, normalize
from utils.errors import NormalizationError


@pytest.mark.parametrize("n,m,k", [(1, 1, 1), (2, 3, 4), (3, 1, 5)])
def test_normalize_yields_n_m_k_records(make_feed, n, m, k):
    result = normalize(make_feed(n, m, k))
    assert len(result.records) == n * m * k
    assert result.errors == []


def test_normalize_copies_fields_down_in_source_order():
    raw = [
        movie(
            7,
            "Dune",
            [
                event(70, "2024-03-01T00:00:00", [performance("18:00", "IMAX"), performance("21:15")]),
                event(71, "2024-03-02", [performance("20:00")]),
            ],
        )
    ]
    recs = normalize(raw).records
    assert [(r.event_id, r.time) for r in recs] == [(70, "18:00"), (70, "21:15"), (71, "20:00")]
    first = recs[0]
    assert first.movie_id == 7
    assert first.name == "Dune"
    assert first.date == date(2024, 3, 1)
    assert first.screen == "IMAX"
    assert first.web_url == "https://example.test/event/70"
    assert first.buy_url == "https://example.test/buy/18:00"
    assert first.is_purchasable is True
    assert first.key == "7|70|2024-03-01|18:00"


def test_normalize_is_deterministic(make_feed):
    raw = make_feed(2, 2, 2)
    assert normalize(raw).records == normalize(raw).records


def test_normalize_skips_malformed_occurrences_and_counts_them():
    raw = [
        movie(1, "A", [event(10, "2024-03-01", [performance("18:00"), {"screen": "2"}])]),
        {"name": "no id", "events": []},
        movie(2, "B", [event(20, "not-a-date", [performance("19:00")])]),
        movie(3, "C", [event(30, "2024-03-01", [performance("20:00|x")])]),
    ]
    result = normalize(raw)
    assert [r.key for r in result.records] == ["1|10|2024-03-01|18:00"]
    assert len(result.errors) == 4
    assert all(isinstance(e, NormalizationError) for e in result.errors)
    assert result.errors[0].path == "[0].events[0].performances[1]"
    assert result.skipped == 4


def test_normalize_counts_performances_under_a_skipped_movie_or_event():
    perfs = [performance("18:00"), performance("20:00"), performance("22:00")]
    no_id = movie(1, "A", [event(10, "2024-03-01", perfs)])
    del no_id["movieId"]
    raw = [
        no_id,
        movie(2, "B", [event(20, "bad", perfs[:2]), event(21, "2024-03-02", perfs[:1])]),
    ]
    result = normalize(raw)
    assert [r.key for r in result.records] == ["2|21|2024-03-02|18:00"]
    assert [e.path for e in result.errors] == ["[0]", "[1].events[0]"]
    assert result.skipped == 5


def test_normalize_rejects_non_list_response():
    with pytest.raises(NormalizationError):
        normalize({"error": "unauthorized"})


def test_record_roundtrips_through_feed_shape():
    rec = normalize([movie(5, "X", [event(50, "2024-04-10", [performance("17:45")])])]).records[0]
    d = rec.to_dict()
    assert d["movieId"] == 5 and d["eventId"] == 50 and d["date"] == "2024-04-10"
    assert Record.from_dict(d) == rec
