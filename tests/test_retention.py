from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sync.snapshots import FileSnapshotStore, StoredEntry, purge
from utils.errors import StoreWriteError

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


def test_purge_deletes_only_entries_past_the_window(tmp_path):
    store = FileSnapshotStore(str(tmp_path))
    young = store.put("scraped-data", NOW - timedelta(hours=10), "{}")
    old = store.put("scraped-data", NOW - timedelta(hours=200), "{}")

    report = purge(store, "scraped-data", timedelta(hours=144), NOW)

    assert report.deleted == [old]
    assert report.failures == []
    assert [e.location for e in store.list_sorted_by_recency("scraped-data")] == [young]


def test_purge_boundary_age_is_deleted(tmp_path):
    store = FileSnapshotStore(str(tmp_path))
    edge = store.put("scraped-data", NOW - timedelta(hours=144), "{}")
    assert purge(store, "scraped-data", timedelta(hours=144), NOW).deleted == [edge]


def test_purge_empty_collection(tmp_path):
    report = purge(FileSnapshotStore(str(tmp_path)), "scraped-data", timedelta(hours=1), NOW)
    assert report.deleted == [] and report.failures == []


class FlakyStore:
    def __init__(self, entries):
        self.entries = entries
        self.deleted = []

    def list_sorted_by_recency(self, collection):
        return list(self.entries)

    def delete(self, location):
        if location == "bad":
            raise StoreWriteError("permission denied")
        self.deleted.append(location)


def test_purge_continues_after_a_failed_delete():
    old = NOW - timedelta(days=30)
    store = FlakyStore(
        [
            StoredEntry("a", old),
            StoredEntry("bad", old),
            StoredEntry("c", old),
            StoredEntry("fresh", NOW),
        ]
    )
    report = purge(store, "scraped-data", timedelta(days=6), NOW)
    assert store.deleted == ["a", "c"]
    assert report.deleted == ["a", "c"]
    assert [f.location for f in report.failures] == ["bad"]
