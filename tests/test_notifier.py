from __future__ import annotations

import re
import threading
from datetime import date
from html.parser import HTMLParser

import pytest

from parse.normalize import Record
from sync.telegram_bot import TelegramNotifier, format_it_date, format_new_performance
from sync.telegram_bot.formatting import CAPTION_LIMIT
from utils.errors import NotifyError


def rec(event_id: int, *, poster: str | None = None, name: str = "Dune <Parte 2>") -> Record:
    return Record(
        movie_id=1,
        event_id=event_id,
        name=name,
        date=date(2024, 3, 1),
        time="21:15",
        screen="IMAX",
        buy_url="https://example.test/buy?a=1&b=2",
        poster_url=poster,
    )


class FakeAPI:
    def __init__(self, fail_events: set[int] = frozenset()):
        self.fail_events = fail_events
        self.calls: list[tuple[str, object, str]] = []
        self._lock = threading.Lock()
        self._next_id = 0

    def _reply(self, method: str, chat_id, body: str) -> dict:
        with self._lock:
            self.calls.append((method, chat_id, body))
            self._next_id += 1
            mid = self._next_id
        for ev in self.fail_events:
            if f"event={ev} " in body:
                raise NotifyError("Telegram HTTP 400 Bad Request")
        return {"ok": True, "result": {"message_id": mid}}

    def send_message(self, chat_id, text, *, parse_mode=None, **_):
        return self._reply("sendMessage", chat_id, text)

    def send_photo(self, chat_id, photo, *, caption=None, parse_mode=None):
        return self._reply("sendPhoto", chat_id, f"{photo} {caption}")


def test_format_it_date():
    assert format_it_date(date(2024, 3, 1)) == "venerdì 1 marzo 2024"


def test_format_new_performance_escapes_html():
    text = format_new_performance(rec(1), cinema_name="Meridiana")
    assert "all'UCI Cinemas Meridiana" in text
    assert "<b>Dune &lt;Parte 2&gt;</b>" in text
    assert "ore 21:15" in text and "Sala IMAX" in text
    assert 'href="https://example.test/buy?a=1&amp;b=2"' in text


def test_format_new_performance_respects_limit():
    text = format_new_performance(rec(1, name="x" * 5000), limit=1024)
    assert len(text) <= 1024


class TagStack(HTMLParser):
    def __init__(self):
        super().__init__()
        self.open: list[str] = []
        self.balanced = True

    def handle_starttag(self, tag, attrs):
        self.open.append(tag)

    def handle_endtag(self, tag):
        if not self.open or self.open.pop() != tag:
            self.balanced = False


def assert_well_formed(text: str) -> None:
    parser = TagStack()
    parser.feed(text)
    parser.close()
    assert parser.balanced and parser.open == []
    assert re.search(r"&(?!amp;|lt;|gt;|quot;|#x27;)", text) is None


@pytest.mark.parametrize(
    "name, limit",
    [("&" * 200, CAPTION_LIMIT), ("<Dune> & " * 60, 300), ("x" * 5000, 250)],
)
def test_format_new_performance_shortens_title_without_breaking_markup(name, limit):
    text = format_new_performance(rec(1, name=name), cinema_name="Meridiana", limit=limit)
    assert len(text) <= limit
    assert_well_formed(text)
    assert "<b>" in text and "…</b>" in text
    assert 'href="https://example.test/buy?a=1&amp;b=2"' in text


def test_notify_uses_photo_when_poster_present():
    api = FakeAPI()
    notifier = TelegramNotifier("t", "@chan", api=api)
    outcome = notifier.notify(rec(1, poster="https://example.test/p.jpg"))
    assert outcome.ok and outcome.message_id == 1
    assert api.calls[0][0] == "sendPhoto" and api.calls[0][1] == "@chan"


def test_notify_all_does_not_stop_on_failure():
    api = FakeAPI(fail_events={2})
    notifier = TelegramNotifier("t", "@chan", api=api, concurrency=3)
    records = [
        rec(1, poster="https://example.test/event=1"),
        rec(2, poster="https://example.test/event=2"),
        rec(3),
    ]
    outcomes = notifier.notify_all(records)
    assert [o.key for o in outcomes] == [r.key for r in records]
    assert [o.ok for o in outcomes] == [True, False, True]
    assert isinstance(outcomes[1].error, NotifyError)
    assert outcomes[1].error.key == records[1].key
    assert len(api.calls) == 3


def test_notify_all_empty():
    assert TelegramNotifier("t", "@chan", api=FakeAPI()).notify_all([]) == []


def test_send_error_without_admin_is_noop():
    api = FakeAPI()
    TelegramNotifier("t", "@chan", api=api).send_error("boom")
    assert api.calls == []


def test_send_error_to_admin():
    api = FakeAPI()
    TelegramNotifier("t", "@chan", api=api, admin_chat_id=42).send_error("boom <x>")
    assert api.calls == [("sendMessage", 42, "❗️ Errore:\nboom &lt;x&gt;")]
