"""Telegram HTML formatter for new-performance announcements."""

from __future__ import annotations

import html as _html
from datetime import date

from parse.normalize import Record

# Telegram limits
MESSAGE_LIMIT = 4096
CAPTION_LIMIT = 1024

# ---------- Helpers: escaping and IT locale ----------


def tg_escape(text: str) -> str:
    """Escape text for Telegram HTML parse_mode (escape &, <, >)."""
    return _html.escape(text or "", quote=False)


IT_MONTHS = [
    "gennaio",
    "febbraio",
    "marzo",
    "aprile",
    "maggio",
    "giugno",
    "luglio",
    "agosto",
    "settembre",
    "ottobre",
    "novembre",
    "dicembre",
]

IT_WEEKDAYS = ["lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"]


def format_it_date(d: date) -> str:
    """E.g. 'venerdì 1 marzo 2024'."""
    return f"{IT_WEEKDAYS[d.weekday()]} {d.day} {IT_MONTHS[d.month - 1]} {d.year}"


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def _fit_name(name: str, avail: int) -> str:
    """Escape `name` so it fits in `avail` characters, cutting the raw text only."""
    esc = tg_escape(name)
    if len(esc) <= avail:
        return esc
    n = len(name)
    while n > 0:
        n -= 1
        cand = tg_escape(name[:n].rstrip()) + "…"
        if len(cand) <= avail:
            return cand
    return ""


# ---------- Public formatter ----------


def format_new_performance(record: Record, *, cinema_name: str = "", limit: int = MESSAGE_LIMIT) -> str:
    """Build the HTML announcement for one newly scheduled performance.

    Only the title is shortened to respect `limit`, so tags and entities stay whole.
    """

    where = f"all'UCI Cinemas {cinema_name}" if cinema_name else "all'UCI Cinemas"
    head = [f"🎥 🍿 Nuova proiezione {tg_escape(where)}!", ""]
    tail = [f"📅 {tg_escape(format_it_date(record.date))}, ore {tg_escape(record.time)}"]
    if record.screen not in (None, ""):
        tail.append(f"📍 Sala {tg_escape(str(record.screen))}")
    if record.movie_new:
        tail.append("✨ Novità")
    link = None
    if record.buy_url:
        link = f'🎟 <a href="{_html.escape(record.buy_url, quote=True)}">Acquista i biglietti</a>'
    elif record.web_url:
        link = f'ℹ️ <a href="{_html.escape(record.web_url, quote=True)}">Dettagli</a>'

    def _render(name_html: str, with_link: bool) -> str:
        lines = [*head, f"<b>{name_html}</b>", *tail]
        if with_link and link:
            lines.append(link)
        return "\n".join(lines)

    with_link = link is not None and len(_render("", True)) < limit
    avail = limit - len(_render("", with_link))
    return _render(_fit_name(_truncate(record.name, 200), max(0, avail)), with_link)


def format_error_report(text: str) -> str:
    return f"❗️ Errore:\n{tg_escape(text)}"
