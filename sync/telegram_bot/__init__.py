"""Telegram utilities: API client, notifier, message formatting."""

from __future__ import annotations

from .core import NotifyOutcome, TelegramAPI, TelegramNotifier, build_notifier
from .formatting import format_error_report, format_it_date, format_new_performance, tg_escape

__all__ = [
    "TelegramAPI",
    "TelegramNotifier",
    "NotifyOutcome",
    "build_notifier",
    "format_new_performance",
    "format_error_report",
    "format_it_date",
    "tg_escape",
]
