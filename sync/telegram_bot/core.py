"""Telegram core primitives: API client and per-record notifier."""

from __future__ import annotations

import json
import urllib.error as _urlerr
import urllib.request
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any

from loguru import logger

from parse.normalize import Record
from utils.errors import NotifyError

from .formatting import CAPTION_LIMIT, MESSAGE_LIMIT, format_error_report, format_new_performance

# -------------------- API --------------------


class TelegramAPI:
    """Thin HTTP wrapper for Telegram Bot API using stdlib only."""

    def __init__(
        self, token: str, *, api_base: str = "https://api.telegram.org", timeout: int = 25
    ) -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def call(self, method: str, params: dict | None = None, *, timeout: int | None = None) -> dict:
        url = f"{self.api_base}/bot{self.token}/{method}"
        data = None
        headers = {"Content-Type": "application/json"}
        if params is not None:
            data = json.dumps(params).encode("utf-8")
        req = urllib.request.Request(url, data=data, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=timeout or self.timeout) as resp:
                payload = json.loads(resp.read())
        except _urlerr.HTTPError as e:
            txt = e.read().decode("utf-8", errors="ignore") if hasattr(e, "read") else str(e)
            raise NotifyError(f"Telegram HTTP {e.code} {e.reason}: {txt}") from e
        except (_urlerr.URLError, TimeoutError, OSError) as e:
            raise NotifyError(f"Telegram API request failed: {e}") from e
        except ValueError as e:
            raise NotifyError(f"Telegram API returned invalid JSON: {e}") from e
        if not payload.get("ok", False):
            raise NotifyError(f"Telegram API error: {payload.get('description', payload)}")
        return payload

    # Convenience wrappers
    def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = None,
        disable_web_page_preview: bool = True,
    ) -> dict:
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": disable_web_page_preview,
        }
        if parse_mode:
            params["parse_mode"] = parse_mode
        return self.call("sendMessage", params)

    def send_photo(
        self,
        chat_id: int | str,
        photo: str,
        *,
        caption: str | None = None,
        parse_mode: str | None = None,
    ) -> dict:
        params: dict[str, Any] = {"chat_id": chat_id, "photo": photo}
        if caption:
            params["caption"] = caption
        if parse_mode:
            params["parse_mode"] = parse_mode
        return self.call("sendPhoto", params)


# -------------------- Notifier --------------------


@dataclass
class NotifyOutcome:
    key: str
    ok: bool
    message_id: int | None = None
    error: NotifyError | None = None


class TelegramNotifier:
    """Sends one channel message per new performance; errors go to an admin chat."""

    def __init__(
        self,
        token: str,
        chat_id: int | str,
        *,
        cinema_name: str = "",
        admin_chat_id: int | str | None = None,
        concurrency: int = 4,
        timeout: int = 25,
        api: TelegramAPI | None = None,
    ) -> None:
        self.api = api or TelegramAPI(token, timeout=timeout)
        self.chat_id = chat_id
        self.cinema_name = cinema_name
        self.admin_chat_id = admin_chat_id
        self.concurrency = max(1, int(concurrency))
        self.timeout = timeout

    def notify(self, record: Record) -> NotifyOutcome:
        key = record.key
        try:
            if record.poster_url:
                caption = format_new_performance(
                    record, cinema_name=self.cinema_name, limit=CAPTION_LIMIT
                )
                resp = self.api.send_photo(
                    self.chat_id, record.poster_url, caption=caption, parse_mode="HTML"
                )
            else:
                text = format_new_performance(
                    record, cinema_name=self.cinema_name, limit=MESSAGE_LIMIT
                )
                resp = self.api.send_message(self.chat_id, text, parse_mode="HTML")
        except NotifyError as e:
            e.key = key
            logger.error("Notification failed for {}: {}", key, e)
            return NotifyOutcome(key=key, ok=False, error=e)
        message_id = (resp.get("result") or {}).get("message_id")
        logger.debug("Notified {} (message {})", key, message_id)
        return NotifyOutcome(key=key, ok=True, message_id=message_id)

    def notify_all(self, records: Sequence[Record]) -> list[NotifyOutcome]:
        """Notify every record through a bounded pool; outcomes keep input order."""

        if not records:
            return []
        workers = min(self.concurrency, len(records))
        outcomes: list[NotifyOutcome] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as pool:
            futures = [pool.submit(self.notify, r) for r in records]
            for record, fut in zip(records, futures):
                try:
                    # Each request is already bounded; this guards the join
                    outcomes.append(fut.result(timeout=self.timeout * 2))
                except FutureTimeout:
                    err = NotifyError("notification timed out", key=record.key)
                    logger.error("Notification timed out for {}", record.key)
                    outcomes.append(NotifyOutcome(key=record.key, ok=False, error=err))
                except Exception as e:
                    err = NotifyError(f"unexpected notifier error: {e}", key=record.key)
                    logger.exception("Notification crashed for {}", record.key)
                    outcomes.append(NotifyOutcome(key=record.key, ok=False, error=err))
        sent = sum(1 for o in outcomes if o.ok)
        logger.info("Telegram notifications sent: {}/{}", sent, len(outcomes))
        return outcomes

    def send_error(self, text: str) -> None:
        if not self.admin_chat_id:
            logger.debug("TELEGRAM_ADMIN_CHAT_ID not set; skipping error report")
            return
        try:
            self.api.send_message(
                self.admin_chat_id, format_error_report(text), parse_mode="HTML"
            )
        except NotifyError:
            logger.exception("Could not send error report to chat {}", self.admin_chat_id)


def build_notifier(cfg) -> TelegramNotifier:
    return TelegramNotifier(
        cfg.telegram_token,
        cfg.telegram_chat_id,
        cinema_name=cfg.cinema_name,
        admin_chat_id=cfg.telegram_admin_chat_id,
        concurrency=cfg.notify_concurrency,
        timeout=cfg.http_timeout,
    )
