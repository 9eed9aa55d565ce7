from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any

from loguru import logger

from utils.errors import FetchError


class FeedClient:
    """GET the cinema programming JSON with a bearer token."""

    def __init__(self, url: str, token: str, *, timeout: int = 20) -> None:
        self.url = url
        self.token = token
        self.timeout = timeout

    def fetch(self) -> Any:
        req = urllib.request.Request(
            self.url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
            method="GET",
        )
        logger.info("Fetching programming feed: {}", self.url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                status = getattr(resp, "status", 200)
                payload = resp.read()
        except urllib.error.HTTPError as e:
            raise FetchError(f"feed returned HTTP {e.code} {e.reason}", status=e.code) from e
        except (urllib.error.URLError, TimeoutError, OSError) as e:
            raise FetchError(f"feed request failed: {e}") from e

        if not 200 <= int(status) < 300:
            raise FetchError(f"feed returned HTTP {status}", status=int(status))
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise FetchError(f"feed body is not valid JSON: {e}", status=int(status)) from e
        logger.debug("Feed fetched: {} bytes", len(payload))
        return data


def build_feed_client(cfg) -> FeedClient:
    return FeedClient(cfg.feed_url, cfg.api_token, timeout=cfg.http_timeout)
