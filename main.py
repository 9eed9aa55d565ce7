"""Zero-CLI entrypoint and application orchestration.

Reads configuration from `.env.config` and environment variables, then runs the
watch pipeline once, or every WATCH_INTERVAL_SECONDS when that is set.
`handler` is the entry for scheduled serverless invocation.
"""

from __future__ import annotations

import json
import sys
from typing import Any

from loguru import logger

from parse.feed import build_feed_client
from sync.pipeline import Pipeline, RunReport
from sync.snapshots import get_store
from sync.telegram_bot import TelegramNotifier, build_notifier
from utils import logged_sleep
from utils.config import AppConfig, ConfigError, load_env_config, setup_logging


def build_pipeline(cfg: AppConfig, notifier: TelegramNotifier) -> Pipeline:
    return Pipeline(cfg, get_store(cfg), build_feed_client(cfg), notifier)


def run_once(cfg: AppConfig) -> RunReport:
    """Run the pipeline once; fatal errors are reported to the admin chat and re-raised."""

    notifier = build_notifier(cfg)
    try:
        return build_pipeline(cfg, notifier).run()
    except Exception as e:
        logger.exception("Run aborted: {}", e)
        notifier.send_error(f"{type(e).__name__}: {e}\nSee logs for details.")
        raise


def run(env_path: str = ".env.config") -> None:
    try:
        cfg: AppConfig = load_env_config(env_path)
    except ConfigError as ce:
        logger.error("Configuration error: {}", ce)
        sys.exit(2)

    setup_logging(level=cfg.log_level, log_file=cfg.log_file, color=cfg.log_color)
    logger.debug(
        "Startup: cinema={}, backend={}, dry_run={}, retention={}, interval={}s",
        cfg.cinema_id,
        cfg.storage_backend,
        cfg.dry_run,
        cfg.retention,
        cfg.watch_interval_seconds,
    )
    if cfg.dry_run:
        logger.info("Dry-run: external writes disabled")

    if cfg.watch_interval_seconds <= 0:
        try:
            run_once(cfg)
        except Exception:
            sys.exit(1)
        return

    while True:
        try:
            run_once(cfg)
        except KeyboardInterrupt:
            logger.info("Stopped by Ctrl+C")
            return
        except Exception:
            # Already logged and reported; the next cycle starts fresh
            pass
        try:
            logged_sleep(cfg.watch_interval_seconds, message="Waiting for next check")
        except KeyboardInterrupt:
            logger.info("Stopped by Ctrl+C")
            return


def handler(event: Any = None, context: Any = None) -> dict[str, Any]:
    """Scheduled-function entry: one run, result as a status/body dict."""

    try:
        cfg = load_env_config(".env.config")
    except ConfigError as ce:
        return {"statusCode": 500, "body": json.dumps({"error": str(ce)})}
    setup_logging(level=cfg.log_level, log_file=None, color=False)
    try:
        report = run_once(cfg)
    except Exception as e:
        return {"statusCode": 500, "body": json.dumps({"error": str(e)})}
    return {
        "statusCode": 200,
        "body": json.dumps(
            {
                "state": report.state.value,
                "records": report.records,
                "new": report.new_records,
                "notified": report.notified,
                "snapshot": report.snapshot,
                "diff": report.diff,
                "notifyFailures": len(report.notify_failures),
                "retentionFailures": len(report.retention_failures),
            }
        ),
    }


if __name__ == "__main__":
    run(".env.config")
