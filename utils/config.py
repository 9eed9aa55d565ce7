from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from datetime import timedelta

from dotenv import load_dotenv
from loguru import logger

from utils.errors import ConfigError

__all__ = ["AppConfig", "ConfigError", "env_get", "env_get_bool", "load_env_config", "setup_logging"]


UCI_API_BASE = "https://www.ucicinemas.it/rest/v3"
DEFAULT_REGION = "eu-south-1"
STORAGE_BACKENDS = ("s3", "file", "sql")


def env_get(key: str, *aliases: str, default: str | None = None) -> str | None:
    """Return the first non-empty value from env among `key` and `aliases`."""

    for k in (key, *aliases):
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v
    return default


def env_get_bool(key: str, *aliases: str, default: bool | None = None) -> bool | None:
    """Parse a boolean value from env for `key`/`aliases` if present."""

    v = env_get(key, *aliases)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, *aliases: str, default: int) -> int:
    raw = env_get(key, *aliases)
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        logger.warning("Invalid integer for {}: {!r}; using {}", key, raw, default)
        return default


@dataclass
class AppConfig:
    cinema_id: str
    api_token: str
    telegram_token: str
    telegram_chat_id: str
    retention: timedelta
    api_base: str = UCI_API_BASE
    cinema_name: str = ""
    # Storage
    storage_backend: str = "s3"
    s3_bucket: str | None = None
    aws_region: str = DEFAULT_REGION
    storage_dir: str | None = None
    database_url: str | None = None
    snapshot_collection: str = "scraped-data"
    diff_collection: str = "differences-data"
    # Behaviour
    http_timeout: int = 20
    notify_concurrency: int = 4
    telegram_admin_chat_id: str | None = None
    dry_run: bool = False
    watch_interval_seconds: int = 0
    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    log_color: bool | None = None

    @property
    def feed_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/cinemas/{self.cinema_id}/programming"


def load_env_config(env_path: str) -> AppConfig:
    """Load configuration from a .env-style file and the environment.

    Raises ConfigError listing every missing required variable.
    """

    candidates: list[str] = []
    env_file_env = os.getenv("ENV_FILE")
    if env_file_env:
        candidates.append(env_file_env)
    if env_path:
        if os.path.isabs(env_path):
            candidates.append(env_path)
        else:
            candidates.append(os.path.join(os.getcwd(), env_path))
    for p in candidates:
        if os.path.isfile(p) and load_dotenv(p):
            logger.debug("Loaded config file: {}", p)
            break

    missing: list[str] = []

    def _required(key: str, *aliases: str) -> str:
        v = env_get(key, *aliases)
        if v is None:
            missing.append(key)
            return ""
        return v.strip()

    cinema_id = _required("UCI_CINEMA_ID", "CINEMA_ID")
    api_token = _required("UCI_API_TOKEN", "UCI_BEARER_TOKEN")
    telegram_token = _required("TELEGRAM_BOT_TOKEN", "TELEGRAM_TOKEN")
    telegram_chat_id = _required("TELEGRAM_CHANNEL_CHAT_ID", "TELEGRAM_CHAT_ID")

    # Retention window: hours take precedence over days
    retention: timedelta | None = None
    hours_raw = env_get("RETENTION_HOURS")
    days_raw = env_get("RETENTION_DAYS")
    try:
        if hours_raw is not None:
            retention = timedelta(hours=float(hours_raw))
        elif days_raw is not None:
            retention = timedelta(days=float(days_raw))
    except ValueError as e:
        raise ConfigError(f"Invalid retention window: {e}") from e
    if retention is None:
        missing.append("RETENTION_HOURS")
    elif retention <= timedelta(0):
        raise ConfigError("Retention window must be positive")

    storage_backend = (env_get("STORAGE_BACKEND", default="s3") or "s3").strip().lower()
    if storage_backend not in STORAGE_BACKENDS:
        raise ConfigError(
            f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got {storage_backend!r}"
        )
    s3_bucket = env_get("S3_BUCKET", "BUCKET_NAME")
    storage_dir = env_get("STORAGE_DIR")
    database_url = env_get("DATABASE_URL")
    if storage_backend == "s3" and not s3_bucket:
        missing.append("S3_BUCKET")
    elif storage_backend == "file" and not storage_dir:
        missing.append("STORAGE_DIR")
    elif storage_backend == "sql" and not database_url:
        missing.append("DATABASE_URL")

    if missing:
        msg = "Missing required configuration: " + ", ".join(missing)
        logger.error(msg)
        raise ConfigError(msg)

    return AppConfig(
        cinema_id=cinema_id,
        api_token=api_token,
        telegram_token=telegram_token,
        telegram_chat_id=telegram_chat_id,
        retention=retention,
        api_base=env_get("UCI_API_BASE", default=UCI_API_BASE) or UCI_API_BASE,
        cinema_name=(env_get("CINEMA_NAME", default="") or "").strip(),
        storage_backend=storage_backend,
        s3_bucket=s3_bucket,
        aws_region=env_get("AWS_REGION", "AWS_DEFAULT_REGION", default=DEFAULT_REGION)
        or DEFAULT_REGION,
        storage_dir=storage_dir,
        database_url=database_url,
        snapshot_collection=env_get("SNAPSHOT_COLLECTION", default="scraped-data")
        or "scraped-data",
        diff_collection=env_get("DIFF_COLLECTION", default="differences-data")
        or "differences-data",
        http_timeout=max(1, _env_int("HTTP_TIMEOUT_SECONDS", default=20)),
        notify_concurrency=max(1, _env_int("NOTIFY_CONCURRENCY", default=4)),
        telegram_admin_chat_id=env_get("TELEGRAM_ADMIN_CHAT_ID", "TELEGRAM_ADMIN_USER_ID"),
        dry_run=bool(env_get_bool("DRY_RUN", default=False)),
        watch_interval_seconds=max(0, _env_int("WATCH_INTERVAL_SECONDS", default=0)),
        log_level=(env_get("LOG_LEVEL", default="INFO") or "INFO").upper(),
        log_file=env_get("LOG_FILE"),
        log_color=env_get_bool("LOG_COLOR", default=None),
    )


def setup_logging(
    level: str = "INFO", log_file: str | None = None, color: bool | None = None
) -> None:
    """Configure loguru sinks for console and optional file."""

    logger.remove()
    fmt_color = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    )
    fmt_plain = (
        "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
    )
    logger.add(
        sys.stderr,
        level=level,
        colorize=(True if color is None else bool(color)),
        backtrace=True,
        diagnose=False,
        format=fmt_color if (color is None or color) else fmt_plain,
    )
    if log_file:
        # Defaults: rotate at 10 MB, keep 7 days, compress as zip.
        rotation = env_get("LOG_ROTATION", default="10 MB") or "10 MB"
        retention = env_get("LOG_RETENTION", default="7 days") or "7 days"
        compression = env_get("LOG_COMPRESSION", default="zip") or "zip"
        d = os.path.dirname(log_file)
        if d:
            try:
                os.makedirs(d, exist_ok=True)
            except OSError as e:
                logger.warning("Could not create log directory for '{}': {}", log_file, e)
        logger.add(
            log_file,
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
            format=fmt_plain,
        )
