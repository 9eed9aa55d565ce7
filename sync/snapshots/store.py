"""Append-only blob storage for timestamped snapshots and diffs.

Three backends share one interface: a local directory, an S3 bucket (boto3)
and a SQL table (SQLAlchemy). Keys look like
``<collection>/<collection>_2024-03-01T18-30-00-123Z.json``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from sqlalchemy import (
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from utils import parse_storage_timestamp, storage_timestamp
from utils.errors import SnapshotNotFound, StoreReadError, StoreWriteError


@dataclass(frozen=True)
class StoredEntry:
    location: str
    timestamp: datetime


def make_location(collection: str, timestamp: datetime) -> str:
    collection = collection.strip("/")
    return f"{collection}/{collection}_{storage_timestamp(timestamp)}.json"


def sort_by_recency(entries: list[StoredEntry]) -> list[StoredEntry]:
    """Newest first; equal timestamps fall back to descending key order."""
    return sorted(entries, key=lambda e: (e.timestamp, e.location), reverse=True)


def _entry(location: str, fallback: datetime | None) -> StoredEntry:
    ts = parse_storage_timestamp(os.path.basename(location))
    if ts is None:
        ts = fallback or datetime.fromtimestamp(0, UTC)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
    return StoredEntry(location=location, timestamp=ts)


class BaseSnapshotStore:
    def put(
        self, collection: str, timestamp: datetime, payload: str
    ) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def list_sorted_by_recency(
        self, collection: str
    ) -> list[StoredEntry]:  # pragma: no cover - interface
        raise NotImplementedError

    def get(self, location: str) -> str:  # pragma: no cover - interface
        raise NotImplementedError

    def delete(self, location: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class FileSnapshotStore(BaseSnapshotStore):
    """Directory-backed store; locations are paths relative to `root`."""

    def __init__(self, root: str):
        self.root = root

    def _path(self, location: str) -> str:
        return os.path.join(self.root, *location.split("/"))

    def put(self, collection: str, timestamp: datetime, payload: str) -> str:
        location = make_location(collection, timestamp)
        path = self._path(location)
        tmp = path + ".tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, path)
        except OSError as e:
            raise StoreWriteError(f"cannot write {location}: {e}") from e
        return location

    def list_sorted_by_recency(self, collection: str) -> list[StoredEntry]:
        collection = collection.strip("/")
        d = self._path(collection)
        try:
            names = os.listdir(d)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreReadError(f"cannot list {collection}: {e}") from e
        entries: list[StoredEntry] = []
        for name in names:
            if not name.endswith(".json"):
                continue
            full = os.path.join(d, name)
            try:
                mtime = datetime.fromtimestamp(os.path.getmtime(full), UTC)
            except OSError:
                continue
            entries.append(_entry(f"{collection}/{name}", mtime))
        return sort_by_recency(entries)

    def get(self, location: str) -> str:
        try:
            with open(self._path(location), encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError as e:
            raise SnapshotNotFound(location) from e
        except OSError as e:
            raise StoreReadError(f"cannot read {location}: {e}") from e

    def delete(self, location: str) -> None:
        try:
            os.remove(self._path(location))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StoreWriteError(f"cannot delete {location}: {e}") from e


class S3SnapshotStore(BaseSnapshotStore):
    """S3 bucket store; locations are object keys."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        timeout: int = 20,
        client: Any | None = None,
    ):
        self.bucket = bucket
        self.region = region
        self.timeout = timeout
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region,
                config=BotoConfig(
                    connect_timeout=self.timeout,
                    read_timeout=self.timeout,
                    retries={"max_attempts": 3},
                ),
            )
        return self._client

    def put(self, collection: str, timestamp: datetime, payload: str) -> str:
        location = make_location(collection, timestamp)
        try:
            self._get_client().put_object(
                Bucket=self.bucket,
                Key=location,
                Body=payload.encode("utf-8"),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreWriteError(f"cannot upload s3://{self.bucket}/{location}: {e}") from e
        logger.debug("Uploaded s3://{}/{}", self.bucket, location)
        return location

    def list_sorted_by_recency(self, collection: str) -> list[StoredEntry]:
        prefix = collection.strip("/") + "/"
        entries: list[StoredEntry] = []
        try:
            paginator = self._get_client().get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents") or []:
                    key = obj.get("Key") or ""
                    if not key.endswith(".json"):
                        continue
                    entries.append(_entry(key, obj.get("LastModified")))
        except (ClientError, BotoCoreError) as e:
            raise StoreReadError(f"cannot list s3://{self.bucket}/{prefix}: {e}") from e
        return sort_by_recency(entries)

    def get(self, location: str) -> str:
        try:
            resp = self._get_client().get_object(Bucket=self.bucket, Key=location)
            body = resp["Body"].read()
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in {"NoSuchKey", "404", "NotFound"}:
                raise SnapshotNotFound(location) from e
            raise StoreReadError(f"cannot read s3://{self.bucket}/{location}: {e}") from e
        except BotoCoreError as e:
            raise StoreReadError(f"cannot read s3://{self.bucket}/{location}: {e}") from e
        return body.decode("utf-8") if isinstance(body, bytes) else str(body)

    def delete(self, location: str) -> None:
        # S3 DeleteObject succeeds for absent keys
        try:
            self._get_client().delete_object(Bucket=self.bucket, Key=location)
        except (ClientError, BotoCoreError) as e:
            raise StoreWriteError(f"cannot delete s3://{self.bucket}/{location}: {e}") from e


class SASnapshotStore(BaseSnapshotStore):
    """SQLAlchemy-based store (PostgreSQL, SQLite)."""

    def __init__(self, database_url: str, *, timeout: int = 20):
        self.database_url = self._normalize_url(database_url)
        engine_kwargs: dict[str, Any] = {"future": True, "pool_pre_ping": True}
        if self.database_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"timeout": timeout}
        else:
            # pool_timeout only bounds the wait for a pooled connection
            engine_kwargs["pool_timeout"] = timeout
            if "+pg8000" in self.database_url:
                engine_kwargs["connect_args"] = {"timeout": timeout}
        self.engine: Engine = create_engine(self.database_url, **engine_kwargs)
        self.meta = MetaData()
        self.blobs = Table(
            "snapshot_blobs",
            self.meta,
            Column("location", String(512), primary_key=True),
            Column("collection", String(255), nullable=False, index=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("payload", Text, nullable=False),
        )
        self._ensure_schema()

    @staticmethod
    def _normalize_url(url: str) -> str:
        # If driver not specified, default to pg8000 to avoid psycopg dependency
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://") :]
        if url.startswith("postgresql://") and "+" not in url.split("://", 1)[1].split(":", 1)[0]:
            return url.replace("postgresql://", "postgresql+pg8000://", 1)
        return url

    def _ensure_schema(self) -> None:
        try:
            self.meta.create_all(self.engine, tables=[self.blobs])
        except SQLAlchemyError as e:
            raise StoreWriteError(f"cannot create snapshot_blobs table: {e}") from e

    def put(self, collection: str, timestamp: datetime, payload: str) -> str:
        location = make_location(collection, timestamp)
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(self.blobs).values(
                        location=location,
                        collection=collection.strip("/"),
                        created_at=timestamp.astimezone(UTC),
                        payload=payload,
                    )
                )
        except SQLAlchemyError as e:
            raise StoreWriteError(f"cannot insert {location}: {e}") from e
        return location

    def list_sorted_by_recency(self, collection: str) -> list[StoredEntry]:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(self.blobs.c.location, self.blobs.c.created_at).where(
                        self.blobs.c.collection == collection.strip("/")
                    )
                ).fetchall()
        except SQLAlchemyError as e:
            raise StoreReadError(f"cannot list {collection}: {e}") from e
        entries: list[StoredEntry] = []
        for location, created_at in rows:
            # SQLite drops tzinfo
            if created_at is not None and created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=UTC)
            entries.append(_entry(str(location), created_at))
        return sort_by_recency(entries)

    def get(self, location: str) -> str:
        try:
            with self.engine.connect() as conn:
                row = conn.execute(
                    select(self.blobs.c.payload).where(self.blobs.c.location == location)
                ).fetchone()
        except SQLAlchemyError as e:
            raise StoreReadError(f"cannot read {location}: {e}") from e
        if row is None:
            raise SnapshotNotFound(location)
        return str(row[0])

    def delete(self, location: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.blobs).where(self.blobs.c.location == location))
        except SQLAlchemyError as e:
            raise StoreWriteError(f"cannot delete {location}: {e}") from e


def get_store(cfg) -> BaseSnapshotStore:
    backend = getattr(cfg, "storage_backend", "s3")
    if backend == "file":
        logger.debug("Snapshot store: directory {}", cfg.storage_dir)
        return FileSnapshotStore(cfg.storage_dir)
    if backend == "sql":
        logger.debug("Snapshot store: SQL database")
        return SASnapshotStore(cfg.database_url, timeout=cfg.http_timeout)
    logger.debug("Snapshot store: s3://{} ({})", cfg.s3_bucket, cfg.aws_region)
    return S3SnapshotStore(cfg.s3_bucket, region=cfg.aws_region, timeout=cfg.http_timeout)
