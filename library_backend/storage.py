"""
Backup storage: immutable snapshots kept in memory, on disk, in SQL or in
S3-compatible object storage.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import JSON, Column, Float, String
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from library_backend.db import Base, create_db_engine
from library_backend.errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)

BACKUP_ID_PATTERN = re.compile(r"^backup-[0-9]{8}T[0-9]{12}Z$")


@dataclass
class BackupRecord:
    backup_id: str
    data: Any
    created_at: float = field(default_factory=lambda: time.time())
    location: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.backup_id,
            "timestamp": self.created_at,
            "data": self.data,
        }


class BackupStore(Protocol):
    """Defines the operations the API needs from backup storage."""

    def create(self, data: Any) -> BackupRecord:
        ...

    def get(self, backup_id: str) -> BackupRecord:
        ...

    def describe(self) -> str:
        ...


def new_timestamped_id(now: Optional[float] = None) -> str:
    moment = datetime.fromtimestamp(now if now is not None else time.time(), timezone.utc)
    return f"backup-{moment.strftime('%Y%m%dT%H%M%S%f')}Z"


def _not_found(backup_id: str) -> NotFound:
    return NotFound(f"Backup {backup_id} not found")


class InMemoryBackupStore:
    """Test double for backup storage."""

    def __init__(self):
        self.records: dict[str, BackupRecord] = {}

    def create(self, data: Any) -> BackupRecord:
        record = BackupRecord(
            backup_id=uuid.uuid4().hex,
            # Use JSON string to mimic real persistence behavior
            data=json.loads(json.dumps(data, default=str)),
        )
        self.records[record.backup_id] = record
        return record

    def get(self, backup_id: str) -> BackupRecord:
        record = self.records.get(backup_id)
        if record is None:
            raise _not_found(backup_id)
        return record

    def describe(self) -> str:
        return "memory"

    def reset(self) -> None:
        self.records.clear()


class FileBackupStore:
    """
    Writes each backup as ``backup-<timestamp>.json`` under ``backup_dir``.
    """

    def __init__(self, backup_dir: str):
        self.backup_dir = backup_dir

    def _path(self, backup_id: str) -> str:
        return os.path.join(self.backup_dir, f"{backup_id}.json")

    def create(self, data: Any) -> BackupRecord:
        now = time.time()
        backup_id = new_timestamped_id(now)
        path = self._path(backup_id)
        # Two backups inside the same microsecond would collide.
        while os.path.exists(path):
            now += 0.000001
            backup_id = new_timestamped_id(now)
            path = self._path(backup_id)
        record = BackupRecord(
            backup_id=backup_id,
            data=data,
            created_at=now,
            location=os.path.basename(path),
        )
        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            # Only a fully written file is published under the backup id.
            fd, tmp_path = tempfile.mkstemp(
                dir=self.backup_dir, prefix=".backup-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(record.as_dict(), f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise UpstreamFailure(f"Failed to write backup: {exc}") from exc
        logger.info("Wrote backup file %s", path)
        return record

    def get(self, backup_id: str) -> BackupRecord:
        if not BACKUP_ID_PATTERN.match(backup_id):
            raise _not_found(backup_id)
        path = self._path(backup_id)
        if not os.path.exists(path):
            raise _not_found(backup_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, ValueError) as exc:
            raise UpstreamFailure(f"Failed to read backup {backup_id}: {exc}") from exc
        if not isinstance(payload, dict):
            raise UpstreamFailure(f"Backup {backup_id} is not a backup document")
        return BackupRecord(
            backup_id=backup_id,
            data=payload.get("data"),
            created_at=payload.get("timestamp") or 0.0,
            location=os.path.basename(path),
        )

    def describe(self) -> str:
        return "file"


class BackupRow(Base):
    __tablename__ = "backups"

    id = Column(String, primary_key=True)
    data = Column(JSON, nullable=True)
    created_at = Column(Float, nullable=False)


class SqlBackupStore:
    """SQLAlchemy-backed backups, one row per snapshot."""

    def __init__(self, database_url: str = "", engine=None):
        self.engine = engine if engine is not None else create_db_engine(database_url)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    def create(self, data: Any) -> BackupRecord:
        record = BackupRecord(backup_id=uuid.uuid4().hex, data=data)
        try:
            with self.Session() as session:
                session.add(
                    BackupRow(
                        id=record.backup_id,
                        data=record.data,
                        created_at=record.created_at,
                    )
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise UpstreamFailure(f"Failed to save backup: {exc}") from exc
        return record

    def get(self, backup_id: str) -> BackupRecord:
        try:
            with self.Session() as session:
                row = session.get(BackupRow, backup_id)
                if not row:
                    raise _not_found(backup_id)
                return BackupRecord(
                    backup_id=row.id, data=row.data, created_at=row.created_at
                )
        except SQLAlchemyError as exc:
            raise UpstreamFailure(f"Failed to load backup: {exc}") from exc

    def describe(self) -> str:
        return "database"


@dataclass
class S3BackupStore:
    """
    S3-compatible object storage for backups, one JSON object per snapshot.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    prefix: str = "backups/"

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def _key(self, backup_id: str) -> str:
        return f"{self.prefix}{backup_id}.json"

    def create(self, data: Any) -> BackupRecord:
        now = time.time()
        backup_id = new_timestamped_id(now)
        record = BackupRecord(
            backup_id=backup_id,
            data=data,
            created_at=now,
            location=self._key(backup_id),
        )
        body = json.dumps(record.as_dict(), default=str).encode("utf-8")
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=record.location,
                Body=body,
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamFailure(f"Failed to upload backup: {exc}") from exc
        logger.info("Uploaded backup s3://%s/%s", self.bucket, record.location)
        return record

    def get(self, backup_id: str) -> BackupRecord:
        if not BACKUP_ID_PATTERN.match(backup_id):
            raise _not_found(backup_id)
        key = self._key(backup_id)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            payload = json.loads(response["Body"].read())
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404", "NotFound"):
                raise _not_found(backup_id) from exc
            raise UpstreamFailure(f"Failed to fetch backup: {exc}") from exc
        except (BotoCoreError, ValueError) as exc:
            raise UpstreamFailure(f"Failed to fetch backup: {exc}") from exc
        return BackupRecord(
            backup_id=backup_id,
            data=payload.get("data"),
            created_at=payload.get("timestamp") or 0.0,
            location=key,
        )

    def describe(self) -> str:
        return "s3"
