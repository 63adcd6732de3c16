"""
Document store for the application state: in-memory, file and SQL backends.

The whole state is one JSON document that is read and written wholesale.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

from sqlalchemy import JSON, Column, Float, String, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from library_backend.errors import UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    students: list = field(default_factory=list)
    archived: list = field(default_factory=list)
    settings: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Any) -> "AppState":
        raw = raw if isinstance(raw, dict) else {}
        students = raw.get("students")
        archived = raw.get("archived")
        settings = raw.get("settings")
        return cls(
            students=students if isinstance(students, list) else [],
            archived=archived if isinstance(archived, list) else [],
            settings=settings if isinstance(settings, dict) else {},
        )

    def as_dict(self) -> dict:
        return {
            "students": self.students,
            "archived": self.archived,
            "settings": self.settings,
        }


class StateStore(Protocol):
    """Interface for loading and saving the application state document."""

    def load(self) -> AppState:
        ...

    def save(self, state: AppState) -> None:
        ...

    def describe(self) -> str:
        ...


def _copy_document(document: dict) -> dict:
    # Mimic a real serialization boundary so callers never share structure.
    return json.loads(json.dumps(document, default=str))


class InMemoryStateStore:
    """Simple in-memory store for development and tests."""

    def __init__(self, state_id: str = "main"):
        self.documents: Dict[str, dict] = {}
        self.state_id = state_id

    def load(self) -> AppState:
        document = self.documents.get(self.state_id)
        if document is None:
            document = AppState().as_dict()
            self.documents[self.state_id] = document
        return AppState.from_dict(_copy_document(document))

    def save(self, state: AppState) -> None:
        self.documents[self.state_id] = _copy_document(state.as_dict())

    def describe(self) -> str:
        return "memory"

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.documents.clear()


class FileStateStore:
    """
    Stores the state as a pretty-printed JSON file, ``<data_dir>/<state_id>.json``.
    """

    def __init__(self, data_dir: str, state_id: str = "main"):
        self.data_dir = data_dir
        self.path = os.path.join(data_dir, f"{state_id}.json")

    def load(self) -> AppState:
        if not os.path.exists(self.path):
            state = AppState()
            self.save(state)
            return state
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return AppState.from_dict(json.load(f))
        except (OSError, ValueError) as exc:
            raise UpstreamFailure(f"Failed to read {self.path}: {exc}") from exc

    def save(self, state: AppState) -> None:
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.data_dir, prefix=".state-", suffix=".json"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(state.as_dict(), f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise UpstreamFailure(f"Failed to write {self.path}: {exc}") from exc

    def describe(self) -> str:
        return "file"


Base = declarative_base()


class AppStateRow(Base):
    __tablename__ = "app_state"

    id = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)


def create_db_engine(database_url: str):
    if not database_url:
        raise ValueError("DATABASE_URL is required for SQL-backed stores")
    engine = create_engine(
        database_url,
        future=True,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
    Base.metadata.create_all(engine)
    return engine


class SqlStateStore:
    """
    SQLAlchemy-backed implementation keeping the document in a single
    ``app_state`` row. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str = "", state_id: str = "main", engine=None):
        self.engine = engine if engine is not None else create_db_engine(database_url)
        self.state_id = state_id
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    def load(self) -> AppState:
        try:
            with self.Session() as session:
                row = session.get(AppStateRow, self.state_id)
                if row:
                    return AppState.from_dict(row.data)
                logger.info("Creating state row %r", self.state_id)
                state = AppState()
                session.add(
                    AppStateRow(
                        id=self.state_id,
                        data=state.as_dict(),
                        updated_at=time.time(),
                    )
                )
                session.commit()
                return state
        except SQLAlchemyError as exc:
            raise UpstreamFailure(f"Failed to load state: {exc}") from exc

    def save(self, state: AppState) -> None:
        try:
            with self.Session() as session:
                row = session.get(AppStateRow, self.state_id)
                if row:
                    row.data = state.as_dict()
                    row.updated_at = time.time()
                else:
                    session.add(
                        AppStateRow(
                            id=self.state_id,
                            data=state.as_dict(),
                            updated_at=time.time(),
                        )
                    )
                session.commit()
        except SQLAlchemyError as exc:
            raise UpstreamFailure(f"Failed to save state: {exc}") from exc

    def describe(self) -> str:
        return "database"
