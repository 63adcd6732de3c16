"""
Operations on the application state document.

Every load-mutate-save sequence runs under one lock so concurrent requests
in this process cannot lose each other's updates. Separate processes
sharing a store still race; the last write wins.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from library_backend.db import AppState, StateStore

logger = logging.getLogger(__name__)

ARCHIVED_STATUS = "Archived"

# Settings arrive from the browser; keys shaped like credentials are never stored.
SECRET_SETTING_KEYS = {"openaiKey", "geminiKey"}
SECRET_SETTING_SUFFIX = re.compile(r"(Key|_key|Secret|_secret|Token|_token)$")
SECRET_SETTING_NAME = re.compile(r"^(api_?key|secret|token)$", re.IGNORECASE)


def is_secret_setting(key: str) -> bool:
    if key in SECRET_SETTING_KEYS:
        return True
    # Suffix match is case-sensitive: "apiKey" is a secret, "monkey" is not.
    return bool(SECRET_SETTING_SUFFIX.search(key) or SECRET_SETTING_NAME.match(key))


def strip_secret_settings(settings: dict) -> dict:
    return {k: v for k, v in settings.items() if not is_secret_setting(k)}


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2026-10-15T08:30:00.123Z."""
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class StateService:
    def __init__(self, store: StateStore):
        self.store = store
        self._lock = threading.Lock()

    def describe(self) -> str:
        return self.store.describe()

    def _read(self) -> AppState:
        with self._lock:
            return self.store.load()

    def _mutate(self, fn: Callable[[AppState], bool]) -> AppState:
        """Apply ``fn`` to a fresh copy of the state; persist when it returns True."""
        with self._lock:
            state = self.store.load()
            if fn(state):
                self.store.save(state)
            return state

    def students(self) -> list:
        return self._read().students

    def archived(self) -> list:
        return self._read().archived

    def settings(self) -> dict:
        return strip_secret_settings(self._read().settings)

    def snapshot(self) -> dict:
        return self._read().as_dict()

    def replace_students(self, students: Optional[list]) -> None:
        def apply(state: AppState) -> bool:
            if students is not None:
                state.students = students
            return True

        self._mutate(apply)

    def replace_archived(self, archived: Optional[list]) -> None:
        def apply(state: AppState) -> bool:
            if archived is not None:
                state.archived = archived
            return True

        self._mutate(apply)

    def archive_student(self, student_id: Any) -> bool:
        """
        Move a student from ``students`` to the head of ``archived``.

        Returns False when no student has that id; this is treated as
        already archived and nothing is written.
        """
        moved = []

        def apply(state: AppState) -> bool:
            for idx, student in enumerate(state.students):
                if isinstance(student, dict) and student.get("id") == student_id:
                    break
            else:
                return False
            student = state.students.pop(idx)
            student["status"] = ARCHIVED_STATUS
            student["archivedAt"] = utc_timestamp()
            state.archived.insert(0, student)
            moved.append(student)
            return True

        self._mutate(apply)
        if moved:
            logger.info("Archived student %r", student_id)
        return bool(moved)

    def merge_settings(self, payload: dict) -> dict:
        def apply(state: AppState) -> bool:
            state.settings = strip_secret_settings({**state.settings, **payload})
            return True

        state = self._mutate(apply)
        logger.info("Updated settings keys: %s", sorted(state.settings))
        return dict(state.settings)
