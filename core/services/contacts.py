"""
Subject lookup and emergency-contact resolution.

The resolver sits in front of a SubjectStore. Stores are plain async
protocols so the pipeline can be exercised with an in-memory store and run
in production against the SQLite users table.
"""

import asyncio
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

import structlog

from core.domain.models import Subject
from core.services.errors import CardioGuardError, SubjectNotFoundError, SubjectStoreError
from core.services.result import Result

logger = structlog.get_logger(__name__)


def display_name_for(subject_id: str | int, name: str | None) -> str:
    """Stored name, or ``user#<id>`` when the subject has none."""
    if name and name.strip():
        return name
    return f"user#{subject_id}"


class SubjectStore(Protocol):
    """Read access to registered subjects."""

    async def get_subject(self, subject_id: str | int) -> Subject | None:
        """Return the subject, or None if no such subject is registered."""
        ...


class InMemorySubjectStore:
    """Dict-backed store for tests and demos."""

    def __init__(self) -> None:
        self._subjects: dict[str, Subject] = {}

    def add(
        self, subject_id: str | int, name: str | None = None, emergency_contact: str | None = None
    ) -> Subject:
        subject = Subject(
            id=subject_id,
            display_name=display_name_for(subject_id, name),
            emergency_contact=emergency_contact,
        )
        self._subjects[str(subject_id)] = subject
        return subject

    async def get_subject(self, subject_id: str | int) -> Subject | None:
        return self._subjects.get(str(subject_id))


class SqliteSubjectStore:
    """
    Subject store backed by the ``users`` table.

    Each call opens its own connection in a worker thread; SQLite serializes
    the writes.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.logger = logger.bind(component="sqlite_subject_store", db_path=str(self.db_path))

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_schema_sync(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT,
                    phone TEXT,
                    emergency_contact TEXT
                )"""
            )

    async def ensure_schema(self) -> None:
        """Create the users table if it does not exist yet."""
        await asyncio.to_thread(self._ensure_schema_sync)

    def _register_sync(self, name: str, phone: str | None, emergency_contact: str | None) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO users (name, phone, emergency_contact) VALUES (?, ?, ?)",
                (name, phone or None, emergency_contact or None),
            )
            return int(cursor.lastrowid)  # type: ignore[arg-type]

    async def register(
        self, name: str, phone: str | None = None, emergency_contact: str | None = None
    ) -> int:
        """Insert a subject and return its id."""
        if not name or not name.strip():
            raise ValueError("name is required")
        subject_id = await asyncio.to_thread(self._register_sync, name, phone, emergency_contact)
        self.logger.info("subject_registered", subject_id=subject_id)
        return subject_id

    def _fetch_sync(self, subject_id: str | int) -> sqlite3.Row | None:
        with self._connect() as conn:
            return conn.execute(
                "SELECT id, name, emergency_contact FROM users WHERE id = ?", (subject_id,)
            ).fetchone()

    async def get_subject(self, subject_id: str | int) -> Subject | None:
        try:
            row = await asyncio.to_thread(self._fetch_sync, subject_id)
        except sqlite3.Error as e:
            raise SubjectStoreError(f"Subject lookup failed: {e}") from e

        if row is None:
            return None
        return Subject(
            id=row["id"],
            display_name=display_name_for(row["id"], row["name"]),
            emergency_contact=row["emergency_contact"],
        )


class ContactResolver:
    """Resolves a subject id to the subject and its emergency contact."""

    def __init__(self, store: SubjectStore) -> None:
        self.store = store
        self.logger = logger.bind(component="contact_resolver")

    async def resolve(self, subject_id: str | int) -> Result[Subject, CardioGuardError]:
        try:
            subject = await self.store.get_subject(subject_id)
        except SubjectStoreError as e:
            self.logger.error("subject_lookup_failed", subject_id=subject_id, error=str(e))
            return Result.err(e)
        except Exception as e:
            self.logger.exception("subject_lookup_failed", subject_id=subject_id, error=str(e))
            return Result.err(SubjectStoreError(str(e)))

        if subject is None:
            self.logger.warning("subject_not_found", subject_id=subject_id)
            return Result.err(SubjectNotFoundError(subject_id))

        return Result.ok(subject)
