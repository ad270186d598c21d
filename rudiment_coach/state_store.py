"""
SQLite State Store for rudiment-coach.

Provides portable persistence for:
- Rolling rating and due date per rudiment (the Progress Store)
- The log of calendar days with at least one completed drill (the Session Log)

Both live as JSON documents in a single key/value table, so a drill outcome
can update both in one transaction.

Database location: ~/.rudiment_coach/state.db

Read policy: missing or corrupt data loads as an empty default and is logged;
reads never raise. Write policy: failures raise StorageUnavailable.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .clock import Clock
from .errors import StorageUnavailable

PROGRESS_KEY = "rudiments_progress_v1"
SESSIONS_KEY = "sessions_log_v1"
DEFAULT_RATING = 2.5

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class RudimentProgress:
    """Rolling skill estimate and schedule for a single rudiment."""

    rating: float = DEFAULT_RATING
    last_practiced_at: datetime | None = None
    next_due_at: datetime | None = None

    def is_due(self, clock: Clock) -> bool:
        """Check if this rudiment is due today."""
        if self.next_due_at is None:
            return True  # Never practiced = due
        return self.next_due_at <= clock.start_of_today()

    def days_overdue(self, clock: Clock) -> int:
        """Whole days past the due date."""
        if self.next_due_at is None:
            return 0
        delta = clock.start_of_today() - self.next_due_at
        return max(0, delta.days)


class ProgressRecord(BaseModel):
    """Stored shape of one progress entry (camelCase keys on disk)."""

    model_config = ConfigDict(populate_by_name=True)

    rating: float = DEFAULT_RATING
    last_practiced_at: datetime | None = Field(default=None, alias="lastPracticedAt")
    next_due_at: datetime | None = Field(default=None, alias="nextDueAt")

    @field_validator("last_practiced_at", "next_due_at")
    @classmethod
    def _to_local_naive(cls, value: datetime | None) -> datetime | None:
        # Timestamps written with an offset are compared against local midnight.
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    def to_progress(self) -> RudimentProgress:
        return RudimentProgress(
            rating=self.rating,
            last_practiced_at=self.last_practiced_at,
            next_due_at=self.next_due_at,
        )

    @classmethod
    def from_progress(cls, progress: RudimentProgress) -> ProgressRecord:
        return cls(
            rating=progress.rating,
            last_practiced_at=progress.last_practiced_at,
            next_due_at=progress.next_due_at,
        )


# =============================================================================
# Serialization
# =============================================================================


def encode_progress(progress: Mapping[str, RudimentProgress]) -> str:
    payload = {
        rudiment_id: ProgressRecord.from_progress(entry).model_dump(
            mode="json", by_alias=True, exclude_none=True
        )
        for rudiment_id, entry in progress.items()
    }
    return json.dumps(payload)


def decode_progress(raw: str | None) -> dict[str, RudimentProgress]:
    """
    Parse a stored progress document.

    Invalid entries are dropped individually; an unreadable document yields
    an empty mapping.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(f"Corrupt progress data, starting empty: {exc}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Progress data is {type(data).__name__}, expected object; starting empty")
        return {}

    progress: dict[str, RudimentProgress] = {}
    for rudiment_id, entry in data.items():
        try:
            progress[str(rudiment_id)] = ProgressRecord.model_validate(entry).to_progress()
        except ValidationError as exc:
            logger.warning(f"Dropping invalid progress entry for {rudiment_id}: {exc.error_count()} error(s)")
    return progress


def normalize_session_dates(dates: Iterable[str]) -> list[str]:
    """Deduplicate and sort ``yyyy-mm-dd`` strings."""
    return sorted(set(dates))


def encode_sessions(dates: Iterable[str]) -> str:
    return json.dumps(normalize_session_dates(dates))


def decode_sessions(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(f"Corrupt session log, starting empty: {exc}")
        return []
    if not isinstance(data, list):
        logger.warning("Session log is not a list; starting empty")
        return []
    return normalize_session_dates(str(item) for item in data if isinstance(item, str))


# =============================================================================
# State Store
# =============================================================================


class StateStore:
    """
    SQLite-backed key/value persistence.

    Handles:
    - Raw document reads with a degrade-to-None policy
    - Atomic multi-document writes
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize the state store.

        Args:
            db_path: Database file, or ":memory:" for an in-process store

        Raises:
            StorageUnavailable: if the database cannot be opened
        """
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path

        try:
            self._conn = sqlite3.connect(str(db_path))
            self._init_schema()
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Cannot open practice database {db_path}: {exc}") from exc

        self.progress = ProgressStore(self)
        self.sessions = SessionLog(self)

        logger.info(f"StateStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    def read(self, key: str) -> str | None:
        """Return the stored document for ``key``, or None if absent or unreadable."""
        try:
            row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            logger.warning(f"Read of {key} failed, using default: {exc}")
            return None
        return row[0] if row else None

    def write_many(self, documents: Mapping[str, str]) -> None:
        """
        Write several documents in one transaction.

        Raises:
            StorageUnavailable: if any write fails; nothing is committed
        """
        now = datetime.now().isoformat()
        try:
            with self._conn:
                for key, value in documents.items():
                    self._conn.execute(
                        """
                        INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                        """,
                        (key, value, now),
                    )
        except sqlite3.Error as exc:
            logger.error(f"Write of {sorted(documents)} failed: {exc}")
            raise StorageUnavailable(f"Could not save practice data: {exc}") from exc

    def clear(self) -> None:
        """Delete all progress and session history."""
        try:
            with self._conn:
                self._conn.execute("DELETE FROM kv_store")
        except sqlite3.Error as exc:
            raise StorageUnavailable(f"Could not clear practice data: {exc}") from exc
        logger.info("Cleared all practice data")

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __enter__(self) -> StateStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressStore:
    """Rudiment id -> RudimentProgress document."""

    def __init__(self, state: StateStore):
        self._state = state

    def load(self) -> dict[str, RudimentProgress]:
        return decode_progress(self._state.read(PROGRESS_KEY))

    def get(self, rudiment_id: str) -> RudimentProgress | None:
        return self.load().get(rudiment_id)

    def save(self, progress: Mapping[str, RudimentProgress]) -> None:
        self._state.write_many({PROGRESS_KEY: encode_progress(progress)})


class SessionLog:
    """Set of ``yyyy-mm-dd`` days with at least one completed drill."""

    def __init__(self, state: StateStore):
        self._state = state

    def load(self) -> list[str]:
        return decode_sessions(self._state.read(SESSIONS_KEY))

    def save(self, dates: Iterable[str]) -> None:
        """Persist the log; duplicates collapse to one entry."""
        self._state.write_many({SESSIONS_KEY: encode_sessions(dates)})

    def append(self, day: date | str) -> bool:
        """
        Add a day to the log.

        Returns:
            True if the day was new, False if it was already logged
        """
        key = day if isinstance(day, str) else day.isoformat()
        dates = self.load()
        if key in dates:
            return False
        dates.append(key)
        self.save(dates)
        return True
