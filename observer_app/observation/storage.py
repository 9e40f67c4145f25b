"""SQLite-backed persistence for finalized observations."""
from __future__ import annotations

import json
import logging
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .errors import ValidationError
from .migrations import upgrade
from .models import Observation, ObservationContext, Status, utc_now
from .timers import parse_duration

LOGGER = logging.getLogger(__name__)

RECENT_STUDENTS_KEY = "recent_students"
EDITABLE_FIELDS = ("observer", "student", "status", "duration", "behavior", "context")


class ObservationStorage:
    """Key-value store of observation records, one JSON payload per id."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_conn(self) -> Iterable[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            LOGGER.exception("Database operation failed")
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._get_conn() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS observations (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    payload TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
        self._ensure_columns()

    def _ensure_columns(self) -> None:
        """Add newly introduced columns for existing installations."""
        with self._get_conn() as conn:
            cur = conn.cursor()
            cur.execute("PRAGMA table_info(observations)")
            cols = [row[1] for row in cur.fetchall()]
            if "schema_version" not in cols:
                cur.execute("ALTER TABLE observations ADD COLUMN schema_version INTEGER NOT NULL DEFAULT 0")
                LOGGER.info("Added column schema_version to observations")

    def add(self, observation: Observation) -> Observation:
        payload = observation.to_dict()
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO observations (id, timestamp, payload, schema_version) VALUES (?, ?, ?, ?)",
                (observation.id, payload["timestamp"], json.dumps(payload), observation.schema_version),
            )
        LOGGER.info("Saved observation %s for %s (%ss)", observation.id, observation.student, observation.duration)
        return observation

    def add_raw(self, payload: dict) -> None:
        """Store a payload as-is, e.g. one exported by an older release."""
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO observations (id, timestamp, payload, schema_version) VALUES (?, ?, ?, ?)",
                (
                    str(payload["id"]),
                    str(payload.get("timestamp") or utc_now().isoformat()),
                    json.dumps(payload),
                    int(payload.get("schema_version") or 0),
                ),
            )

    def get(self, observation_id: str) -> Optional[Observation]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT payload FROM observations WHERE id = ?", (observation_id,)).fetchone()
        return self._load(row[0]) if row else None

    def list_all(self) -> List[Observation]:
        with self._get_conn() as conn:
            rows = conn.execute("SELECT payload FROM observations ORDER BY timestamp DESC").fetchall()
        return [self._load(row[0]) for row in rows]

    def update(self, observation_id: str, **changes: Any) -> Observation:
        """Edit the descriptive fields or duration of a stored record; episodes are immutable."""
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        current = self.get(observation_id)
        if current is None:
            raise KeyError(observation_id)

        if "observer" in changes:
            current.observer = (changes["observer"] or "").strip()
        if "student" in changes:
            current.student = (changes["student"] or "").strip()
        if not current.observer or not current.student:
            raise ValidationError("Observer and Student are required.")
        if "status" in changes:
            current.status = Status.parse(changes["status"])
        if "duration" in changes:
            current.duration = self._edited_duration(changes["duration"])
        if "behavior" in changes:
            current.behavior = changes["behavior"] or ""
        if "context" in changes:
            context = changes["context"]
            current.context = context if isinstance(context, ObservationContext) else ObservationContext.from_dict(context)
        current.last_modified = utc_now()

        payload = current.to_dict()
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE observations SET payload = ?, schema_version = ? WHERE id = ?",
                (json.dumps(payload), current.schema_version, observation_id),
            )
        LOGGER.info("Updated observation %s", observation_id)
        return current

    def delete(self, observation_id: str) -> None:
        with self._get_conn() as conn:
            conn.execute("DELETE FROM observations WHERE id = ?", (observation_id,))
        LOGGER.info("Deleted observation %s", observation_id)

    def recent_students(self) -> List[str]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (RECENT_STUDENTS_KEY,)).fetchone()
        return list(json.loads(row[0])) if row else []

    def remember_student(self, student: str, limit: int = 5) -> List[str]:
        student = student.strip()
        recent = [student] + [s for s in self.recent_students() if s != student]
        recent = recent[:limit]
        with self._get_conn() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (RECENT_STUDENTS_KEY, json.dumps(recent)),
            )
        LOGGER.debug("Recent students: %s", recent)
        return recent

    def backup_database(self) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        target = self.db_path.with_name(f"{self.db_path.stem}-backup-{timestamp}{self.db_path.suffix}")
        shutil.copy2(self.db_path, target)
        LOGGER.info("Database backed up to %s", target)
        return target

    @staticmethod
    def _edited_duration(value: Any) -> int:
        """Accept whole seconds or an ``MM:SS`` string."""
        if isinstance(value, str):
            return parse_duration(value)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"Invalid duration: {value!r}")
        return value

    @staticmethod
    def _load(payload: str) -> Observation:
        return Observation.from_dict(upgrade(json.loads(payload)))
