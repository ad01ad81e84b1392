"""SQLite persistence for progression state, settings, and test history."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, date, datetime
from pathlib import Path

from .models import DEFAULT_THEMES, ProgressionState, TestRecord, UnlockedAchievement

SCHEMA_VERSION = 1
HISTORY_CAPACITY = 100
PROGRESSION_DOCUMENT = "progression"
SETTINGS_DOCUMENT = "settings"

logger = logging.getLogger(__name__)


class ProgressStore:
    """Database access layer for one player's durable data."""

    def __init__(self, db_path: Path | str, history_capacity: int = HISTORY_CAPACITY) -> None:
        """Open the database and bring the schema up to date."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self.history_capacity = history_capacity
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")
                self._conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self) -> None:
        """Create document and history tables."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    name TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS test_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """)

    def get_document(self, name: str) -> object | None:
        """Return a decoded JSON document, or None when absent or unreadable."""
        row = self._conn.execute("SELECT value FROM documents WHERE name = ?", (name,)).fetchone()
        if row is None:
            return None
        try:
            return json.loads(str(row["value"]))
        except json.JSONDecodeError:
            logger.warning("Stored document %r is not valid JSON; ignoring it.", name)
            return None

    def set_document(self, name: str, value: object) -> None:
        """Replace one JSON document."""
        now = datetime.now(UTC).isoformat()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO documents (name, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (name, json.dumps(value), now),
            )

    def delete_document(self, name: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM documents WHERE name = ?", (name,))

    def load_progression(self) -> ProgressionState:
        """Load progression, falling back to defaults for anything missing or corrupt."""
        raw = self.get_document(PROGRESSION_DOCUMENT)
        if raw is None:
            return ProgressionState()
        if not isinstance(raw, dict):
            logger.warning("Stored progression is not an object; starting fresh.")
            return ProgressionState()
        return progression_from_dict(raw)

    def save_progression(self, state: ProgressionState) -> None:
        self.set_document(PROGRESSION_DOCUMENT, state.to_dict())

    def append_test(self, record: TestRecord) -> None:
        """Append one record, evicting the oldest rows beyond capacity."""
        now = datetime.now(UTC).isoformat()
        with self._conn:
            self._conn.execute(
                "INSERT INTO test_history (payload, created_at) VALUES (?, ?)",
                (json.dumps(record.to_dict()), now),
            )
            self._conn.execute(
                """
                DELETE FROM test_history
                WHERE id NOT IN (
                    SELECT id FROM test_history ORDER BY id DESC LIMIT ?
                )
                """,
                (self.history_capacity,),
            )

    def list_history(self) -> list[TestRecord]:
        """Return stored test records oldest first; unreadable rows are skipped."""
        rows = self._conn.execute("SELECT id, payload FROM test_history ORDER BY id ASC").fetchall()
        records: list[TestRecord] = []
        for row in rows:
            try:
                raw = json.loads(str(row["payload"]))
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable history row %s.", row["id"])
                continue
            record = record_from_dict(raw)
            if record is None:
                logger.warning("Skipping malformed history row %s.", row["id"])
                continue
            records.append(record)
        return records

    def history_size(self) -> int:
        return int(self._conn.execute("SELECT COUNT(*) FROM test_history").fetchone()[0])

    def replace_history(self, records: list[TestRecord]) -> None:
        """Replace the whole history log, keeping only the newest records."""
        now = datetime.now(UTC).isoformat()
        kept = records[-self.history_capacity :] if self.history_capacity > 0 else []
        with self._conn:
            self._conn.execute("DELETE FROM test_history")
            self._conn.executemany(
                "INSERT INTO test_history (payload, created_at) VALUES (?, ?)",
                [(json.dumps(record.to_dict()), now) for record in kept],
            )

    def clear(self) -> None:
        """Drop progression and history; settings are kept."""
        with self._conn:
            self._conn.execute("DELETE FROM test_history")
            self._conn.execute("DELETE FROM documents WHERE name = ?", (PROGRESSION_DOCUMENT,))

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def progression_from_dict(raw: dict[str, object]) -> ProgressionState:
    """Build state from a stored document, defaulting each unusable field."""
    defaults = ProgressionState()
    level = coerce_int(raw.get("level"))
    xp = coerce_int(raw.get("xp"))
    streak = coerce_int(raw.get("streak_days"))
    return ProgressionState(
        level=level if level is not None and level >= 1 else defaults.level,
        xp=xp if xp is not None and xp >= 0 else defaults.xp,
        streak_days=streak if streak is not None and streak >= 0 else defaults.streak_days,
        last_active_date=_parse_date(raw.get("last_active_date")),
        achievements=_parse_achievements(raw.get("achievements")),
        unlocked_themes=_string_list(raw.get("unlocked_themes"), list(DEFAULT_THEMES)),
        completed_lessons=_string_list(raw.get("completed_lessons"), []),
        daily_challenge_completed=raw.get("daily_challenge_completed") is True,
    )


def record_from_dict(raw: object) -> TestRecord | None:
    """Build a record from a stored or imported payload; None if unusable."""
    if not isinstance(raw, dict):
        return None
    mode = raw.get("mode")
    wpm = coerce_float(raw.get("wpm"))
    accuracy = coerce_float(raw.get("accuracy"))
    if not isinstance(mode, str) or wpm is None or accuracy is None:
        return None
    timestamp = raw.get("timestamp")
    return TestRecord(
        mode=mode,
        wpm=wpm,
        accuracy=accuracy,
        errors=max(0, coerce_int(raw.get("errors"), default=0) or 0),
        characters=max(0, coerce_int(raw.get("characters"), default=0) or 0),
        duration=max(0.0, coerce_float(raw.get("duration"), default=0.0) or 0.0),
        timestamp=timestamp if isinstance(timestamp, str) and timestamp else datetime.now(UTC).isoformat(),
        suspicion_score=coerce_float(raw.get("suspicion_score"), default=0.0) or 0.0,
        difficulty=_optional_str(raw.get("difficulty")),
        time_limit=coerce_int(raw.get("time_limit")),
        completed=_optional_bool(raw.get("completed")),
        passed=_optional_bool(raw.get("passed")),
        target_wpm=coerce_int(raw.get("target_wpm")),
        target_accuracy=coerce_int(raw.get("target_accuracy")),
    )


def _parse_date(value: object) -> date | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring unparseable last-active date: %s", value)
        return None


def _parse_achievements(value: object) -> dict[str, UnlockedAchievement]:
    if not isinstance(value, dict):
        return {}
    achievements: dict[str, UnlockedAchievement] = {}
    for key, item in value.items():
        if not isinstance(key, str) or not isinstance(item, dict):
            continue
        unlocked_at = item.get("unlocked_at")
        achievements[key] = UnlockedAchievement(
            achievement_id=key,
            unlocked_at=unlocked_at if isinstance(unlocked_at, str) else "",
            xp_reward=coerce_int(item.get("xp_reward"), default=0) or 0,
        )
    return achievements


def _string_list(value: object, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return default
    items: list[str] = []
    for item in value:
        if isinstance(item, str) and item and item not in items:
            items.append(item)
    return items


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


def _optional_bool(value: object) -> bool | None:
    return value if isinstance(value, bool) else None


def coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce a stored value to int."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def coerce_float(value: object, default: float | None = None) -> float | None:
    """Coerce a stored value to float."""
    if isinstance(value, bool):
        return float(int(value))
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default
