"""Application service wiring content, persistence, progression, and test sessions."""

from __future__ import annotations

import csv
import json
import logging
import random
from collections.abc import Callable, Collection
from dataclasses import asdict, dataclass, replace
from datetime import UTC, date, datetime
from pathlib import Path
from typing import cast

from . import __version__
from . import achievements as catalog
from .content_loader import DIFFICULTIES, load_catalog
from .integrity import IntegrityConfig
from .ledger import ProgressionLedger
from .models import Lesson
from .progress import (
    SCHEMA_VERSION,
    SETTINGS_DOCUMENT,
    ProgressStore,
    coerce_int,
    progression_from_dict,
    record_from_dict,
)
from .session import SessionOutcome, TestSession

EXPORT_FORMAT_VERSION = 1
CSV_HEADERS = ("Date", "Mode", "WPM", "Accuracy", "Errors", "Duration", "Difficulty")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    """User preferences that affect how tests run."""

    anti_cheat_enabled: bool = True
    default_duration: int = 60
    difficulty: str = "medium"


@dataclass(frozen=True)
class ProfileSummary:
    """Progression overview for display."""

    level: int
    rank: str
    xp: int
    xp_for_next_level: int
    streak_days: int
    tests: int
    best_wpm: float
    best_accuracy: float
    achievements_unlocked: int
    achievements_total: int
    unlocked_themes: tuple[str, ...]
    completed_lessons: int
    daily_challenge_completed: bool


@dataclass(frozen=True)
class AchievementStatus:
    """Catalog entry joined with the player's unlock state."""

    id: str
    name: str
    description: str
    icon: str
    xp: int
    unlocked: bool
    unlocked_at: str | None


@dataclass(frozen=True)
class DataTransferSummary:
    """Summary emitted by export/import operations."""

    level: int
    xp: int
    achievements: int
    history_rows: int


class TrainerService:
    """Coordinates the progression ledger and typing test flows."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        rng: random.Random | None = None,
        today: Callable[[], date] = date.today,
        integrity_config: IntegrityConfig | None = None,
    ) -> None:
        """Initialize service with database path."""
        self.catalog = load_catalog()
        self.progress = ProgressStore(db_path)
        self.ledger = ProgressionLedger(self.progress, today=today)
        self.integrity_config = integrity_config or IntegrityConfig()
        self.settings = self._load_settings()
        self._rng = rng or random.Random()

    def _load_settings(self) -> Settings:
        raw = self.progress.get_document(SETTINGS_DOCUMENT)
        if not isinstance(raw, dict):
            return Settings()
        return _settings_from_dict(cast(dict[str, object], raw), self.catalog.timer_paragraphs)

    def update_settings(self, **changes: object) -> Settings:
        """Apply and persist settings changes."""
        unknown = sorted(set(changes) - set(asdict(self.settings)))
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(unknown)}")
        difficulty = changes.get("difficulty")
        if difficulty is not None and difficulty not in DIFFICULTIES:
            raise ValueError(f"Unknown difficulty: {difficulty}")
        duration = changes.get("default_duration")
        if duration is not None and duration not in self.catalog.timer_paragraphs:
            raise ValueError(f"Unsupported timer duration: {duration}")
        candidate = _settings_from_dict({**asdict(self.settings), **changes}, self.catalog.timer_paragraphs)
        self.settings = candidate
        self.progress.set_document(SETTINGS_DOCUMENT, asdict(candidate))
        return candidate

    def _session(
        self,
        mode: str,
        prompt: str,
        *,
        difficulty: str | None = None,
        time_limit: int | None = None,
        target_wpm: int | None = None,
        target_accuracy: int | None = None,
    ) -> TestSession:
        session = TestSession(
            self.ledger,
            mode,
            prompt,
            anti_cheat_enabled=self.settings.anti_cheat_enabled,
            config=self.integrity_config,
            difficulty=difficulty,
            time_limit=time_limit,
            target_wpm=target_wpm,
            target_accuracy=target_accuracy,
        )
        session.start()
        return session

    def pick_sentence(self, difficulty: str | None = None) -> str:
        level = difficulty or self.settings.difficulty
        if level not in self.catalog.sentences:
            raise ValueError(f"Unknown difficulty: {level}")
        return self._rng.choice(self.catalog.sentences[level])

    def start_normal_test(self, difficulty: str | None = None) -> TestSession:
        level = difficulty or self.settings.difficulty
        return self._session("normal", self.pick_sentence(level), difficulty=level)

    def start_custom_test(self, text: str) -> TestSession:
        if not text.strip():
            raise ValueError("Custom text is required.")
        return self._session("normal", text, difficulty="custom")

    def start_practice_test(self, category: str) -> TestSession:
        texts = self.catalog.practice.get(category)
        if not texts:
            raise ValueError(f"Unknown practice category: {category}")
        return self._session("normal", self._rng.choice(texts), difficulty=category)

    def start_timer_test(self, duration: int | None = None) -> TestSession:
        seconds = duration or self.settings.default_duration
        paragraph = self.catalog.timer_paragraphs.get(seconds)
        if paragraph is None:
            raise ValueError(f"Unsupported timer duration: {seconds}")
        return self._session("timer", paragraph, time_limit=seconds)

    def start_daily_challenge(self) -> TestSession:
        """Daily challenge text with freshly drawn pass targets."""
        target_wpm = self._rng.randint(40, 69)
        target_accuracy = self._rng.randint(90, 99)
        return self._session(
            "challenge",
            self.catalog.daily_challenge,
            target_wpm=target_wpm,
            target_accuracy=target_accuracy,
        )

    def get_lesson(self, lesson_id: str) -> Lesson:
        return self.catalog.lesson(lesson_id)

    def start_lesson(self, lesson_id: str) -> TestSession:
        lesson = self.catalog.lesson(lesson_id)
        return self._session("normal", lesson.text, difficulty="lesson")

    def finish_lesson(self, lesson_id: str, outcome: SessionOutcome) -> bool:
        """Credit a lesson when its accepted run meets the lesson's target speed."""
        lesson = self.catalog.lesson(lesson_id)
        if outcome.record is None or outcome.record.wpm < lesson.target_wpm:
            return False
        return self.ledger.complete_lesson(lesson.id)

    def complete_lesson(self, lesson_id: str) -> bool:
        lesson = self.catalog.lesson(lesson_id)
        return self.ledger.complete_lesson(lesson.id)

    def summary(self) -> ProfileSummary:
        history = self.ledger.history()
        state = self.ledger.state
        return ProfileSummary(
            level=state.level,
            rank=self.ledger.rank,
            xp=state.xp,
            xp_for_next_level=self.ledger.xp_for_next_level,
            streak_days=state.streak_days,
            tests=catalog.count_tests(history),
            best_wpm=catalog.best_wpm(history),
            best_accuracy=catalog.best_accuracy(history),
            achievements_unlocked=len(state.achievements),
            achievements_total=len(catalog.ACHIEVEMENTS),
            unlocked_themes=tuple(state.unlocked_themes),
            completed_lessons=len(state.completed_lessons),
            daily_challenge_completed=state.daily_challenge_completed,
        )

    def achievement_statuses(self) -> list[AchievementStatus]:
        unlocked = self.ledger.state.achievements
        return [
            AchievementStatus(
                id=item.id,
                name=item.name,
                description=item.description,
                icon=item.icon,
                xp=item.xp,
                unlocked=item.id in unlocked,
                unlocked_at=unlocked[item.id].unlocked_at if item.id in unlocked else None,
            )
            for item in catalog.ACHIEVEMENTS
        ]

    def export_data(self, export_path: Path | str, fmt: str = "json") -> DataTransferSummary:
        """Export progression and history as JSON, or history alone as CSV."""
        history = self.ledger.history()
        state = self.ledger.state
        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if fmt == "json":
            payload = {
                "format_version": EXPORT_FORMAT_VERSION,
                "exported_at": datetime.now(UTC).isoformat(),
                "source": {
                    "app_version": __version__,
                    "schema_version": SCHEMA_VERSION,
                },
                "progression": state.to_dict(),
                "history": [record.to_dict() for record in history],
                "settings": asdict(self.settings),
            }
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        elif fmt == "csv":
            with path.open("w", encoding="utf-8", newline="") as handle:
                writer = csv.writer(handle)
                writer.writerow(CSV_HEADERS)
                for record in history:
                    writer.writerow(
                        [
                            _format_day(record.timestamp),
                            record.mode,
                            record.wpm,
                            record.accuracy,
                            record.errors,
                            record.duration,
                            record.difficulty or "N/A",
                        ]
                    )
        else:
            raise ValueError(f"Unsupported export format: {fmt}")

        return DataTransferSummary(
            level=state.level,
            xp=state.xp,
            achievements=len(state.achievements),
            history_rows=len(history),
        )

    def import_data(self, import_path: Path | str) -> DataTransferSummary:
        """Replace local progression, history and settings with a JSON export."""
        path = Path(import_path)
        raw_obj: object = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw_obj, dict):
            raise ValueError("Import file root must be a JSON object.")
        raw = cast(dict[str, object], raw_obj)

        format_version = coerce_int(raw.get("format_version", 0))
        if format_version is None:
            raise ValueError("Import file has invalid format_version.")
        if format_version > EXPORT_FORMAT_VERSION:
            raise ValueError(
                f"Import file format version {format_version} is newer than supported {EXPORT_FORMAT_VERSION}."
            )

        progression_raw = raw.get("progression")
        if not isinstance(progression_raw, dict):
            raise ValueError("Import file has no progression section.")
        state = progression_from_dict(cast(dict[str, object], progression_raw))

        history_raw = raw.get("history")
        records = []
        if isinstance(history_raw, list):
            for item in history_raw:
                record = record_from_dict(item)
                if record is not None:
                    records.append(record)

        self.ledger.replace_state(state)
        self.progress.replace_history(records)
        settings_raw = raw.get("settings")
        if isinstance(settings_raw, dict):
            self.settings = _settings_from_dict(cast(dict[str, object], settings_raw), self.catalog.timer_paragraphs)
            self.progress.set_document(SETTINGS_DOCUMENT, asdict(self.settings))
        logger.info("Imported progression at level %s with %s history rows", state.level, len(records))

        return DataTransferSummary(
            level=state.level,
            xp=state.xp,
            achievements=len(state.achievements),
            history_rows=self.progress.history_size(),
        )

    def reset_progress(self) -> None:
        self.ledger.reset()

    def close(self) -> None:
        """Close resources."""
        self.progress.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort cleanup for test/process teardown."""
        try:
            self.close()
        except Exception:
            pass


def _settings_from_dict(raw: dict[str, object], durations: Collection[int]) -> Settings:
    """Normalize stored or imported settings, defaulting invalid values.

    `durations` are the timer lengths the content catalog can serve.
    """
    settings = Settings()
    anti_cheat = raw.get("anti_cheat_enabled")
    if isinstance(anti_cheat, bool):
        settings = replace(settings, anti_cheat_enabled=anti_cheat)
    duration = coerce_int(raw.get("default_duration"))
    if duration is not None and duration in durations:
        settings = replace(settings, default_duration=duration)
    difficulty = raw.get("difficulty")
    if isinstance(difficulty, str) and difficulty in DIFFICULTIES:
        settings = replace(settings, difficulty=difficulty)
    return settings


def _format_day(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).date().isoformat()
    except ValueError:
        return timestamp
