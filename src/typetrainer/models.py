"""Core domain models for typing tests, verdicts, and progression."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

TEST_MODES = ("normal", "timer", "challenge")
DEFAULT_THEMES = ("midnight",)


@dataclass(frozen=True)
class TestRecord:
    """One completed and accepted typing test."""

    __test__ = False

    mode: str
    wpm: float
    accuracy: float
    errors: int
    characters: int
    duration: float
    timestamp: str
    suspicion_score: float = 0
    difficulty: str | None = None
    time_limit: int | None = None
    completed: bool | None = None
    passed: bool | None = None
    target_wpm: int | None = None
    target_accuracy: int | None = None

    def to_dict(self) -> dict[str, object]:
        """Return JSON-ready payload, omitting unset optional metadata."""
        payload: dict[str, object] = {
            "mode": self.mode,
            "wpm": self.wpm,
            "accuracy": self.accuracy,
            "errors": self.errors,
            "characters": self.characters,
            "duration": self.duration,
            "timestamp": self.timestamp,
            "suspicion_score": self.suspicion_score,
        }
        optional: dict[str, object | None] = {
            "difficulty": self.difficulty,
            "time_limit": self.time_limit,
            "completed": self.completed,
            "passed": self.passed,
            "target_wpm": self.target_wpm,
            "target_accuracy": self.target_accuracy,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of the final plausibility gate for one test."""

    valid: bool
    reason: str
    score: float | None = None


@dataclass(frozen=True)
class XPAward:
    """Progression delta returned by one XP grant."""

    xp_added: int
    leveled_up: bool
    new_level: int
    xp_to_next: int


@dataclass(frozen=True)
class UnlockedAchievement:
    """Ledger entry for an unlocked achievement."""

    achievement_id: str
    unlocked_at: str
    xp_reward: int


@dataclass
class ProgressionState:
    """Durable player progression; serialized as one document."""

    level: int = 1
    xp: int = 0
    streak_days: int = 0
    last_active_date: date | None = None
    achievements: dict[str, UnlockedAchievement] = field(default_factory=dict)
    unlocked_themes: list[str] = field(default_factory=lambda: list(DEFAULT_THEMES))
    completed_lessons: list[str] = field(default_factory=list)
    daily_challenge_completed: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "level": self.level,
            "xp": self.xp,
            "streak_days": self.streak_days,
            "last_active_date": self.last_active_date.isoformat() if self.last_active_date else None,
            "achievements": {
                key: {"unlocked_at": item.unlocked_at, "xp_reward": item.xp_reward}
                for key, item in self.achievements.items()
            },
            "unlocked_themes": list(self.unlocked_themes),
            "completed_lessons": list(self.completed_lessons),
            "daily_challenge_completed": self.daily_challenge_completed,
        }


@dataclass(frozen=True)
class Lesson:
    """Guided keyboard drill."""

    id: str
    title: str
    text: str
    target_wpm: int
    category: str


@dataclass(frozen=True)
class TextCatalog:
    """Bundled prompt texts and lessons."""

    sentences: dict[str, list[str]]
    timer_paragraphs: dict[int, str]
    daily_challenge: str
    practice: dict[str, list[str]]
    lessons: list[Lesson]

    def lesson(self, lesson_id: str) -> Lesson:
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return lesson
        raise KeyError(lesson_id)
