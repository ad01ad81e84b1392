"""Static progression tables: level curve, unlocks, ranks, and achievements."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .models import ProgressionState, TestRecord

LEVEL_UNLOCKS: dict[int, tuple[str, ...]] = {
    5: ("forest",),
    10: ("sunset",),
    15: ("ocean",),
    20: ("matrix",),
    25: ("retro-sounds",),
    30: ("custom-cursors",),
}

# Fixed count, not the catalog size: the bundled catalog has 13 lessons, so
# "Scholar" stays locked until at least 20 lessons ship.
ALL_LESSONS_COUNT = 20

RANKS: tuple[tuple[int, str], ...] = (
    (50, "Grandmaster"),
    (40, "Master"),
    (30, "Expert"),
    (20, "Advanced"),
    (10, "Intermediate"),
    (5, "Novice"),
    (1, "Beginner"),
)


def xp_for_level(level: int) -> int:
    """XP needed to advance into `level` from the level below it."""
    return math.floor(100 * level**1.5)


def rank_for_level(level: int) -> str:
    for threshold, name in RANKS:
        if level >= threshold:
            return name
    return "Beginner"


def count_tests(history: Sequence[TestRecord]) -> int:
    return len(history)


def best_wpm(history: Sequence[TestRecord]) -> float:
    return max((record.wpm for record in history), default=0)


def best_accuracy(history: Sequence[TestRecord]) -> float:
    return max((record.accuracy for record in history), default=0)


def perfect_runs(history: Sequence[TestRecord]) -> int:
    return sum(1 for record in history if record.accuracy == 100)


def zero_error_tests(history: Sequence[TestRecord]) -> int:
    return sum(1 for record in history if record.errors == 0)


def tests_at_or_above(history: Sequence[TestRecord], wpm: float) -> int:
    return sum(1 for record in history if record.wpm >= wpm)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Read-only view handed to achievement predicates."""

    state: ProgressionState
    history: tuple[TestRecord, ...]


Predicate = Callable[[ProgressSnapshot], bool]


@dataclass(frozen=True)
class AchievementDefinition:
    """One catalog entry."""

    id: str
    name: str
    description: str
    icon: str
    xp: int
    predicate: Predicate


def _min_tests(count: int) -> Predicate:
    return lambda snap: count_tests(snap.history) >= count


def _min_wpm(wpm: float) -> Predicate:
    return lambda snap: best_wpm(snap.history) >= wpm


def _min_accuracy(accuracy: float) -> Predicate:
    return lambda snap: best_accuracy(snap.history) >= accuracy


def _min_streak(days: int) -> Predicate:
    return lambda snap: snap.state.streak_days >= days


def _min_lessons(count: int) -> Predicate:
    return lambda snap: len(snap.state.completed_lessons) >= count


def _min_level(level: int) -> Predicate:
    return lambda snap: snap.state.level >= level


ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    AchievementDefinition("first_test", "First Test", "Complete your first typing test", "fa-flag", 50, _min_tests(1)),
    AchievementDefinition("speed_50", "Speed Demon I", "Achieve 50 WPM", "fa-tachometer-alt", 100, _min_wpm(50)),
    AchievementDefinition("speed_75", "Speed Demon II", "Achieve 75 WPM", "fa-tachometer-alt", 150, _min_wpm(75)),
    AchievementDefinition("speed_100", "Speed Master", "Achieve 100 WPM", "fa-tachometer-alt-fast", 200, _min_wpm(100)),
    AchievementDefinition("accuracy_95", "Precision I", "Achieve 95% accuracy", "fa-bullseye", 100, _min_accuracy(95)),
    AchievementDefinition("accuracy_99", "Precision II", "Achieve 99% accuracy", "fa-bullseye", 150, _min_accuracy(99)),
    AchievementDefinition("streak_3", "Consistent I", "3-day streak", "fa-calendar", 50, _min_streak(3)),
    AchievementDefinition("streak_7", "Consistent II", "7-day streak", "fa-calendar", 100, _min_streak(7)),
    AchievementDefinition("streak_30", "Dedicated", "30-day streak", "fa-calendar", 500, _min_streak(30)),
    AchievementDefinition("tests_10", "Practiced", "Complete 10 tests", "fa-keyboard", 100, _min_tests(10)),
    AchievementDefinition("tests_50", "Experienced", "Complete 50 tests", "fa-keyboard", 300, _min_tests(50)),
    AchievementDefinition("tests_100", "Veteran", "Complete 100 tests", "fa-keyboard", 500, _min_tests(100)),
    AchievementDefinition("lessons_5", "Student", "Complete 5 lessons", "fa-graduation-cap", 150, _min_lessons(5)),
    AchievementDefinition(
        "lessons_all",
        "Scholar",
        "Complete all lessons",
        "fa-graduation-cap",
        300,
        _min_lessons(ALL_LESSONS_COUNT),
    ),
    AchievementDefinition(
        "daily_challenge",
        "Daily Warrior",
        "Complete daily challenge",
        "fa-calendar-day",
        50,
        lambda snap: snap.state.daily_challenge_completed,
    ),
    AchievementDefinition(
        "perfect_run",
        "Flawless",
        "Complete a test with 100% accuracy",
        "fa-star",
        200,
        lambda snap: perfect_runs(snap.history) > 0,
    ),
    AchievementDefinition("level_10", "Rising Star", "Reach level 10", "fa-level-up-alt", 250, _min_level(10)),
    AchievementDefinition("level_25", "Prodigy", "Reach level 25", "fa-level-up-alt", 500, _min_level(25)),
    AchievementDefinition("level_50", "Legend", "Reach level 50", "fa-crown", 1000, _min_level(50)),
    AchievementDefinition(
        "no_errors",
        "Error Free",
        "Complete 3 tests with 0 errors",
        "fa-check-circle",
        150,
        lambda snap: zero_error_tests(snap.history) >= 3,
    ),
    AchievementDefinition(
        "fast_typer",
        "Fast Typer",
        "Complete 10 tests above 80 WPM",
        "fa-bolt",
        200,
        lambda snap: tests_at_or_above(snap.history, 80) >= 10,
    ),
)

ACHIEVEMENTS_BY_ID: dict[str, AchievementDefinition] = {item.id: item for item in ACHIEVEMENTS}
