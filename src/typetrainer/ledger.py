"""Player progression: XP, levels, streaks, unlocks, and achievements."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

from . import achievements as catalog
from .models import ProgressionState, TestRecord, UnlockedAchievement, XPAward
from .progress import ProgressStore

LESSON_XP = 25
DAILY_CHALLENGE_XP = 50

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ProgressionLedger:
    """Owns the persisted `ProgressionState`; every mutation is saved immediately.

    State is loaded once from the store at construction. Test history lives in
    the store and is re-read on demand, so history-derived figures are never
    stale.
    """

    def __init__(
        self,
        store: ProgressStore,
        *,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self._today = today
        self._now = now
        self._state = store.load_progression()
        self._checking_achievements = False

    @property
    def state(self) -> ProgressionState:
        return self._state

    @property
    def level(self) -> int:
        return self._state.level

    @property
    def xp(self) -> int:
        return self._state.xp

    @property
    def streak_days(self) -> int:
        return self._state.streak_days

    @property
    def xp_for_next_level(self) -> int:
        return catalog.xp_for_level(self._state.level + 1)

    @property
    def rank(self) -> str:
        return catalog.rank_for_level(self._state.level)

    def _save(self) -> None:
        self.store.save_progression(self._state)

    def add_xp(self, amount: int, source: str = "test") -> XPAward:
        """Grant XP, level up as many times as it covers, and refresh the streak."""
        state = self._state
        old_level = state.level
        state.xp += amount
        self._settle_levels()
        if state.level > old_level:
            logger.info("Level up from %s: %s -> %s", source, old_level, state.level)

        self.update_streak()
        self._save()
        return XPAward(
            xp_added=amount,
            leveled_up=state.level > old_level,
            new_level=state.level,
            xp_to_next=self.xp_for_next_level - state.xp,
        )

    def _settle_levels(self) -> None:
        """Convert banked XP into levels until it is below the next threshold."""
        state = self._state
        threshold = catalog.xp_for_level(state.level + 1)
        while state.xp >= threshold:
            state.level += 1
            state.xp -= threshold
            threshold = catalog.xp_for_level(state.level + 1)
            self._unlock_level_features(state.level)

    def _unlock_level_features(self, level: int) -> None:
        for feature in catalog.LEVEL_UNLOCKS.get(level, ()):
            if feature not in self._state.unlocked_themes:
                self._state.unlocked_themes.append(feature)
                logger.info("Unlocked %s at level %s", feature, level)

    def update_streak(self) -> int:
        """Advance the daily streak by calendar day; same-day calls are no-ops."""
        state = self._state
        today = self._today()
        last = state.last_active_date
        if last == today:
            return state.streak_days
        if last is not None and last == today - timedelta(days=1):
            state.streak_days += 1
        else:
            state.streak_days = 1
        state.last_active_date = today
        self._save()
        self.check_achievements()
        return state.streak_days

    def snapshot(self) -> catalog.ProgressSnapshot:
        """Return a detached copy of state and history for predicate evaluation."""
        return catalog.ProgressSnapshot(state=copy.deepcopy(self._state), history=tuple(self.history()))

    def check_achievements(self) -> list[str]:
        """Unlock every achievement whose predicate holds; return the new ids.

        Predicates see the state as it was when the pass started, so XP granted
        by one unlock cannot satisfy another achievement in the same pass.
        """
        if self._checking_achievements:
            return []
        self._checking_achievements = True
        try:
            snapshot = self.snapshot()
            unlocked: list[str] = []
            for definition in catalog.ACHIEVEMENTS:
                if definition.id in self._state.achievements:
                    continue
                if not definition.predicate(snapshot):
                    continue
                self._state.achievements[definition.id] = UnlockedAchievement(
                    achievement_id=definition.id,
                    unlocked_at=self._now().isoformat(),
                    xp_reward=definition.xp,
                )
                unlocked.append(definition.id)
                logger.info("Achievement unlocked: %s (+%s XP)", definition.id, definition.xp)
                self.add_xp(definition.xp, source="achievement")
            if unlocked:
                self._save()
            return unlocked
        finally:
            self._checking_achievements = False

    def complete_daily_challenge(self) -> bool:
        """Mark the daily challenge done once; return False if it already was."""
        if self._state.daily_challenge_completed:
            return False
        self._state.daily_challenge_completed = True
        self.add_xp(DAILY_CHALLENGE_XP, source="daily_challenge")
        self._save()
        return True

    def complete_lesson(self, lesson_id: str) -> bool:
        """Credit a lesson the first time it is completed."""
        if lesson_id in self._state.completed_lessons:
            return False
        self._state.completed_lessons.append(lesson_id)
        self.add_xp(LESSON_XP, source="lesson")
        self._save()
        return True

    def record_test(self, record: TestRecord) -> None:
        """Append an accepted result to the bounded history log."""
        self.store.append_test(record)

    def history(self) -> list[TestRecord]:
        return self.store.list_history()

    def test_count(self) -> int:
        return catalog.count_tests(self.history())

    def best_wpm(self) -> float:
        return catalog.best_wpm(self.history())

    def best_accuracy(self) -> float:
        return catalog.best_accuracy(self.history())

    def perfect_runs(self) -> int:
        return catalog.perfect_runs(self.history())

    def zero_error_tests(self) -> int:
        return catalog.zero_error_tests(self.history())

    def tests_at_or_above(self, wpm: float) -> int:
        return catalog.tests_at_or_above(self.history(), wpm)

    def unlocked_achievements(self) -> list[UnlockedAchievement]:
        """Return unlocked achievements in catalog order."""
        unlocked = self._state.achievements
        ordered = [unlocked[item.id] for item in catalog.ACHIEVEMENTS if item.id in unlocked]
        extra = [entry for key, entry in unlocked.items() if key not in catalog.ACHIEVEMENTS_BY_ID]
        return ordered + extra

    def replace_state(self, state: ProgressionState) -> None:
        """Swap in a whole state, e.g. from an import, and persist it.

        Surplus XP is settled into levels so the state obeys the level curve.
        """
        self._state = state
        self._settle_levels()
        self._save()

    def reset(self) -> None:
        """Forget all progression and history."""
        self.store.clear()
        self._state = ProgressionState()
        logger.info("Progression reset to defaults")
