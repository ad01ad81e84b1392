"""One typing attempt: feeds input to the integrity checks and rewards valid results."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime

from . import achievements as catalog
from .integrity import IntegrityConfig, IntegrityEvaluator
from .ledger import ProgressionLedger
from .models import TEST_MODES, TestRecord, ValidationVerdict, XPAward

TIMER_COMPLETION_BONUS = 20
CHALLENGE_PASS_BONUS = 50

logger = logging.getLogger(__name__)


def calculate_wpm(characters: int, seconds: float) -> int:
    """Words per minute with the standard five-characters-per-word convention."""
    if seconds <= 0:
        return 0
    return round((characters / 5) / seconds * 60)


def count_errors(typed: str, target: str) -> int:
    """Positional mismatches over the overlapping part of both texts."""
    return sum(1 for typed_char, target_char in zip(typed, target) if typed_char != target_char)


def accuracy_from_errors(errors: int, typed_count: int) -> int:
    if typed_count <= 0:
        return 100
    return max(0, round((1 - errors / typed_count) * 100))


def positional_accuracy(typed: str, target: str) -> int:
    """Share of typed characters that match the prompt at the same position."""
    if not typed:
        return 0
    correct = sum(1 for typed_char, target_char in zip(typed, target) if typed_char == target_char)
    return round(correct / len(typed) * 100)


def reward_xp(
    mode: str,
    wpm: float,
    accuracy: float,
    *,
    completed: bool = False,
    passed: bool = False,
) -> int:
    """Base XP for an accepted result."""
    if mode == "timer":
        bonus = TIMER_COMPLETION_BONUS if completed else 0
        return math.floor(wpm * 0.3 + accuracy * 0.2 + bonus)
    if mode == "challenge":
        bonus = CHALLENGE_PASS_BONUS if passed else 0
        return math.floor(wpm * 0.2 + accuracy * 0.1 + bonus)
    return math.floor(wpm * 0.5 + accuracy * 0.3)


@dataclass(frozen=True)
class SessionOutcome:
    """Everything the display layer needs after a test ends."""

    verdict: ValidationVerdict
    record: TestRecord | None = None
    xp_earned: int = 0
    award: XPAward | None = None
    new_achievements: list[str] = field(default_factory=list)
    passed: bool | None = None
    daily_challenge_completed: bool = False


class TestSession:
    """Orchestrates one attempt from the first keystroke to its reward."""

    __test__ = False

    def __init__(
        self,
        ledger: ProgressionLedger,
        mode: str,
        prompt: str,
        *,
        anti_cheat_enabled: bool = True,
        config: IntegrityConfig | None = None,
        difficulty: str | None = None,
        time_limit: int | None = None,
        target_wpm: int | None = None,
        target_accuracy: int | None = None,
    ) -> None:
        if mode not in TEST_MODES:
            raise ValueError(f"Unknown test mode: {mode}")
        if mode == "challenge" and (target_wpm is None or target_accuracy is None):
            raise ValueError("Challenge mode requires target WPM and accuracy.")
        self.ledger = ledger
        self.mode = mode
        self.prompt = prompt
        self.anti_cheat_enabled = anti_cheat_enabled
        self.difficulty = difficulty
        self.time_limit = time_limit
        self.target_wpm = target_wpm
        self.target_accuracy = target_accuracy
        self.evaluator = IntegrityEvaluator(reference_text=prompt, config=config)
        self.typed = ""
        self.finished = False

    def start(self) -> None:
        """Begin (or restart) the attempt with clean integrity accumulators."""
        self.evaluator.reset(reference_text=self.prompt)
        self.typed = ""
        self.finished = False

    def on_keystroke(self, now_ms: float | None = None) -> None:
        if self.anti_cheat_enabled:
            self.evaluator.record_keystroke(now_ms)

    def on_text_changed(self, current_text: str, now_ms: float | None = None) -> bool:
        """Track the input text; return the live suspicion flag."""
        self.typed = current_text
        if not self.anti_cheat_enabled:
            return False
        return self.evaluator.detect_copy_paste(current_text, self.evaluator.last_text, now_ms)

    def on_input(self, current_text: str, now_ms: float | None = None) -> bool:
        """Keystroke followed by the resulting text change."""
        self.on_keystroke(now_ms)
        return self.on_text_changed(current_text, now_ms)

    def on_paste(self) -> None:
        if self.anti_cheat_enabled:
            self.evaluator.record_paste()

    def complete_from_text(self, elapsed_seconds: float, *, time_up: bool = False) -> SessionOutcome:
        """Derive WPM, accuracy and errors from the typed text, then finish."""
        typed = self.typed
        errors = count_errors(typed, self.prompt)
        wpm = calculate_wpm(len(typed), elapsed_seconds)
        if self.mode == "timer":
            accuracy = positional_accuracy(typed, self.prompt)
        else:
            accuracy = accuracy_from_errors(errors, min(len(typed), len(self.prompt)))
        return self.on_test_complete(
            wpm,
            accuracy,
            elapsed_seconds,
            errors=errors,
            characters=len(typed),
            completed=not time_up,
        )

    def on_test_complete(
        self,
        wpm: float,
        accuracy: float,
        duration_seconds: float,
        *,
        errors: int = 0,
        characters: int | None = None,
        completed: bool = True,
    ) -> SessionOutcome:
        """Validate the result and, when accepted, award and record it."""
        if self.finished:
            raise RuntimeError("Test session already finished.")
        self.finished = True

        if self.anti_cheat_enabled:
            verdict = self.evaluator.validate_result(wpm, accuracy, duration_seconds)
        else:
            verdict = ValidationVerdict(valid=True, reason="Integrity checks disabled")
        if not verdict.valid:
            return SessionOutcome(verdict=verdict)

        known = set(self.ledger.state.achievements)
        passed: bool | None = None
        if self.mode == "challenge":
            passed = wpm >= (self.target_wpm or 0) and accuracy >= (self.target_accuracy or 0)

        xp_earned = reward_xp(self.mode, wpm, accuracy, completed=completed, passed=bool(passed))
        award = self.ledger.add_xp(xp_earned, source=self.mode)
        daily_done = bool(passed) and self.ledger.complete_daily_challenge()

        record = TestRecord(
            mode=self.mode,
            wpm=wpm,
            accuracy=accuracy,
            errors=errors,
            characters=len(self.typed) if characters is None else characters,
            duration=duration_seconds,
            timestamp=datetime.now(UTC).isoformat(),
            suspicion_score=self.evaluator.suspicion_score,
            difficulty=self.difficulty,
            time_limit=self.time_limit if self.mode == "timer" else None,
            completed=completed if self.mode == "timer" else None,
            passed=passed,
            target_wpm=self.target_wpm if self.mode == "challenge" else None,
            target_accuracy=self.target_accuracy if self.mode == "challenge" else None,
        )
        self.ledger.record_test(record)
        self.ledger.check_achievements()

        # Achievements may also unlock inside add_xp via the daily streak refresh.
        unlocked = self.ledger.state.achievements
        new_achievements = [item.id for item in catalog.ACHIEVEMENTS if item.id in unlocked and item.id not in known]
        logger.info("%s test accepted: %s WPM, %s%% accuracy, +%s XP", self.mode, wpm, accuracy, xp_earned)
        return SessionOutcome(
            verdict=verdict,
            record=record,
            xp_earned=xp_earned,
            award=award,
            new_achievements=new_achievements,
            passed=passed,
            daily_challenge_completed=daily_done,
        )
