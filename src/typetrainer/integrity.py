"""Behavioral heuristics that decide whether a typing result is trustworthy."""

from __future__ import annotations

import logging
import statistics
import time
from collections import deque
from dataclasses import dataclass

from .models import ValidationVerdict

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_ACTIVE = "active"
STATE_FINALIZED = "finalized"


@dataclass(frozen=True)
class IntegrityConfig:
    """Tunable thresholds; defaults match the historical scoring."""

    timing_window: int = 20
    min_interval_ms: float = 30
    min_interval_penalty: int = 5
    extreme_interval_ms: float = 10
    extreme_interval_penalty: int = 15

    quick_paste_chars: int = 3
    quick_paste_ms: float = 100
    quick_paste_penalty: int = 20
    source_paste_chars: int = 10
    source_paste_ms: float = 500
    source_paste_penalty: int = 15
    paste_event_penalty: int = 50

    uniform_min_samples: int = 5
    uniform_max_variance: float = 100
    uniform_max_mean_ms: float = 80
    uniform_penalty: int = 10
    rapid_max_mean_ms: float = 40
    rapid_penalty: int = 20

    pattern_min_text: int = 20
    pattern_min_length: int = 4
    pattern_penalty: int = 25
    repeat_ratio: float = 0.3
    repeat_penalty: int = 10

    max_human_wpm: float = 220
    max_sustained_wpm: float = 180
    sustained_seconds: float = 30
    perfect_accuracy_wpm: float = 150
    perfect_accuracy: float = 99.9
    cheating_threshold: float = 50


class TimingSampler:
    """Bounded FIFO window of inter-keystroke intervals in milliseconds."""

    def __init__(self, capacity: int = 20) -> None:
        self._samples: deque[float] = deque(maxlen=capacity)
        self._last_key_time: float | None = None

    def record(self, now_ms: float) -> float | None:
        """Store the delta since the previous keystroke and return it."""
        previous = self._last_key_time
        self._last_key_time = now_ms
        if previous is None:
            return None
        delta = now_ms - previous
        self._samples.append(delta)
        return delta

    @property
    def samples(self) -> tuple[float, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def mean(self) -> float:
        return statistics.fmean(self._samples)

    def variance(self) -> float:
        """Population variance of the window."""
        return statistics.pvariance(self._samples)

    def clear(self) -> None:
        self._samples.clear()
        self._last_key_time = None


def find_repeating_patterns(text: str) -> list[str]:
    """Return substrings immediately followed by an identical copy of themselves.

    Patterns are ordered by length, then by offset.
    """
    patterns: list[str] = []
    for length in range(2, len(text) // 2 + 1):
        for index in range(len(text) - 2 * length + 1):
            candidate = text[index : index + length]
            if text[index + length : index + 2 * length] == candidate:
                patterns.append(candidate)
    return patterns


def _now_ms() -> float:
    return time.monotonic() * 1000


class IntegrityEvaluator:
    """Accumulates a suspicion score for one typing attempt.

    The score only grows between resets. Each heuristic adds its penalty
    independently, so several may fire on the same call.
    """

    def __init__(self, reference_text: str = "", config: IntegrityConfig | None = None) -> None:
        self.config = config or IntegrityConfig()
        self.reference_text = reference_text
        self.timings = TimingSampler(self.config.timing_window)
        self.suspicion_score: float = 0
        self.copy_paste_detected = False
        self.last_text = ""
        self.last_text_time: float | None = None
        self.state = STATE_IDLE

    def reset(self, reference_text: str | None = None) -> None:
        """Clear all accumulators; optionally switch to a new prompt."""
        if reference_text is not None:
            self.reference_text = reference_text
        self.timings.clear()
        self.suspicion_score = 0
        self.copy_paste_detected = False
        self.last_text = ""
        self.last_text_time = None
        self.state = STATE_IDLE

    @property
    def is_flagged(self) -> bool:
        return self.suspicion_score >= self.config.cheating_threshold

    def _penalize(self, points: float, rule: str) -> None:
        self.suspicion_score += points
        logger.debug("integrity penalty +%s (%s), score=%s", points, rule, self.suspicion_score)

    def record_keystroke(self, now_ms: float | None = None) -> None:
        """Register one keystroke and score its interval."""
        if self.state == STATE_IDLE:
            self.state = STATE_ACTIVE
        delta = self.timings.record(_now_ms() if now_ms is None else now_ms)
        if delta is None:
            return
        cfg = self.config
        if delta < cfg.min_interval_ms:
            self._penalize(cfg.min_interval_penalty, "fast keystroke")
        if delta < cfg.extreme_interval_ms:
            self._penalize(cfg.extreme_interval_penalty, "extreme keystroke")

    def record_paste(self) -> None:
        """Register an explicit clipboard paste into the input."""
        self._penalize(self.config.paste_event_penalty, "paste event")
        self.copy_paste_detected = True

    def detect_copy_paste(self, current_text: str, previous_text: str, now_ms: float | None = None) -> bool:
        """Score a text change; return True when the attempt looks assisted."""
        cfg = self.config
        now = _now_ms() if now_ms is None else now_ms
        time_diff = float("inf") if self.last_text_time is None else now - self.last_text_time
        added_chars = len(current_text) - len(previous_text)

        if added_chars > cfg.quick_paste_chars and time_diff < cfg.quick_paste_ms:
            self._penalize(cfg.quick_paste_penalty, "burst insert")
            self.copy_paste_detected = True
            self._remember(current_text, now)
            return True

        if added_chars > cfg.source_paste_chars and time_diff < cfg.source_paste_ms:
            added_text = current_text[len(previous_text) :]
            if added_text in self.reference_text:
                self._penalize(cfg.source_paste_penalty, "prompt copied")
                self.copy_paste_detected = True
                self._remember(current_text, now)
                return True

        if len(self.timings) >= cfg.uniform_min_samples:
            mean = self.timings.mean()
            if self.timings.variance() < cfg.uniform_max_variance and mean < cfg.uniform_max_mean_ms:
                self._penalize(cfg.uniform_penalty, "uniform rhythm")
            if mean < cfg.rapid_max_mean_ms:
                self._penalize(cfg.rapid_penalty, "rapid rhythm")

        self._remember(current_text, now)
        return self.is_flagged

    def _remember(self, text: str, now: float) -> None:
        self.last_text = text
        self.last_text_time = now

    def detect_pattern_cheating(self, text: str) -> bool:
        """Flag text made of repeated chunks, as produced by scripted input."""
        cfg = self.config
        if len(text) < cfg.pattern_min_text:
            return False

        patterns = find_repeating_patterns(text)
        if any(len(pattern) > cfg.pattern_min_length for pattern in patterns):
            self._penalize(cfg.pattern_penalty, "repeated chunk")
            return True

        repeats = sum(1 for index in range(1, len(text)) if text[index] == text[index - 1])
        if repeats / len(text) > cfg.repeat_ratio:
            self._penalize(cfg.repeat_penalty, "repeated characters")
        return False

    def validate_result(self, wpm: float, accuracy: float, duration_seconds: float) -> ValidationVerdict:
        """Final gate for a completed test; first failing rule wins."""
        cfg = self.config
        self.state = STATE_FINALIZED
        verdict = self._verdict(wpm, accuracy, duration_seconds, cfg)
        if not verdict.valid:
            logger.info("result rejected: %s (wpm=%s, accuracy=%s)", verdict.reason, wpm, accuracy)
        return verdict

    def _verdict(self, wpm: float, accuracy: float, duration_seconds: float, cfg: IntegrityConfig) -> ValidationVerdict:
        if wpm > cfg.max_human_wpm:
            return ValidationVerdict(valid=False, reason="WPM exceeds human world record")
        if wpm > cfg.max_sustained_wpm and duration_seconds > cfg.sustained_seconds:
            return ValidationVerdict(valid=False, reason="Unrealistic sustained speed")
        if wpm > cfg.perfect_accuracy_wpm and accuracy > cfg.perfect_accuracy:
            return ValidationVerdict(valid=False, reason="Unrealistic speed with perfect accuracy")
        if self.copy_paste_detected:
            return ValidationVerdict(valid=False, reason="Copy-paste detected")
        if self.is_flagged:
            return ValidationVerdict(
                valid=False,
                reason="Suspicious typing patterns detected",
                score=self.suspicion_score,
            )
        return ValidationVerdict(valid=True, reason="Valid result", score=self.suspicion_score)
