from datetime import date
from pathlib import Path

from conftest import FakeCalendar, make_record
from typetrainer.ledger import DAILY_CHALLENGE_XP, LESSON_XP, ProgressionLedger
from typetrainer.models import ProgressionState
from typetrainer.progress import ProgressStore


def test_exact_threshold_levels_up_with_no_leftover(ledger: ProgressionLedger) -> None:
    award = ledger.add_xp(282)
    assert award.leveled_up is True
    assert award.new_level == 2
    assert award.xp_added == 282
    assert ledger.level == 2
    assert ledger.xp == 0
    assert award.xp_to_next == 519


def test_partial_xp_does_not_level(ledger: ProgressionLedger) -> None:
    award = ledger.add_xp(100)
    assert award.leveled_up is False
    assert award.new_level == 1
    assert award.xp_to_next == 182


def test_multiple_level_ups_in_one_grant(ledger: ProgressionLedger) -> None:
    award = ledger.add_xp(282 + 519 + 10)
    assert award.new_level == 3
    assert ledger.xp == 10
    assert ledger.xp_for_next_level == 800


def test_level_unlocks_are_applied(ledger: ProgressionLedger) -> None:
    ledger.add_xp(282 + 519 + 800 + 1118)
    assert ledger.level == 5
    assert ledger.rank == "Novice"
    assert ledger.state.unlocked_themes == ["midnight", "forest"]


def test_add_xp_refreshes_streak(ledger: ProgressionLedger, calendar: FakeCalendar) -> None:
    ledger.add_xp(1)
    assert ledger.streak_days == 1
    assert ledger.state.last_active_date == calendar.day


def test_streak_same_day_is_noop(ledger: ProgressionLedger) -> None:
    assert ledger.update_streak() == 1
    assert ledger.update_streak() == 1


def test_streak_consecutive_days_increment(ledger: ProgressionLedger, calendar: FakeCalendar) -> None:
    ledger.update_streak()
    calendar.advance()
    assert ledger.update_streak() == 2


def test_streak_resets_after_gap(ledger: ProgressionLedger, calendar: FakeCalendar) -> None:
    ledger.update_streak()
    calendar.advance()
    ledger.update_streak()
    calendar.advance(2)
    assert ledger.update_streak() == 1
    assert ledger.state.last_active_date == calendar.day


def test_three_day_streak_unlocks_achievement(ledger: ProgressionLedger, calendar: FakeCalendar) -> None:
    for _ in range(3):
        ledger.add_xp(1)
        calendar.advance()
    assert "streak_3" in ledger.state.achievements
    assert ledger.xp == 3 + 50


def test_achievements_unlock_once(ledger: ProgressionLedger) -> None:
    ledger.record_test(make_record(wpm=55, accuracy=90))
    first = ledger.check_achievements()
    assert first == ["first_test", "speed_50"]
    xp_after_first = ledger.xp

    assert ledger.check_achievements() == []
    assert ledger.check_achievements() == []
    assert ledger.xp == xp_after_first
    assert ledger.state.achievements["speed_50"].xp_reward == 100


def test_unlock_rewards_do_not_chain_within_a_pass(ledger: ProgressionLedger) -> None:
    ledger.state.level = 9
    ledger.state.xp = 3160
    ledger.record_test(make_record())

    assert ledger.check_achievements() == ["first_test"]
    assert ledger.level == 10
    assert "level_10" not in ledger.state.achievements
    assert "sunset" in ledger.state.unlocked_themes

    assert ledger.check_achievements() == ["level_10"]


def test_unlocked_achievements_follow_catalog_order(ledger: ProgressionLedger) -> None:
    ledger.record_test(make_record(wpm=55, accuracy=100, errors=0))
    ledger.check_achievements()
    ids = [entry.achievement_id for entry in ledger.unlocked_achievements()]
    assert ids == ["first_test", "speed_50", "accuracy_95", "accuracy_99", "perfect_run"]


def test_daily_challenge_is_idempotent(ledger: ProgressionLedger) -> None:
    assert ledger.complete_daily_challenge() is True
    assert ledger.state.daily_challenge_completed is True
    assert "daily_challenge" in ledger.state.achievements
    xp = ledger.xp
    assert xp == DAILY_CHALLENGE_XP + 50

    assert ledger.complete_daily_challenge() is False
    assert ledger.xp == xp


def test_lesson_credit_is_granted_once(ledger: ProgressionLedger) -> None:
    assert ledger.complete_lesson("home1") is True
    assert ledger.xp == LESSON_XP
    assert ledger.complete_lesson("home1") is False
    assert ledger.xp == LESSON_XP
    assert ledger.state.completed_lessons == ["home1"]


def test_history_queries_are_live(ledger: ProgressionLedger) -> None:
    assert ledger.test_count() == 0
    ledger.record_test(make_record(wpm=70, accuracy=100, errors=0))
    ledger.record_test(make_record(wpm=85, accuracy=96, errors=1))
    assert ledger.test_count() == 2
    assert ledger.best_wpm() == 85
    assert ledger.best_accuracy() == 100
    assert ledger.perfect_runs() == 1
    assert ledger.zero_error_tests() == 1
    assert ledger.tests_at_or_above(80) == 1


def test_state_persists_across_instances(tmp_path: Path) -> None:
    db_path = tmp_path / "progress.db"
    day = date(2026, 5, 1)
    store = ProgressStore(db_path)
    ledger = ProgressionLedger(store, today=lambda: day)
    ledger.add_xp(300)
    ledger.complete_lesson("top1")
    store.close()

    reopened = ProgressStore(db_path)
    again = ProgressionLedger(reopened, today=lambda: day)
    assert again.level == 2
    assert again.xp == 18 + LESSON_XP
    assert again.streak_days == 1
    assert again.state.completed_lessons == ["top1"]
    reopened.close()


def test_reset_restores_defaults(ledger: ProgressionLedger) -> None:
    ledger.add_xp(500)
    ledger.record_test(make_record())
    ledger.check_achievements()
    ledger.reset()
    assert ledger.level == 1
    assert ledger.xp == 0
    assert ledger.state.achievements == {}
    assert ledger.history() == []
    assert ledger.store.load_progression().level == 1


def test_replace_state_settles_surplus_xp(ledger: ProgressionLedger) -> None:
    ledger.replace_state(ProgressionState(level=1, xp=600))
    assert ledger.level == 2
    assert ledger.xp == 318
    assert ledger.store.load_progression().xp == 318

    ledger.replace_state(ProgressionState(level=4, xp=1118))
    assert ledger.level == 5
    assert ledger.xp == 0
    assert "forest" in ledger.state.unlocked_themes
