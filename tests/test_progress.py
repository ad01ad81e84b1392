import sqlite3
from datetime import date
from pathlib import Path

from conftest import make_record
from typetrainer.models import ProgressionState, UnlockedAchievement
from typetrainer.progress import (
    PROGRESSION_DOCUMENT,
    SETTINGS_DOCUMENT,
    ProgressStore,
    coerce_float,
    coerce_int,
    progression_from_dict,
    record_from_dict,
)


def test_migration_sets_user_version_and_schema_history() -> None:
    store = ProgressStore(":memory:")
    version = int(store._conn.execute("PRAGMA user_version").fetchone()[0])  # noqa: SLF001
    assert version == 1
    rows = store._conn.execute("SELECT version FROM schema_migrations ORDER BY version").fetchall()  # noqa: SLF001
    assert [int(row["version"]) for row in rows] == [1]


def test_newer_schema_version_is_rejected(tmp_path: Path) -> None:
    db_path = tmp_path / "future.db"
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA user_version = 99")
    conn.commit()
    conn.close()

    try:
        ProgressStore(db_path)
        raise AssertionError("Expected RuntimeError for newer schema.")
    except RuntimeError as exc:
        assert "newer than supported" in str(exc)


def test_missing_progression_loads_defaults(store: ProgressStore) -> None:
    state = store.load_progression()
    assert state == ProgressionState()
    assert state.unlocked_themes == ["midnight"]


def test_progression_round_trip_on_disk(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "progress.db"
    store = ProgressStore(db_path)
    state = ProgressionState(
        level=4,
        xp=120,
        streak_days=2,
        last_active_date=date(2026, 3, 9),
        achievements={"first_test": UnlockedAchievement("first_test", "2026-03-09T10:00:00+00:00", 50)},
        unlocked_themes=["midnight", "forest"],
        completed_lessons=["home1"],
        daily_challenge_completed=True,
    )
    store.save_progression(state)
    store.close()

    reopened = ProgressStore(db_path)
    assert reopened.load_progression() == state
    reopened.close()


def test_corrupt_documents_fall_back_to_defaults(store: ProgressStore) -> None:
    with store._conn:  # noqa: SLF001
        store._conn.execute(  # noqa: SLF001
            "INSERT INTO documents (name, value, updated_at) VALUES (?, ?, ?)",
            (PROGRESSION_DOCUMENT, "{not json", "2026-01-01"),
        )
    assert store.get_document(PROGRESSION_DOCUMENT) is None
    assert store.load_progression() == ProgressionState()

    store.set_document(PROGRESSION_DOCUMENT, ["not", "an", "object"])
    assert store.load_progression() == ProgressionState()


def test_progression_from_dict_defaults_bad_fields() -> None:
    state = progression_from_dict(
        {
            "level": 0,
            "xp": "35",
            "streak_days": -4,
            "last_active_date": "yesterday",
            "achievements": {"speed_50": {"unlocked_at": "t", "xp_reward": "100"}, "bad": 3},
            "unlocked_themes": "forest",
            "completed_lessons": ["home1", "home1", 7, "top1"],
            "daily_challenge_completed": "yes",
        }
    )
    assert state.level == 1
    assert state.xp == 35
    assert state.streak_days == 0
    assert state.last_active_date is None
    assert list(state.achievements) == ["speed_50"]
    assert state.achievements["speed_50"].xp_reward == 100
    assert state.unlocked_themes == ["midnight"]
    assert state.completed_lessons == ["home1", "top1"]
    assert state.daily_challenge_completed is False


def test_history_is_fifo_bounded() -> None:
    store = ProgressStore(":memory:", history_capacity=3)
    for wpm in range(1, 6):
        store.append_test(make_record(wpm=wpm))
    assert store.history_size() == 3
    assert [record.wpm for record in store.list_history()] == [3, 4, 5]


def test_default_history_capacity_is_one_hundred(store: ProgressStore) -> None:
    for index in range(101):
        store.append_test(make_record(wpm=index, accuracy=50))
    history = store.list_history()
    assert len(history) == 100
    assert history[0].wpm == 1
    assert history[-1].wpm == 100


def test_history_skips_unreadable_rows(store: ProgressStore) -> None:
    store.append_test(make_record(wpm=10))
    with store._conn:  # noqa: SLF001
        store._conn.execute(  # noqa: SLF001
            "INSERT INTO test_history (payload, created_at) VALUES (?, ?)", ("{oops", "2026-01-01")
        )
        store._conn.execute(  # noqa: SLF001
            "INSERT INTO test_history (payload, created_at) VALUES (?, ?)", ('{"mode": "normal"}', "2026-01-01")
        )
    store.append_test(make_record(wpm=20))
    assert [record.wpm for record in store.list_history()] == [10, 20]


def test_record_payload_keeps_mode_metadata(store: ProgressStore) -> None:
    record = make_record(mode="challenge", passed=True, target_wpm=45, target_accuracy=92)
    store.append_test(record)
    [loaded] = store.list_history()
    assert loaded == record
    assert "time_limit" not in record.to_dict()


def test_record_from_dict_rejects_unusable_payloads() -> None:
    assert record_from_dict("nope") is None
    assert record_from_dict({"mode": "normal", "wpm": "fast", "accuracy": 90}) is None
    assert record_from_dict({"wpm": 40, "accuracy": 90}) is None

    record = record_from_dict({"mode": "timer", "wpm": "42", "accuracy": 97.5, "errors": -3, "time_limit": 60})
    assert record is not None
    assert record.wpm == 42.0
    assert record.errors == 0
    assert record.time_limit == 60
    assert record.timestamp


def test_replace_history_keeps_newest() -> None:
    store = ProgressStore(":memory:", history_capacity=2)
    store.append_test(make_record(wpm=99))
    store.replace_history([make_record(wpm=1), make_record(wpm=2), make_record(wpm=3)])
    assert [record.wpm for record in store.list_history()] == [2, 3]


def test_clear_keeps_settings(store: ProgressStore) -> None:
    store.set_document(SETTINGS_DOCUMENT, {"difficulty": "hard"})
    store.save_progression(ProgressionState(level=3))
    store.append_test(make_record())

    store.clear()
    assert store.history_size() == 0
    assert store.load_progression() == ProgressionState()
    assert store.get_document(SETTINGS_DOCUMENT) == {"difficulty": "hard"}


def test_delete_document(store: ProgressStore) -> None:
    store.set_document("scratch", {"a": 1})
    store.set_document("scratch", {"a": 2})
    assert store.get_document("scratch") == {"a": 2}
    store.delete_document("scratch")
    assert store.get_document("scratch") is None


def test_coerce_helpers() -> None:
    assert coerce_int("12") == 12
    assert coerce_int(3.9) == 3
    assert coerce_int("x") is None
    assert coerce_int(None, default=0) == 0
    assert coerce_float("2.5") == 2.5
    assert coerce_float(True) == 1.0
    assert coerce_float([], default=0.0) == 0.0
