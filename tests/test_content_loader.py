import json
from pathlib import Path

from typetrainer.content_loader import DIFFICULTIES, load_catalog, load_catalog_from_dir


def _texts_payload() -> dict[str, object]:
    return {
        "sentences": {name: [f"{name} sentence"] for name in DIFFICULTIES},
        "timer_paragraphs": {"60": "Sixty seconds of text.", "30": "Thirty seconds of text."},
        "daily_challenge": "Daily text.",
        "practice": {"numbers": ["1 2 3"]},
    }


def _write(root: Path, texts: dict[str, object], lessons: dict[str, object]) -> None:
    root.mkdir(parents=True, exist_ok=True)
    (root / "texts.json").write_text(json.dumps(texts), encoding="utf-8")
    (root / "lessons.json").write_text(json.dumps(lessons), encoding="utf-8")


def test_load_catalog_bundled_content() -> None:
    catalog = load_catalog()
    assert set(catalog.sentences) == set(DIFFICULTIES)
    assert all(catalog.sentences[name] for name in DIFFICULTIES)
    assert list(catalog.timer_paragraphs) == [30, 60, 90, 120]
    assert "daily challenge" in catalog.daily_challenge
    assert len(catalog.lessons) == 13
    assert catalog.lesson("home1").target_wpm == 20
    assert catalog.lesson("full1").text == "the quick brown fox jumps over the lazy dog"


def test_catalog_lesson_lookup_unknown_raises() -> None:
    catalog = load_catalog()
    try:
        catalog.lesson("nope")
        raise AssertionError("Expected KeyError for unknown lesson.")
    except KeyError:
        pass


def test_load_catalog_from_dir(tmp_path: Path) -> None:
    root = tmp_path / "content"
    lessons = {"lessons": [{"id": "l1", "title": "L1", "text": "asdf", "target_wpm": 15, "category": "home"}]}
    _write(root, _texts_payload(), lessons)

    catalog = load_catalog_from_dir(root)
    assert list(catalog.timer_paragraphs) == [30, 60]
    assert catalog.practice == {"numbers": ["1 2 3"]}
    assert catalog.lessons[0].id == "l1"
    assert catalog.lessons[0].target_wpm == 15


def test_missing_difficulty_raises(tmp_path: Path) -> None:
    root = tmp_path / "content-missing"
    texts = _texts_payload()
    sentences = dict(texts["sentences"])  # type: ignore[arg-type]
    sentences.pop("expert")
    texts["sentences"] = sentences
    _write(root, texts, {"lessons": []})

    try:
        load_catalog_from_dir(root)
        raise AssertionError("Expected ValueError for missing difficulty.")
    except ValueError as exc:
        assert "expert" in str(exc)


def test_empty_lesson_text_raises(tmp_path: Path) -> None:
    root = tmp_path / "content-empty-lesson"
    lessons = {"lessons": [{"id": "l1", "title": "L1", "text": "  "}]}
    _write(root, _texts_payload(), lessons)

    try:
        load_catalog_from_dir(root)
        raise AssertionError("Expected ValueError for empty lesson text.")
    except ValueError as exc:
        assert "has no text" in str(exc)


def test_duplicate_lesson_id_raises(tmp_path: Path) -> None:
    root = tmp_path / "content-dup"
    lesson = {"id": "same", "title": "A", "text": "asdf"}
    _write(root, _texts_payload(), {"lessons": [lesson, dict(lesson, title="B")]})

    try:
        load_catalog_from_dir(root)
        raise AssertionError("Expected ValueError for duplicate lesson ids.")
    except ValueError as exc:
        assert "Duplicate lesson id" in str(exc)


def test_missing_daily_challenge_raises(tmp_path: Path) -> None:
    root = tmp_path / "content-no-daily"
    texts = _texts_payload()
    texts["daily_challenge"] = ""
    _write(root, texts, {"lessons": []})

    try:
        load_catalog_from_dir(root)
        raise AssertionError("Expected ValueError for missing daily text.")
    except ValueError as exc:
        assert "Daily challenge" in str(exc)
