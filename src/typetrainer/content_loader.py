"""Load prompt texts and lessons from bundled JSON resources."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any

from .models import Lesson, TextCatalog

CONTENT_PACKAGE = "typetrainer.content"
TEXTS_FILE = "texts.json"
LESSONS_FILE = "lessons.json"
DIFFICULTIES = ("easy", "medium", "hard", "expert")


def _lesson_from_dict(raw: dict[str, Any]) -> Lesson:
    """Build a lesson from raw JSON content."""
    text = str(raw.get("text", ""))
    if not text.strip():
        raise ValueError(f"Lesson '{raw.get('id', '<unknown>')}' has no text.")
    return Lesson(
        id=str(raw["id"]),
        title=str(raw["title"]),
        text=text,
        target_wpm=int(raw.get("target_wpm", 0)),
        category=str(raw.get("category", "")),
    )


def _text_list(raw: object, label: str) -> list[str]:
    if not isinstance(raw, list):
        raise ValueError(f"'{label}' must be a list of texts.")
    texts = [str(item) for item in raw if str(item).strip()]
    if not texts:
        raise ValueError(f"'{label}' has no usable texts.")
    return texts


def _catalog_from_dicts(texts: dict[str, Any], lessons: dict[str, Any]) -> TextCatalog:
    """Build and validate a catalog from the two raw documents."""
    raw_sentences = texts.get("sentences", {})
    missing = [name for name in DIFFICULTIES if name not in raw_sentences]
    if missing:
        raise ValueError(f"Missing sentence difficulties: {', '.join(missing)}")
    sentences = {name: _text_list(raw_sentences[name], f"sentences.{name}") for name in DIFFICULTIES}

    timer_paragraphs: dict[int, str] = {}
    for key, value in texts.get("timer_paragraphs", {}).items():
        if not str(value).strip():
            raise ValueError(f"Timer paragraph for {key}s is empty.")
        timer_paragraphs[int(key)] = str(value)
    if not timer_paragraphs:
        raise ValueError("At least one timer paragraph is required.")

    daily_challenge = str(texts.get("daily_challenge", ""))
    if not daily_challenge.strip():
        raise ValueError("Daily challenge text is required.")

    practice = {str(name): _text_list(items, f"practice.{name}") for name, items in texts.get("practice", {}).items()}

    lesson_rows = [_lesson_from_dict(item) for item in lessons.get("lessons", [])]
    _validate_unique_lesson_ids(lesson_rows)

    return TextCatalog(
        sentences=sentences,
        timer_paragraphs=dict(sorted(timer_paragraphs.items())),
        daily_challenge=daily_challenge,
        practice=practice,
        lessons=lesson_rows,
    )


def load_catalog() -> TextCatalog:
    """Load bundled content."""
    root = resources.files(CONTENT_PACKAGE)
    texts = json.loads(root.joinpath(TEXTS_FILE).read_text(encoding="utf-8-sig"))
    lessons = json.loads(root.joinpath(LESSONS_FILE).read_text(encoding="utf-8-sig"))
    return _catalog_from_dicts(texts, lessons)


def load_catalog_from_dir(path: Path) -> TextCatalog:
    """Load content from a directory for tests/tools."""
    texts = json.loads((path / TEXTS_FILE).read_text(encoding="utf-8-sig"))
    lessons = json.loads((path / LESSONS_FILE).read_text(encoding="utf-8-sig"))
    return _catalog_from_dicts(texts, lessons)


def _validate_unique_lesson_ids(lessons: list[Lesson]) -> None:
    """Validate that lesson IDs are unique."""
    seen: set[str] = set()
    for lesson in lessons:
        if lesson.id in seen:
            raise ValueError(f"Duplicate lesson id: {lesson.id}")
        seen.add(lesson.id)
