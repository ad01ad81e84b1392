from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from typetrainer.ledger import ProgressionLedger  # noqa: E402
from typetrainer.models import TestRecord  # noqa: E402
from typetrainer.progress import ProgressStore  # noqa: E402


def _tmp_path_fixture() -> Iterator[Path]:
    """Per-test scratch directory under ``.tmp_pytest/`` in the project root.

    Overrides pytest's builtin ``tmp_path`` so exported files and database
    files stay inside the working tree.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


@dataclass
class FakeCalendar:
    """Controllable `today` source for streak tests."""

    day: date = date(2026, 3, 10)

    def today(self) -> date:
        return self.day

    def advance(self, days: int = 1) -> None:
        self.day = self.day + timedelta(days=days)


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def store() -> Iterator[ProgressStore]:
    progress = ProgressStore(":memory:")
    try:
        yield progress
    finally:
        progress.close()


@pytest.fixture
def ledger(store: ProgressStore, calendar: FakeCalendar) -> ProgressionLedger:
    return ProgressionLedger(store, today=calendar.today)


def make_record(**overrides: object) -> TestRecord:
    """Accepted normal-mode record with modest numbers unless overridden."""
    values: dict[str, object] = {
        "mode": "normal",
        "wpm": 40,
        "accuracy": 90,
        "errors": 2,
        "characters": 120,
        "duration": 36.0,
        "timestamp": "2026-03-10T12:00:00+00:00",
    }
    values.update(overrides)
    return TestRecord(**values)  # type: ignore[arg-type]
