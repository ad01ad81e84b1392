"""CLI entrypoint for the typing trainer."""

from __future__ import annotations

import argparse
import logging
import time
from collections.abc import Callable
from pathlib import Path

from .service import TrainerService
from .session import SessionOutcome, TestSession

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
ClockFn = Callable[[], float]
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}
DEFAULT_DB_PATH = Path(".typetrainer") / "progress.db"


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service(db_path: Path | str = DEFAULT_DB_PATH) -> TrainerService:
    """Create app service with local database path."""
    if isinstance(db_path, str) and db_path != ":memory:":
        db_path = Path(db_path)
    return TrainerService(db_path=db_path)


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="typetrainer", description="Typing speed trainer with XP progression")
    parser.add_argument("command", nargs="?", default="play", choices=["play"])
    parser.add_argument("--db-path", default=str(DEFAULT_DB_PATH), help="SQLite database file")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")
    return play_shell(db_path=args.db_path)


def play_shell(
    input_fn: InputFn = input,
    print_fn: PrintFn = print,
    *,
    db_path: Path | str = DEFAULT_DB_PATH,
    clock: ClockFn = time.monotonic,
) -> int:
    """Run persistent menu-driven shell."""
    service = _service(db_path)
    try:
        try:
            while True:
                summary = service.summary()
                print_fn("\n=== Typing Trainer ===")
                print_fn(
                    f"Level {summary.level} ({summary.rank}) - "
                    f"{summary.xp}/{summary.xp_for_next_level} XP - "
                    f"streak {summary.streak_days} day(s)"
                )
                print_fn("1) Typing test")
                print_fn("2) Timed test")
                print_fn("3) Daily challenge")
                print_fn("4) Lessons")
                print_fn("5) Stats")
                print_fn("6) Achievements")
                print_fn("7) Admin")
                print_fn("q) Quit")
                choice = input_fn("Choose: ").strip().lower()

                if choice == "1":
                    _typing_test_flow(service, input_fn, print_fn, clock)
                elif choice == "2":
                    _timer_flow(service, input_fn, print_fn, clock)
                elif choice == "3":
                    _challenge_flow(service, input_fn, print_fn, clock)
                elif choice == "4":
                    _lessons_flow(service, input_fn, print_fn, clock)
                elif choice == "5":
                    _stats_flow(service, print_fn)
                elif choice == "6":
                    _achievements_flow(service, print_fn)
                elif choice == "7":
                    _admin_flow(service, input_fn, print_fn)
                elif choice in MENU_QUIT_COMMANDS:
                    return 0
                else:
                    print_fn("Invalid choice.")
        except QuitApp:
            return 0
    finally:
        service.close()


def _run_round(
    session: TestSession,
    input_fn: InputFn,
    print_fn: PrintFn,
    clock: ClockFn,
) -> SessionOutcome | None:
    """Show the prompt, read one line, and finish the session with its timing."""
    print_fn(f"\nType this:\n{session.prompt}\n")
    started = clock()
    typed = input_fn("> ")
    elapsed = max(0.0, clock() - started)
    if typed.strip().lower() in {":b", ":q"}:
        print_fn("Test abandoned.")
        return None

    session.on_input(typed, now_ms=elapsed * 1000)
    time_up = False
    if session.time_limit is not None and elapsed >= session.time_limit:
        time_up = True
        elapsed = float(session.time_limit)
    outcome = session.complete_from_text(elapsed, time_up=time_up)
    _print_outcome(outcome, print_fn)
    return outcome


def _print_outcome(outcome: SessionOutcome, print_fn: PrintFn) -> None:
    if not outcome.verdict.valid:
        print_fn(f"Result rejected: {outcome.verdict.reason}.")
        return
    record = outcome.record
    if record is None:
        return
    print_fn(f"WPM: {record.wpm}  Accuracy: {record.accuracy}%  Errors: {record.errors}  Time: {record.duration:.1f}s")
    if outcome.passed is not None:
        print_fn("Challenge passed!" if outcome.passed else "Challenge failed.")
    print_fn(f"+{outcome.xp_earned} XP")
    if outcome.award is not None and outcome.award.leveled_up:
        print_fn(f"Level up! You are now level {outcome.award.new_level}.")
    for achievement_id in outcome.new_achievements:
        print_fn(f"Achievement unlocked: {achievement_id}")


def _typing_test_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn, clock: ClockFn) -> None:
    """Run one sentence test at a chosen difficulty, or a practice text."""
    difficulties = list(service.catalog.sentences)
    categories = list(service.catalog.practice)
    print_fn("\n=== Typing Test ===")
    for idx, name in enumerate(difficulties, start=1):
        marker = " (default)" if name == service.settings.difficulty else ""
        print_fn(f"{idx}) {name}{marker}")
    for idx, name in enumerate(categories, start=len(difficulties) + 1):
        print_fn(f"{idx}) practice: {name}")
    print_fn("b) Back")
    choice = input_fn("Difficulty [enter for default]: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if not choice:
        session = service.start_normal_test()
    elif not choice.isdigit() or not (0 < int(choice) <= len(difficulties) + len(categories)):
        print_fn("Invalid choice.")
        return
    elif int(choice) <= len(difficulties):
        session = service.start_normal_test(difficulties[int(choice) - 1])
    else:
        session = service.start_practice_test(categories[int(choice) - len(difficulties) - 1])
    _run_round(session, input_fn, print_fn, clock)


def _timer_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn, clock: ClockFn) -> None:
    durations = list(service.catalog.timer_paragraphs)
    print_fn("\n=== Timed Test ===")
    print_fn(f"Durations: {', '.join(str(item) for item in durations)} seconds")
    choice = input_fn(f"Duration [{service.settings.default_duration}]: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    duration: int | None = None
    if choice:
        if not choice.isdigit() or int(choice) not in durations:
            print_fn("Invalid duration.")
            return
        duration = int(choice)
    _run_round(service.start_timer_test(duration), input_fn, print_fn, clock)


def _challenge_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn, clock: ClockFn) -> None:
    session = service.start_daily_challenge()
    print_fn("\n=== Daily Challenge ===")
    if service.ledger.state.daily_challenge_completed:
        print_fn("Already completed; the bonus has been claimed.")
    print_fn(f"Target: {session.target_wpm} WPM at {session.target_accuracy}% accuracy")
    _run_round(session, input_fn, print_fn, clock)


def _lessons_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn, clock: ClockFn) -> None:
    """List lessons and run the chosen one."""
    lessons = service.catalog.lessons
    completed = set(service.ledger.state.completed_lessons)
    print_fn("\n=== Lessons ===")
    id_width = max(len("Lesson"), max(len(lesson.id) for lesson in lessons))
    header = f"{'#':>2} {'Lesson':<{id_width}} {'Target':>6} Done Title"
    print_fn(header)
    print_fn("-" * len(header))
    for idx, lesson in enumerate(lessons, start=1):
        done = "yes" if lesson.id in completed else "-"
        print_fn(f"{idx:>2} {lesson.id:<{id_width}} {lesson.target_wpm:>6} {done:<4} {lesson.title}")
    print_fn("b) Back")
    print_fn("q) Quit")
    choice = input_fn("Choose lesson: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    if not choice.isdigit() or not (0 < int(choice) <= len(lessons)):
        print_fn("Invalid choice.")
        return

    lesson = lessons[int(choice) - 1]
    outcome = _run_round(service.start_lesson(lesson.id), input_fn, print_fn, clock)
    if outcome is None:
        return
    if service.finish_lesson(lesson.id, outcome):
        print_fn(f"Lesson '{lesson.title}' completed.")
    elif lesson.id not in completed:
        print_fn(f"Reach {lesson.target_wpm} WPM to complete this lesson.")


def _stats_flow(service: TrainerService, print_fn: PrintFn) -> None:
    summary = service.summary()
    print_fn("\n=== Stats ===")
    print_fn(f"- Level: {summary.level} ({summary.rank})")
    print_fn(f"- XP: {summary.xp}/{summary.xp_for_next_level}")
    print_fn(f"- Streak: {summary.streak_days} day(s)")
    print_fn(f"- Tests: {summary.tests}")
    print_fn(f"- Best WPM: {summary.best_wpm:g}")
    print_fn(f"- Best accuracy: {summary.best_accuracy:g}%")
    print_fn(f"- Lessons completed: {summary.completed_lessons}")
    print_fn(f"- Achievements: {summary.achievements_unlocked}/{summary.achievements_total}")
    print_fn(f"- Unlocked: {', '.join(summary.unlocked_themes)}")


def _achievements_flow(service: TrainerService, print_fn: PrintFn) -> None:
    print_fn("\n=== Achievements ===")
    for status in service.achievement_statuses():
        mark = "[x]" if status.unlocked else "[ ]"
        print_fn(f"{mark} {status.name} - {status.description} (+{status.xp} XP)")


def _admin_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Settings and data management."""
    while True:
        print_fn("\n=== Admin ===")
        state = "on" if service.settings.anti_cheat_enabled else "off"
        print_fn(f"1) Toggle integrity checks (currently {state})")
        print_fn(f"2) Default difficulty (currently {service.settings.difficulty})")
        print_fn("3) Export data")
        print_fn("4) Import data")
        print_fn("5) Reset progress")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = input_fn("Choose: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice == "1":
            service.update_settings(anti_cheat_enabled=not service.settings.anti_cheat_enabled)
            print_fn("Integrity checks " + ("enabled." if service.settings.anti_cheat_enabled else "disabled."))
        elif choice == "2":
            difficulty = input_fn("Difficulty (easy/medium/hard/expert): ").strip().lower()
            try:
                service.update_settings(difficulty=difficulty)
            except ValueError as exc:
                print_fn(str(exc))
                continue
            print_fn(f"Default difficulty set to {difficulty}.")
        elif choice == "3":
            _export_flow(service, input_fn, print_fn)
        elif choice == "4":
            _import_flow(service, input_fn, print_fn)
        elif choice == "5":
            print_fn("WARNING: This permanently deletes level, XP, achievements and test history.")
            if input_fn("Type YES to confirm reset: ").strip() != "YES":
                print_fn("Reset cancelled.")
                continue
            service.reset_progress()
            print_fn("Progress reset.")
        else:
            print_fn("Invalid choice.")


def _export_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    fmt = input_fn("Format (json/csv) [json]: ").strip().lower() or "json"
    if fmt not in {"json", "csv"}:
        print_fn("Invalid format.")
        return
    path = input_fn(f"Export path [typing-data.{fmt}]: ").strip() or f"typing-data.{fmt}"
    summary = service.export_data(path, fmt)
    print_fn(f"Exported {summary.history_rows} test(s) to {path}.")


def _import_flow(service: TrainerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    path = input_fn("Import path: ").strip()
    if not path:
        print_fn("Import path is required.")
        return
    try:
        summary = service.import_data(path)
    except (OSError, ValueError) as exc:
        print_fn(f"Import failed: {exc}")
        return
    print_fn(f"Imported level {summary.level} with {summary.history_rows} test(s).")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
