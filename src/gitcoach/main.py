"""CLI entrypoint for the git practice app."""

from __future__ import annotations

import argparse
from collections.abc import Callable

from . import __version__
from .config import GitCoachConfig, load_config
from .logging_utils import configure_logging
from .models import (
    ObjectiveResult,
    ObjectiveStatus,
    PracticeSession,
    PracticeSummary,
    ScenarioDefinition,
    SetupStep,
)
from .practice import PracticeView
from .service import EXPORT_FORMATS, PracticeService, ScenarioListing

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
MENU_QUIT_COMMANDS = {"q", ":q", ":quit"}
YES_ANSWERS = {"y", "yes"}
STATUS_LABELS = {
    ObjectiveStatus.NOT_STARTED: "not started",
    ObjectiveStatus.IN_PROGRESS: "in progress",
    ObjectiveStatus.COMPLETED: "done",
    ObjectiveStatus.FAILED: "failed",
}


def _format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    return f"{minutes}m {secs:02d}s"


class ConsoleView(PracticeView):
    """Plain-text rendering of a practice run."""

    def __init__(self, input_fn: InputFn = input, print_fn: PrintFn = print) -> None:
        self.input_fn = input_fn
        self.print_fn = print_fn

    def show_introduction(self, scenario: ScenarioDefinition) -> None:
        self.print_fn(f"\n=== {scenario.name} ===")
        if scenario.description:
            self.print_fn(scenario.description)
        self.print_fn(
            f"Difficulty: {scenario.difficulty} | Category: {scenario.category} | Time: {scenario.estimated_time}"
        )
        self.print_fn(f"Objectives: {len(scenario.objectives)}")
        self.print_fn("\nSetting up practice repository...")

    def show_setup_step(self, step: SetupStep, index: int, total: int) -> None:
        self.print_fn(f"  [{index}/{total}] {step.description}")

    def show_sandbox_ready(self, session: PracticeSession) -> None:
        self.print_fn(f"\nSandbox ready: {session.sandbox_path}")
        self.print_fn("Open another terminal in that directory and work with git there.")

    def show_objective(self, session: PracticeSession) -> None:
        objective = session.current_objective
        if objective is None:
            return
        position = session.current_objective_index + 1
        self.print_fn(f"\nObjective {position}/{session.total_objectives}: {objective.goal}")
        self.print_fn("Waiting for changes in the sandbox (Ctrl+C to stop)...")

    def show_result(self, result: ObjectiveResult) -> None:
        self.print_fn(f"[{STATUS_LABELS[result.status]}] {result.message}")
        if result.hint and result.status is not ObjectiveStatus.COMPLETED:
            self.print_fn(f"Hint: {result.hint}")

    def show_objective_completed(self, session: PracticeSession) -> None:
        done = len(session.completed_objectives)
        self.print_fn(f"Objective complete ({done}/{session.total_objectives}).")

    def confirm_retry(self) -> bool:
        answer = self.input_fn("Retry this objective? [y/N]: ").strip().lower()
        return answer in YES_ANSWERS

    def show_objectives_overview(self, session: PracticeSession) -> None:
        self.print_fn("\nObjectives:")
        for idx, objective in enumerate(session.scenario.objectives, start=1):
            self.print_fn(f"{idx}) {objective.goal}")
            if objective.command:
                self.print_fn(f"   Try: {objective.command}")
            if objective.hint:
                self.print_fn(f"   Hint: {objective.hint}")
        self.print_fn(f"\nWork through them in {session.sandbox_path}.")
        self.print_fn("Run with --interactive to have each objective checked as you go.")

    def show_summary(self, summary: PracticeSummary) -> None:
        self.print_fn("\n=== Practice Summary ===")
        self.print_fn(f"Scenario: {summary.title}")
        self.print_fn(f"Objectives: {summary.objectives_completed}/{summary.total_objectives}")
        self.print_fn(f"Duration: {_format_duration(summary.duration_seconds)}")
        self.print_fn(f"Completed: {'yes' if summary.completed else 'no'}")
        self.print_fn(f"Hints used: {len(summary.hints_used)}")
        self.print_fn(f"Sandbox: {summary.sandbox_path}")

    def show_error(self, message: str) -> None:
        self.print_fn(f"Error: {message}")


def _service(config: GitCoachConfig, view: PracticeView | None = None) -> PracticeService:
    """Create app service for the resolved configuration."""
    return PracticeService(config, view=view)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gitcoach", description="Hands-on git practice in sandbox repositories")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Diagnostic log level (default: WARNING)")
    parser.add_argument("--log-format", default=None, choices=["console", "plain", "json"])
    parser.set_defaults(command="practice", scenario=None, interactive=False, sandbox_path=None, poll_interval=None)
    commands = parser.add_subparsers(dest="command")

    practice = commands.add_parser("practice", help="Run a practice scenario")
    practice.add_argument("-s", "--scenario", default=None, help="Scenario to run")
    practice.add_argument("-i", "--interactive", action="store_true", help="Check objectives live as you work")
    practice.add_argument("--sandbox-path", default=None, help="Custom sandbox location")
    practice.add_argument("--poll-interval", type=float, default=None, help="Seconds between checks")

    commands.add_parser("scenarios", help="List available scenarios")

    progress = commands.add_parser("progress", help="Show practice progress")
    progress.add_argument("-p", "--practice", action="store_true", help="Show per-scenario statistics")
    progress.add_argument("--streaks", action="store_true", help="Show streak details")
    progress.add_argument("--export", choices=list(EXPORT_FORMATS), default=None, help="Export progress")
    progress.add_argument("-o", "--output", default=None, help="Export file path")

    reset = commands.add_parser("reset", help="Reset practice progress")
    reset.add_argument("--scenario", default=None, help="Reset only this scenario")
    reset.add_argument("--force", action="store_true", help="Skip confirmation")
    reset.add_argument("--backup", action="store_true", help="Copy the progress file first")
    return parser


def run(argv: list[str] | None = None, input_fn: InputFn = input, print_fn: PrintFn = print) -> int:
    """Run the CLI application."""
    args = _build_parser().parse_args(argv)
    config = load_config(poll_interval=args.poll_interval, log_level=args.log_level, log_format=args.log_format)
    configure_logging(config.log_level, config.log_format)

    try:
        if args.command == "scenarios":
            return _scenarios_flow(config, print_fn)
        if args.command == "progress":
            return _progress_flow(config, args, print_fn)
        if args.command == "reset":
            return _reset_flow(config, args, input_fn, print_fn)
        return _practice_flow(config, args, input_fn, print_fn)
    except (KeyboardInterrupt, EOFError):
        print_fn("\nInterrupted.")
        return 130


def _practice_flow(config: GitCoachConfig, args: argparse.Namespace, input_fn: InputFn, print_fn: PrintFn) -> int:
    """Run one scenario, prompting for it when none was given."""
    service = _service(config, ConsoleView(input_fn, print_fn))
    print_fn("=== Git Practice ===")
    scenario_name = args.scenario or _select_scenario(service, input_fn, print_fn)
    if scenario_name is None:
        return 0
    summary = service.run_scenario(scenario_name, args.interactive, args.sandbox_path)
    return 0 if summary is not None else 1


def _print_scenario_table(scenarios: list[ScenarioListing], print_fn: PrintFn) -> None:
    name_width = max(len("Scenario"), max(len(item.name) for item in scenarios))
    difficulty_width = max(len("Difficulty"), max(len(item.difficulty) for item in scenarios))
    time_width = max(len("Time"), max(len(item.estimated_time) for item in scenarios))
    header = f"{'#':>2} {'Scenario':<{name_width}} {'Difficulty':<{difficulty_width}} {'Time':<{time_width}} Description"
    print_fn(header)
    print_fn("-" * len(header))
    for idx, item in enumerate(scenarios, start=1):
        print_fn(
            f"{idx:>2} "
            f"{item.name:<{name_width}} "
            f"{item.difficulty:<{difficulty_width}} "
            f"{item.estimated_time:<{time_width}} "
            f"{item.description}"
        )


def _select_scenario(service: PracticeService, input_fn: InputFn, print_fn: PrintFn) -> str | None:
    """Prompt for a scenario by number or name; None when the learner quits."""
    scenarios = service.list_scenarios()
    if not scenarios:
        print_fn("No practice scenarios available.")
        return None

    print_fn("\nAvailable scenarios:")
    _print_scenario_table(scenarios, print_fn)
    print_fn("q) Quit")
    names = [item.name for item in scenarios]
    while True:
        choice = input_fn("Select a scenario: ").strip()
        if choice.lower() in MENU_QUIT_COMMANDS:
            return None
        if choice in names:
            return choice
        if choice.isdigit():
            index = int(choice) - 1
            if 0 <= index < len(scenarios):
                return scenarios[index].name
        print_fn("Invalid scenario selection.")


def _scenarios_flow(config: GitCoachConfig, print_fn: PrintFn) -> int:
    scenarios = _service(config).list_scenarios()
    print_fn("=== Practice Scenarios ===")
    if not scenarios:
        print_fn("No practice scenarios available.")
        return 0
    _print_scenario_table(scenarios, print_fn)
    return 0


def _progress_flow(config: GitCoachConfig, args: argparse.Namespace, print_fn: PrintFn) -> int:
    """Print the progress report and optionally export it."""
    service = _service(config)
    data = service.progress
    print_fn("=== Progress Report ===")
    attempted = len(data.practice)
    print_fn(
        f"Practice sessions completed: {data.stats.practice_sessions_completed} "
        f"({attempted} scenario{'s' if attempted != 1 else ''} attempted)"
    )
    print_fn(f"Current streak: {data.streaks.current_streak} days (best: {data.streaks.longest_streak})")
    print_fn(f"Total sessions: {data.stats.total_sessions}")

    if args.streaks:
        print_fn("\n=== Streaks ===")
        start = data.streaks.streak_start_date.isoformat() if data.streaks.streak_start_date else "-"
        last = data.streaks.last_activity_date.isoformat() if data.streaks.last_activity_date else "-"
        print_fn(f"Streak started: {start}")
        print_fn(f"Last activity: {last}")
        print_fn(f"Active days: {len(data.streaks.activity_dates)}")

    if args.practice:
        _practice_table(service, print_fn)

    if args.export:
        target = args.output or service.default_export_path(args.export)
        try:
            written = service.export_progress(target, args.export)
        except (OSError, ValueError) as exc:
            print_fn(f"Export failed: {exc}")
            return 1
        print_fn(f"Exported progress to: {written}")
    return 0


def _practice_table(service: PracticeService, print_fn: PrintFn) -> None:
    print_fn("\n=== Practice Statistics ===")
    rows = service.practice_rows()
    if not rows:
        print_fn("No practice sessions yet.")
        return
    name_width = max(len("Scenario"), max(len(row.scenario_name) for row in rows))
    header = f"{'Scenario':<{name_width}} {'Attempts':>8} {'Best':>4} {'Best time':>11} Completed"
    print_fn(header)
    print_fn("-" * len(header))
    for row in rows:
        print_fn(
            f"{row.scenario_name:<{name_width}} "
            f"{row.attempts:>8} "
            f"{row.best_score:>4} "
            f"{_format_duration(row.best_time_seconds):>11} "
            f"{'yes' if row.completed else 'no'}"
        )


def _reset_flow(config: GitCoachConfig, args: argparse.Namespace, input_fn: InputFn, print_fn: PrintFn) -> int:
    """Reset all progress or one scenario, with explicit confirmation safeguard."""
    service = _service(config)
    if args.scenario and service.progress.practice.get(args.scenario) is None:
        print_fn(f"No progress recorded for scenario '{args.scenario}'.")
        return 1

    if not args.force:
        scope = f"scenario '{args.scenario}'" if args.scenario else "ALL practice progress, streaks, and stats"
        print_fn(f"WARNING: This permanently deletes {scope}.")
        confirm = input_fn("Type YES to confirm reset: ").strip()
        if confirm != "YES":
            print_fn("Reset cancelled.")
            return 0

    summary = service.reset_progress(args.scenario, backup=args.backup)
    if summary.backup_path is not None:
        print_fn(f"Backup written to: {summary.backup_path}")
    if summary.scope == "all":
        print_fn("All progress reset.")
    else:
        print_fn(f"Progress for '{summary.scope}' reset.")
    return 0


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
