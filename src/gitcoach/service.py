"""Application service for scenarios, practice runs, and progress reporting."""

from __future__ import annotations

import csv
import io
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from . import __version__
from .config import GitCoachConfig
from .content_loader import list_scenario_names, load_scenario
from .evaluator import ObjectiveEvaluator
from .models import PracticeSummary, ScenarioDefinition
from .practice import PracticeRunner, PracticeView
from .progress import ProgressData, ProgressStore, encode_progress
from .recorder import ProgressRecorder
from .repository import RepositoryInspector

ExportFormat = Literal["json", "csv"]
EXPORT_FORMATS: tuple[ExportFormat, ...] = ("json", "csv")


@dataclass(frozen=True)
class ScenarioListing:
    """One bundled scenario for menu display."""

    name: str
    title: str
    description: str
    difficulty: str
    estimated_time: str
    objective_count: int


@dataclass(frozen=True)
class PracticeRow:
    """Per-scenario progress summary for display."""

    scenario_name: str
    attempts: int
    best_score: int
    best_time_seconds: float | None
    completed: bool
    last_attempt: datetime | None


@dataclass(frozen=True)
class ResetSummary:
    """Outcome of a progress reset."""

    scope: str
    removed: bool
    backup_path: Path | None


class PracticeService:
    """Coordinates scenario content, the practice runner, and the progress store."""

    def __init__(
        self,
        config: GitCoachConfig,
        view: PracticeView | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        scenario_dir: Path | str | None = None,
    ) -> None:
        self.config = config
        self._scenario_dir = Path(scenario_dir) if scenario_dir is not None else None
        self.store = ProgressStore(config.progress_path)
        self.recorder = ProgressRecorder(self.store, scoring=config.scoring)
        self.inspector = RepositoryInspector(default_branch=config.default_branch)
        self.evaluator = ObjectiveEvaluator(self.inspector)
        self.runner = PracticeRunner(
            self.load_scenario,
            self.inspector,
            self.evaluator,
            self.recorder,
            config,
            view=view,
            sleep_fn=sleep_fn,
        )

    @property
    def progress(self) -> ProgressData:
        return self.store.data

    def load_scenario(self, name: str) -> ScenarioDefinition | None:
        return load_scenario(name, self._scenario_dir)

    def list_scenarios(self) -> list[ScenarioListing]:
        """Return loadable scenarios sorted by name; malformed documents are skipped."""
        listings: list[ScenarioListing] = []
        for name in list_scenario_names(self._scenario_dir):
            scenario = self.load_scenario(name)
            if scenario is None:
                continue
            listings.append(
                ScenarioListing(
                    name=name,
                    title=scenario.name,
                    description=scenario.description,
                    difficulty=scenario.difficulty,
                    estimated_time=scenario.estimated_time,
                    objective_count=len(scenario.objectives),
                )
            )
        return listings

    def run_scenario(
        self, name: str, interactive: bool, sandbox_path: Path | str | None = None
    ) -> PracticeSummary | None:
        """Run one scenario end to end; None when it could not be run."""
        return self.runner.run_scenario(name, interactive, sandbox_path)

    def practice_rows(self) -> list[PracticeRow]:
        """Return per-scenario rows, most recently practiced first."""
        rows = [
            PracticeRow(
                scenario_name=progress.scenario_name,
                attempts=len(progress.attempts),
                best_score=progress.best_score,
                best_time_seconds=progress.best_time_seconds,
                completed=progress.completed,
                last_attempt=progress.last_attempt,
            )
            for progress in self.store.data.practice.values()
        ]
        epoch = datetime.min.replace(tzinfo=UTC)
        rows.sort(key=lambda row: (row.last_attempt or epoch, row.scenario_name), reverse=True)
        return rows

    def export_progress(self, export_path: Path | str, export_format: str) -> Path:
        """Write the progress document as JSON or a flat CSV report."""
        fmt = export_format.strip().lower()
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format '{export_format}'. Supported formats: json, csv")

        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if fmt == "json":
            payload = encode_progress(self.store.data)
            payload["exported_at"] = datetime.now(UTC).isoformat()
            payload["app_version"] = __version__
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        else:
            path.write_text(_progress_csv(self.store.data), encoding="utf-8", newline="")
        return path

    def default_export_path(self, export_format: str, now: datetime | None = None) -> Path:
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        return Path.cwd() / f"gitcoach_progress_{stamp}.{export_format.strip().lower()}"

    def reset_progress(self, scenario: str | None = None, backup: bool = False) -> ResetSummary:
        """Clear one scenario's history, or everything when no scenario is given."""
        backup_path = self.store.backup() if backup else None
        if scenario:
            removed = self.store.reset_scenario(scenario)
            return ResetSummary(scope=scenario, removed=removed, backup_path=backup_path)
        self.store.reset_all()
        return ResetSummary(scope="all", removed=True, backup_path=backup_path)


def _progress_csv(data: ProgressData) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Type", "Name", "Value", "Details"])
    writer.writerow(["Stat", "TotalSessions", data.stats.total_sessions, ""])
    writer.writerow(["Stat", "PracticeSessionsCompleted", data.stats.practice_sessions_completed, ""])
    writer.writerow(["Stat", "CurrentStreak", data.streaks.current_streak, ""])
    writer.writerow(["Stat", "LongestStreak", data.streaks.longest_streak, ""])
    for progress in sorted(data.practice.values(), key=lambda item: item.scenario_name):
        writer.writerow(
            [
                "Practice",
                progress.scenario_name,
                progress.best_score,
                f"Completed: {progress.completed}; Attempts: {len(progress.attempts)}",
            ]
        )
    return buffer.getvalue()
