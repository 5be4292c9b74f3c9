"""Practice Orchestrator: sandbox lifecycle, scripted setup, and the polling loop."""

from __future__ import annotations

import shutil
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

import structlog

from .config import GitCoachConfig
from .evaluator import ObjectiveEvaluator
from .models import ObjectiveResult, ObjectiveStatus, PracticeSession, PracticeSummary, ScenarioDefinition, SetupStep
from .recorder import ProgressRecorder
from .repository import RepositoryInspector

ScenarioLoader = Callable[[str], ScenarioDefinition | None]
SleepFn = Callable[[float], None]

ERROR_MARKERS = ("error", "fatal")

logger = structlog.get_logger(__name__)


class ScenarioNotFoundError(LookupError):
    """No scenario definition exists under the requested name."""

    def __init__(self, scenario_name: str) -> None:
        super().__init__(f"Scenario '{scenario_name}' not found")
        self.scenario_name = scenario_name


class SetupError(RuntimeError):
    """The sandbox repository could not be provisioned."""


class PracticeView:
    """Presentation hooks used by the runner. The base implementation is silent."""

    def show_introduction(self, scenario: ScenarioDefinition) -> None:
        pass

    def show_setup_step(self, step: SetupStep, index: int, total: int) -> None:
        pass

    def show_sandbox_ready(self, session: PracticeSession) -> None:
        pass

    def show_objective(self, session: PracticeSession) -> None:
        pass

    def show_result(self, result: ObjectiveResult) -> None:
        pass

    def show_objective_completed(self, session: PracticeSession) -> None:
        pass

    def confirm_retry(self) -> bool:
        return False

    def show_objectives_overview(self, session: PracticeSession) -> None:
        pass

    def show_summary(self, summary: PracticeSummary) -> None:
        pass

    def show_error(self, message: str) -> None:
        pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PracticeRunner:
    """Runs one scenario at a time from sandbox creation to recorded attempt."""

    def __init__(
        self,
        load_scenario: ScenarioLoader,
        inspector: RepositoryInspector,
        evaluator: ObjectiveEvaluator,
        recorder: ProgressRecorder,
        config: GitCoachConfig,
        view: PracticeView | None = None,
        sleep_fn: SleepFn = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._load_scenario = load_scenario
        self.inspector = inspector
        self.evaluator = evaluator
        self.recorder = recorder
        self.config = config
        self.view = view or PracticeView()
        self._sleep = sleep_fn
        self._clock = clock

    def sandbox_path_for(self, scenario_name: str) -> Path:
        stamp = self._clock().astimezone().strftime("%Y%m%d_%H%M%S")
        return self.config.sandbox_root / f"{scenario_name}_{stamp}"

    def start_scenario(self, scenario_name: str, sandbox_path: str | Path | None = None) -> PracticeSession:
        """Load the scenario and reserve a clean sandbox location for it."""
        scenario = self._load_scenario(scenario_name)
        if scenario is None:
            raise ScenarioNotFoundError(scenario_name)

        path = Path(sandbox_path) if sandbox_path is not None else self.sandbox_path_for(scenario_name)
        path = path.expanduser().absolute()
        if path.is_dir() and not path.is_symlink():
            logger.info("sandbox_reset", scenario=scenario_name, sandbox=str(path))
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()

        return PracticeSession(
            scenario_name=scenario_name,
            sandbox_path=str(path),
            scenario=scenario,
            start_time=self._clock(),
        )

    def setup_scenario(self, session: PracticeSession) -> bool:
        """Initialize the sandbox repository and replay the scenario's setup steps.

        A step whose command fails is logged and skipped; only an exception
        escaping the setup sequence makes the setup unsuccessful.
        """
        sandbox = Path(session.sandbox_path)
        steps = session.scenario.setup
        try:
            self.inspector.initialize_repository(sandbox)
            if not self.inspector.is_repository(sandbox):
                raise SetupError(f"{sandbox} is not a git repository after initialization")
            self.inspector.run_git(sandbox, ["config", "user.name", self.config.practice_user_name])
            self.inspector.run_git(sandbox, ["config", "user.email", self.config.practice_user_email])
            for index, step in enumerate(steps, start=1):
                self.view.show_setup_step(step, index, len(steps))
                output = self.inspector.run_command(sandbox, step.command)
                if any(marker in output.lower() for marker in ERROR_MARKERS):
                    logger.warning(
                        "setup_step_reported_error",
                        scenario=session.scenario_name,
                        step=step.description,
                        output=output.strip(),
                    )
                else:
                    logger.debug("setup_step_done", scenario=session.scenario_name, step=step.description)
        except Exception as exc:
            logger.error("setup_failed", scenario=session.scenario_name, sandbox=str(sandbox), error=str(exc))
            return False
        return True

    def run_scenario(
        self, scenario_name: str, interactive: bool, sandbox_path: str | Path | None = None
    ) -> PracticeSummary | None:
        """Provision, run, and record one scenario; problems are shown, never raised."""
        try:
            session = self.start_scenario(scenario_name, sandbox_path)
        except ScenarioNotFoundError as exc:
            self.view.show_error(str(exc))
            return None
        except OSError as exc:
            logger.error("sandbox_unavailable", scenario=scenario_name, error=str(exc))
            self.view.show_error(f"Could not prepare the sandbox: {exc}")
            return None

        try:
            self.recorder.start_attempt(scenario_name)
            self.view.show_introduction(session.scenario)

            if not self.setup_scenario(session):
                self.view.show_error("Failed to set up the practice scenario.")
                self.recorder.complete_attempt(scenario_name, 0, session.total_objectives, False, [])
                return None
            self.view.show_sandbox_ready(session)

            if interactive:
                summary = self.run_interactive_session(session)
            else:
                summary = self.run_non_interactive_session(session)
            self.view.show_summary(summary)
            return summary
        except Exception as exc:
            logger.exception("practice_run_failed", scenario=scenario_name)
            self.view.show_error(f"Unexpected error: {exc}")
            return None

    def run_interactive_session(self, session: PracticeSession) -> PracticeSummary:
        """Poll the sandbox until every objective is met or the learner gives up."""
        hints_used: list[str] = []
        while not session.is_completed:
            self.view.show_objective(session)
            if not self._wait_for_progress(session, hints_used):
                break

        self.recorder.complete_attempt(
            session.scenario_name,
            len(session.completed_objectives),
            session.total_objectives,
            session.is_completed,
            hints_used,
        )
        return self.build_summary(session, hints_used)

    def run_non_interactive_session(self, session: PracticeSession) -> PracticeSummary:
        """List the objectives for unattended practice; nothing is polled."""
        self.view.show_objectives_overview(session)
        return self.build_summary(session, [])

    def _wait_for_progress(self, session: PracticeSession, hints_used: list[str]) -> bool:
        """Tick until the active objective advances (True) or a retry is declined (False)."""
        last: ObjectiveResult | None = None
        while True:
            result = self.evaluator.evaluate_and_advance(session)
            if last is None or result.status != last.status or result.message != last.message:
                self.view.show_result(result)
                if result.hint and result.status is not ObjectiveStatus.COMPLETED and result.hint not in hints_used:
                    hints_used.append(result.hint)
            last = result

            if result.advances:
                self.view.show_objective_completed(session)
                return True
            if session.is_completed:
                return True
            if result.status is ObjectiveStatus.FAILED and not self.view.confirm_retry():
                return False
            self._sleep(self.config.poll_interval)

    def build_summary(self, session: PracticeSession, hints_used: list[str]) -> PracticeSummary:
        return PracticeSummary(
            scenario_name=session.scenario_name,
            title=session.scenario.name,
            sandbox_path=session.sandbox_path,
            objectives_completed=len(session.completed_objectives),
            total_objectives=session.total_objectives,
            completed=session.is_completed,
            duration_seconds=session.elapsed_seconds(self._clock()),
            hints_used=tuple(hints_used),
        )
