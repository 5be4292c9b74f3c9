"""Core domain models for sandboxed git practice scenarios."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

FILE_CONTENT_VALIDATION = "file_content"


@dataclass(frozen=True)
class SetupStep:
    """One shell command run while provisioning the sandbox."""

    command: str
    description: str


@dataclass(frozen=True)
class Objective:
    """One ordered task the learner must satisfy inside the sandbox."""

    id: str
    goal: str
    hint: str = ""
    command: str | None = None
    expected_result: str | None = None
    validation_type: str | None = None
    target_file: str | None = None
    expected_content_contains: tuple[str, ...] = ()
    branch: str | None = None
    target_branch: str | None = None

    @property
    def checks_file_content(self) -> bool:
        return (self.validation_type or "").strip().lower() == FILE_CONTENT_VALIDATION


@dataclass(frozen=True)
class SuccessCriterion:
    """Declarative success description; advisory only."""

    type: str
    description: str
    file: str | None = None
    content: tuple[str, ...] = ()


@dataclass(frozen=True)
class EvaluationHint:
    """Condition/message pair shipped with a scenario."""

    condition: str
    message: str


@dataclass(frozen=True)
class ScenarioDefinition:
    """Immutable practice scenario as loaded from bundled content."""

    name: str
    description: str
    difficulty: str
    category: str
    estimated_time: str
    setup: tuple[SetupStep, ...]
    objectives: tuple[Objective, ...]
    success_criteria: tuple[SuccessCriterion, ...] = ()
    evaluation: tuple[EvaluationHint, ...] = ()


class ObjectiveStatus(Enum):
    """Evaluation state of the active objective."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ObjectiveResult:
    """Outcome of one evaluation tick."""

    status: ObjectiveStatus
    message: str
    hint: str | None = None
    should_advance: bool = False

    @property
    def advances(self) -> bool:
        return self.status is ObjectiveStatus.COMPLETED and self.should_advance


@dataclass
class PracticeSession:
    """Mutable progress of one learner through one scenario run.

    Only `advance()` moves the session forward, which keeps
    `is_completed == (current_objective_index >= len(objectives))` and
    `len(completed_objectives) == current_objective_index` true at all times.
    """

    scenario_name: str
    sandbox_path: str
    scenario: ScenarioDefinition
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    current_objective_index: int = 0
    completed_objectives: list[str] = field(default_factory=list)
    is_completed: bool = False

    def __post_init__(self) -> None:
        self.is_completed = self.current_objective_index >= self.total_objectives

    @property
    def total_objectives(self) -> int:
        return len(self.scenario.objectives)

    @property
    def current_objective(self) -> Objective | None:
        if self.current_objective_index >= self.total_objectives:
            return None
        return self.scenario.objectives[self.current_objective_index]

    def advance(self) -> Objective:
        """Mark the active objective done and move to the next one."""
        objective = self.current_objective
        if objective is None:
            raise RuntimeError(f"Session for '{self.scenario_name}' has no remaining objectives.")
        self.completed_objectives.append(objective.id)
        self.current_objective_index += 1
        self.is_completed = self.current_objective_index >= self.total_objectives
        return objective

    def elapsed_seconds(self, now: datetime | None = None) -> float:
        current = now or datetime.now(UTC)
        return max(0.0, (current - self.start_time).total_seconds())


@dataclass(frozen=True)
class PracticeSummary:
    """End-of-run snapshot handed to the presentation layer."""

    scenario_name: str
    title: str
    sandbox_path: str
    objectives_completed: int
    total_objectives: int
    completed: bool
    duration_seconds: float
    hints_used: tuple[str, ...]
