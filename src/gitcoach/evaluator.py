"""Decide whether the active practice objective is satisfied by the sandbox state."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import structlog

from .models import Objective, ObjectiveResult, ObjectiveStatus, PracticeSession
from .repository import RepositoryInspector

logger = structlog.get_logger(__name__)

CheckFn = Callable[[Path, Objective], ObjectiveResult]


def _completed(message: str) -> ObjectiveResult:
    return ObjectiveResult(status=ObjectiveStatus.COMPLETED, message=message, should_advance=True)


def _in_progress(message: str, objective: Objective) -> ObjectiveResult:
    return ObjectiveResult(status=ObjectiveStatus.IN_PROGRESS, message=message, hint=objective.hint or None)


def _failed(message: str, objective: Objective | None = None) -> ObjectiveResult:
    hint = objective.hint if objective is not None and objective.hint else None
    return ObjectiveResult(status=ObjectiveStatus.FAILED, message=message, hint=hint)


class ObjectiveEvaluator:
    """Evaluates objectives strictly in scenario order against a live repository."""

    def __init__(self, inspector: RepositoryInspector, default_branch: str | None = None) -> None:
        self.inspector = inspector
        self.default_branch = default_branch or inspector.default_branch
        self._checks: dict[str, CheckFn] = {
            "merge_conflict": self._check_merge_conflict,
            "shows_conflicts": self._check_shows_conflicts,
            "file_staged": self._check_file_staged,
            "merge_completed": self._check_merge_completed,
            "branch_created": self._check_branch_created,
            "on_branch": self._check_on_branch,
            "branch_merged": self._check_branch_merged,
            "working_tree_clean": self._check_working_tree_clean,
        }

    @property
    def supported_results(self) -> tuple[str, ...]:
        return tuple(sorted(self._checks))

    def evaluate(self, session: PracticeSession) -> ObjectiveResult:
        """Evaluate the session's active objective without changing the session."""
        objective = session.current_objective
        if objective is None:
            return ObjectiveResult(status=ObjectiveStatus.COMPLETED, message="All objectives completed!")
        return self.evaluate_objective(Path(session.sandbox_path), objective)

    def evaluate_and_advance(self, session: PracticeSession) -> ObjectiveResult:
        """Evaluate one tick and move the session to the next objective on success."""
        result = self.evaluate(session)
        if result.advances and not session.is_completed:
            session.advance()
        return result

    def evaluate_objective(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        """Evaluate one objective; unexpected errors become a Failed result."""
        try:
            if objective.checks_file_content:
                return self.evaluate_file_content(sandbox, objective)
            return self._evaluate_repository_state(sandbox, objective)
        except Exception as exc:
            logger.warning("objective_evaluation_failed", objective=objective.id, error=str(exc))
            return _failed(f"Evaluation error: {exc}", objective)

    def evaluate_file_content(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        """Check that the target file contains every required snippet (case-insensitive)."""
        if not objective.target_file:
            return _failed("Target file not specified for file content validation")

        root = sandbox.resolve()
        file_path = (root / objective.target_file).resolve()
        if not file_path.is_relative_to(root):
            return _failed(f"Target file {objective.target_file} is outside the sandbox", objective)
        if not file_path.is_file():
            return _in_progress(f"File {objective.target_file} not found", objective)

        content = file_path.read_text(encoding="utf-8", errors="replace").casefold()
        missing = [snippet for snippet in objective.expected_content_contains if snippet.casefold() not in content]
        if missing:
            return _in_progress(f"File content missing: {', '.join(missing)}", objective)
        return _completed("File content validation passed!")

    def _evaluate_repository_state(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        key = (objective.expected_result or "").strip().lower()
        check = self._checks.get(key)
        if check is None:
            return _in_progress(f"Please run: {objective.command or ''}".rstrip(), objective)
        return check(sandbox, objective)

    def _check_merge_conflict(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        if self.inspector.has_conflicts(sandbox):
            return _completed("Merge conflict detected! Good, now you can practice resolving it.")
        if self.inspector.is_merge_in_progress(sandbox):
            return _in_progress("Merge is in progress but no conflicts detected yet.", objective)
        return _in_progress("No merge conflict detected. Try running the merge command.", objective)

    def _check_shows_conflicts(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        conflicted = self.inspector.conflicted_files(sandbox)
        if conflicted:
            return _completed(f"Conflicted files detected: {', '.join(conflicted)}")
        return _in_progress("No conflicts currently showing. Run git status to check.", objective)

    def _check_file_staged(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        # Resolved and staged, but the merge commit has not been made yet.
        if not self.inspector.conflicted_files(sandbox) and self.inspector.is_merge_in_progress(sandbox):
            return _completed("File staged and conflicts resolved!")
        return _in_progress("File not yet staged or conflicts not resolved.", objective)

    def _check_merge_completed(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        if not self.inspector.is_merge_in_progress(sandbox) and not self.inspector.has_conflicts(sandbox):
            return _completed("Merge completed successfully!")
        return _in_progress("Merge is still in progress. Complete the merge commit.", objective)

    def _check_branch_created(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        if not objective.branch:
            return _failed("Branch not specified for branch validation")
        if objective.branch in self.inspector.list_branches(sandbox):
            return _completed(f"Branch {objective.branch} exists.")
        return _in_progress(f"Branch {objective.branch} does not exist yet.", objective)

    def _check_on_branch(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        if not objective.branch:
            return _failed("Branch not specified for branch validation")
        current = self.inspector.current_branch(sandbox)
        if current == objective.branch:
            return _completed(f"You are on {objective.branch}.")
        return _in_progress(f"Currently on {current or 'a detached HEAD'}, not {objective.branch}.", objective)

    def _check_branch_merged(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        if not objective.branch:
            return _failed("Branch not specified for branch validation")
        target = objective.target_branch or self.default_branch
        if self.inspector.is_branch_merged(sandbox, objective.branch, target):
            return _completed(f"{objective.branch} is merged into {target}.")
        return _in_progress(f"{objective.branch} is not merged into {target} yet.", objective)

    def _check_working_tree_clean(self, sandbox: Path, objective: Objective) -> ObjectiveResult:
        if self.inspector.is_working_tree_clean(sandbox):
            return _completed("Working tree is clean.")
        return _in_progress("There are uncommitted changes in the working tree.", objective)
