from datetime import UTC, datetime, timedelta

import pytest

from gitcoach.models import (
    Objective,
    ObjectiveResult,
    ObjectiveStatus,
    PracticeSession,
    ScenarioDefinition,
)


def _scenario(*objective_ids: str) -> ScenarioDefinition:
    return ScenarioDefinition(
        name="Demo",
        description="D",
        difficulty="beginner",
        category="basics",
        estimated_time="1 minute",
        setup=(),
        objectives=tuple(Objective(id=objective_id, goal=f"goal {objective_id}") for objective_id in objective_ids),
    )


def test_session_advances_in_order_until_completed() -> None:
    session = PracticeSession("demo", "/tmp/demo", _scenario("a", "b"))
    assert session.is_completed is False
    assert session.current_objective is not None
    assert session.current_objective.id == "a"

    session.advance()
    assert session.completed_objectives == ["a"]
    assert session.current_objective_index == 1
    assert session.is_completed is False

    session.advance()
    assert session.completed_objectives == ["a", "b"]
    assert session.is_completed is True
    assert session.current_objective is None


def test_session_cannot_advance_past_last_objective() -> None:
    session = PracticeSession("demo", "/tmp/demo", _scenario("only"))
    session.advance()
    with pytest.raises(RuntimeError):
        session.advance()
    assert session.completed_objectives == ["only"]
    assert session.current_objective_index == 1


def test_session_without_objectives_starts_completed() -> None:
    session = PracticeSession("empty", "/tmp/empty", _scenario())
    assert session.is_completed is True
    assert session.current_objective is None
    assert session.total_objectives == 0


def test_elapsed_seconds_never_negative() -> None:
    start = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    session = PracticeSession("demo", "/tmp/demo", _scenario("a"), start_time=start)
    assert session.elapsed_seconds(start + timedelta(seconds=90)) == 90.0
    assert session.elapsed_seconds(start - timedelta(seconds=5)) == 0.0


def test_result_advances_only_when_completed_and_flagged() -> None:
    assert ObjectiveResult(ObjectiveStatus.COMPLETED, "ok", should_advance=True).advances is True
    assert ObjectiveResult(ObjectiveStatus.COMPLETED, "ok").advances is False
    assert ObjectiveResult(ObjectiveStatus.IN_PROGRESS, "wait", should_advance=True).advances is False


def test_file_content_detection_ignores_case() -> None:
    assert Objective(id="x", goal="g", validation_type="File_Content").checks_file_content is True
    assert Objective(id="x", goal="g", validation_type=None).checks_file_content is False
