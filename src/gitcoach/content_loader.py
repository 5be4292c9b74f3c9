"""Load declarative practice scenarios from bundled JSON resources."""

from __future__ import annotations

import json
import re
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import structlog

from .models import EvaluationHint, Objective, ScenarioDefinition, SetupStep, SuccessCriterion

CONTENT_PACKAGE = "gitcoach.content.scenarios"
SCENARIO_SUFFIX = ".json"
_SCENARIO_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

logger = structlog.get_logger(__name__)


def _text(raw: dict[str, Any], key: str, default: str = "") -> str:
    value = raw.get(key)
    return default if value is None else str(value)


def _optional_text(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _text_list(raw: dict[str, Any], key: str) -> tuple[str, ...]:
    value = raw.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"Field '{key}' must be a list.")
    return tuple(str(item) for item in value if item is not None and str(item).strip())


def _setup_step_from_dict(raw: dict[str, Any]) -> SetupStep:
    command = _text(raw, "command").strip()
    if not command:
        raise ValueError("Setup step has no command.")
    return SetupStep(command=command, description=_text(raw, "description").strip() or command)


def _objective_from_dict(raw: dict[str, Any]) -> Objective:
    objective_id = _text(raw, "id").strip()
    if not objective_id:
        raise ValueError("Objective has no id.")
    return Objective(
        id=objective_id,
        goal=_text(raw, "goal"),
        hint=_text(raw, "hint"),
        command=_optional_text(raw, "command"),
        expected_result=_optional_text(raw, "expected_result"),
        validation_type=_optional_text(raw, "validation_type"),
        target_file=_optional_text(raw, "target_file"),
        expected_content_contains=_text_list(raw, "expected_content_contains"),
        branch=_optional_text(raw, "branch"),
        target_branch=_optional_text(raw, "target_branch"),
    )


def _criterion_from_dict(raw: dict[str, Any]) -> SuccessCriterion:
    return SuccessCriterion(
        type=_text(raw, "type"),
        description=_text(raw, "description"),
        file=_optional_text(raw, "file"),
        content=_text_list(raw, "content"),
    )


def _hint_from_dict(raw: dict[str, Any]) -> EvaluationHint:
    return EvaluationHint(condition=_text(raw, "condition"), message=_text(raw, "message"))


def _dict_items(raw: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = raw.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise ValueError(f"Field '{key}' must be a list of objects.")
    return value


def scenario_from_dict(raw: object) -> ScenarioDefinition:
    """Decode one scenario document, resolving defaults for missing fields."""
    if not isinstance(raw, dict):
        raise ValueError("Scenario document root must be a JSON object.")
    name = _text(raw, "name").strip()
    if not name:
        raise ValueError("Scenario has no name.")

    objectives = tuple(_objective_from_dict(item) for item in _dict_items(raw, "objectives"))
    _validate_unique_objective_ids(name, objectives)

    return ScenarioDefinition(
        name=name,
        description=_text(raw, "description"),
        difficulty=_text(raw, "difficulty"),
        category=_text(raw, "category"),
        estimated_time=_text(raw, "estimated_time"),
        setup=tuple(_setup_step_from_dict(item) for item in _dict_items(raw, "setup")),
        objectives=objectives,
        success_criteria=tuple(_criterion_from_dict(item) for item in _dict_items(raw, "success_criteria")),
        evaluation=tuple(_hint_from_dict(item) for item in _dict_items(raw, "evaluation")),
    )


def _validate_unique_objective_ids(scenario_name: str, objectives: tuple[Objective, ...]) -> None:
    seen: set[str] = set()
    for objective in objectives:
        if objective.id in seen:
            raise ValueError(f"Duplicate objective id '{objective.id}' in scenario '{scenario_name}'.")
        seen.add(objective.id)


def _content_root(directory: Path | None) -> Traversable:
    if directory is not None:
        return directory
    return resources.files(CONTENT_PACKAGE)


def list_scenario_names(directory: Path | None = None) -> list[str]:
    """Return sorted scenario names (file stems) available for practice."""
    root = _content_root(directory)
    try:
        entries = list(root.iterdir())
    except OSError:
        return []
    names = [
        entry.name[: -len(SCENARIO_SUFFIX)]
        for entry in entries
        if entry.name.endswith(SCENARIO_SUFFIX) and entry.is_file()
    ]
    return sorted(names)


def load_scenario(name: str, directory: Path | None = None) -> ScenarioDefinition | None:
    """Load one scenario by name; missing or malformed content yields None."""
    if not _SCENARIO_NAME.match(name):
        return None
    entry = _content_root(directory).joinpath(f"{name}{SCENARIO_SUFFIX}")
    if not entry.is_file():
        return None
    try:
        raw = json.loads(entry.read_text(encoding="utf-8-sig"))
        return scenario_from_dict(raw)
    except (OSError, ValueError) as exc:
        logger.warning("scenario_load_failed", scenario=name, error=str(exc))
        return None


def load_scenarios(directory: Path | None = None) -> dict[str, ScenarioDefinition]:
    """Load every valid scenario keyed by name; invalid files are skipped."""
    scenarios: dict[str, ScenarioDefinition] = {}
    for name in list_scenario_names(directory):
        scenario = load_scenario(name, directory)
        if scenario is not None:
            scenarios[name] = scenario
    return scenarios
