"""gitcoach: hands-on git practice in throwaway sandbox repositories."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]

DISTRIBUTION_NAME = "gitcoach"


def _source_tree_version() -> str | None:
    """Return `[project].version` from the nearest pyproject.toml when running from a checkout."""
    for base in Path(__file__).resolve().parents:
        pyproject = base / "pyproject.toml"
        if not pyproject.is_file():
            continue
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            return None
        project = data.get("project", {})
        if project.get("name") != DISTRIBUTION_NAME:
            continue
        value = project.get("version")
        return str(value) if value else None
    return None


def _resolve_version() -> str:
    source_version = _source_tree_version()
    if source_version is not None:
        return source_version
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _resolve_version()
