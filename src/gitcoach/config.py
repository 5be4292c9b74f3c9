"""Runtime configuration: file locations, polling cadence, and scoring policy."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

LogFormat = Literal["console", "plain", "json"]

ENV_HOME = "GITCOACH_HOME"
ENV_SANDBOX_ROOT = "GITCOACH_SANDBOX_ROOT"
ENV_POLL_INTERVAL = "GITCOACH_POLL_INTERVAL"
ENV_LOG_LEVEL = "GITCOACH_LOG_LEVEL"
ENV_LOG_FORMAT = "GITCOACH_LOG_FORMAT"

APP_NAME = "gitcoach"
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_BRANCH = "main"
PRACTICE_USER_NAME = "GitCoach Practice"
PRACTICE_USER_EMAIL = "practice@gitcoach.dev"


@dataclass(frozen=True)
class ScoringPolicy:
    """Score adjustments applied to a finished practice attempt.

    A completed attempt is lifted to at least `completion_floor`, then loses
    `hint_penalty` points per hint (capped at `max_hint_penalty`), and never
    ends below `completed_minimum`. Incomplete attempts keep their raw score.
    """

    completion_floor: int = 70
    hint_penalty: int = 5
    max_hint_penalty: int = 30
    completed_minimum: int = 50


@dataclass(frozen=True)
class GitCoachConfig:
    """Resolved settings for one process."""

    home_dir: Path
    sandbox_root: Path
    poll_interval: float = DEFAULT_POLL_INTERVAL
    default_branch: str = DEFAULT_BRANCH
    practice_user_name: str = PRACTICE_USER_NAME
    practice_user_email: str = PRACTICE_USER_EMAIL
    log_level: str = "WARNING"
    log_format: LogFormat = "console"
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)

    @property
    def progress_path(self) -> Path:
        return self.home_dir / "progress.json"

    def with_overrides(self, **changes: object) -> GitCoachConfig:
        """Return a copy with non-None overrides applied."""
        applied = {key: value for key, value in changes.items() if value is not None}
        return replace(self, **applied)  # type: ignore[arg-type]


def default_home_dir() -> Path:
    return Path.home() / f".{APP_NAME}"


def default_sandbox_root() -> Path:
    return Path(tempfile.gettempdir()) / APP_NAME / "Practice"


def load_config(
    *,
    home_dir: str | Path | None = None,
    sandbox_root: str | Path | None = None,
    poll_interval: float | None = None,
    log_level: str | None = None,
    log_format: str | None = None,
) -> GitCoachConfig:
    """Resolve configuration with priority: explicit argument > environment variable > default."""
    env = os.environ

    home = Path(home_dir) if home_dir else _env_path(env.get(ENV_HOME)) or default_home_dir()
    sandbox = Path(sandbox_root) if sandbox_root else _env_path(env.get(ENV_SANDBOX_ROOT)) or default_sandbox_root()

    interval = poll_interval
    if interval is None:
        interval = _coerce_interval(env.get(ENV_POLL_INTERVAL))
    elif interval < 0:
        interval = DEFAULT_POLL_INTERVAL

    level = (log_level or env.get(ENV_LOG_LEVEL) or "WARNING").upper()

    return GitCoachConfig(
        home_dir=home.expanduser(),
        sandbox_root=sandbox.expanduser(),
        poll_interval=interval,
        log_level=level,
        log_format=_coerce_log_format(log_format or env.get(ENV_LOG_FORMAT)),
    )


def _env_path(value: str | None) -> Path | None:
    if value is None or not value.strip():
        return None
    return Path(value.strip())


def _coerce_interval(value: str | None) -> float:
    """Parse a polling interval, falling back to the default on bad input."""
    if value is None:
        return DEFAULT_POLL_INTERVAL
    try:
        parsed = float(value)
    except ValueError:
        return DEFAULT_POLL_INTERVAL
    if parsed < 0:
        return DEFAULT_POLL_INTERVAL
    return parsed


def _coerce_log_format(value: str | None) -> LogFormat:
    if value:
        lowered = value.strip().lower()
        if lowered == "json":
            return "json"
        if lowered == "plain":
            return "plain"
    return "console"
