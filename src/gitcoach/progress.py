"""JSON persistence for cross-session practice progress, streaks, and stats."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from pathlib import Path
from typing import cast

import structlog

FORMAT_VERSION = 1
KNOWN_SECTIONS = frozenset({"format_version", "last_updated", "practice", "streaks", "stats"})

logger = structlog.get_logger(__name__)


class PersistenceError(RuntimeError):
    """Progress file could not be written.

    Raised by the writer and caught by `ProgressStore.save`: progress tracking
    is best-effort, so the latest update may be lost.
    """


@dataclass
class PracticeAttempt:
    """One recorded run of a scenario."""

    start_time: datetime
    completed_time: datetime | None = None
    objectives_completed: int = 0
    total_objectives: int = 0
    duration_seconds: float = 0.0
    completed: bool = False
    score: int = 0
    hints_used: list[str] = field(default_factory=list)

    @property
    def in_flight(self) -> bool:
        return self.completed_time is None


@dataclass
class PracticeProgress:
    """Cumulative statistics for one scenario."""

    scenario_name: str
    attempts: list[PracticeAttempt] = field(default_factory=list)
    first_attempt: datetime | None = None
    last_attempt: datetime | None = None
    completed: bool = False
    best_score: int = 0
    best_time_seconds: float | None = None


@dataclass
class StreakData:
    """Consecutive-day activity tracking."""

    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: date | None = None
    streak_start_date: date | None = None
    activity_dates: list[date] = field(default_factory=list)


@dataclass
class UserStats:
    first_session: datetime | None = None
    total_sessions: int = 0
    practice_sessions_completed: int = 0


@dataclass
class ProgressData:
    """Whole progress document; unknown top-level sections are carried through untouched."""

    practice: dict[str, PracticeProgress] = field(default_factory=dict)
    streaks: StreakData = field(default_factory=StreakData)
    stats: UserStats = field(default_factory=UserStats)
    last_updated: datetime | None = None
    extra_sections: dict[str, object] = field(default_factory=dict)


class ProgressStore:
    """Owns the progress document and its file.

    The document is loaded once at construction and written in full after
    every mutation. `transaction()` serializes load-mutate-save cycles so
    concurrent sessions sharing a store cannot interleave their updates.
    Pass `None` as the path for an in-memory store.
    """

    def __init__(self, path: Path | str | None) -> None:
        self.path = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._writable = True
        self._data = self._load()

    @property
    def data(self) -> ProgressData:
        return self._data

    def _load(self) -> ProgressData:
        if self.path is None:
            return ProgressData()
        try:
            if not self.path.exists():
                return ProgressData()
            raw: object = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("progress_file_unreadable", path=str(self.path), error=str(exc))
            return ProgressData()

        if not isinstance(raw, dict):
            logger.warning("progress_file_invalid", path=str(self.path), reason="root is not an object")
            return ProgressData()
        document = cast(dict[str, object], raw)
        version = _coerce_int(document.get("format_version", FORMAT_VERSION), default=None)
        if version is not None and version > FORMAT_VERSION:
            # Never overwrite a file written by a newer release.
            logger.warning(
                "progress_file_newer_format",
                path=str(self.path),
                found=version,
                supported=FORMAT_VERSION,
            )
            self._writable = False
            return ProgressData()
        return decode_progress(document)

    @contextmanager
    def transaction(self) -> Iterator[ProgressData]:
        """Yield the document for mutation, then save it while still holding the lock."""
        with self._lock:
            yield self._data
            self.save()

    def save(self) -> bool:
        """Write the whole document; failures are logged and reported as False."""
        with self._lock:
            self._data.last_updated = datetime.now(UTC)
            if self.path is None:
                return True
            try:
                self._write(encode_progress(self._data))
            except PersistenceError as exc:
                logger.warning("progress_save_failed", path=str(self.path), error=str(exc))
                return False
            return True

    def _write(self, document: dict[str, object]) -> None:
        if self.path is None:
            return
        if not self._writable:
            raise PersistenceError(f"{self.path} uses a newer format and is left untouched.")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".progress-", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(str(exc)) from exc

    def get_practice(self, scenario_name: str) -> PracticeProgress | None:
        return self._data.practice.get(scenario_name)

    def reset_scenario(self, scenario_name: str) -> bool:
        """Drop one scenario's practice history."""
        with self.transaction() as data:
            removed = data.practice.pop(scenario_name, None)
        return removed is not None

    def reset_all(self) -> None:
        with self._lock:
            extra = self._data.extra_sections
            self._data = ProgressData()
            # Sections owned by other features are not ours to clear.
            self._data.extra_sections = extra
            self.save()

    def backup(self, now: datetime | None = None) -> Path | None:
        """Copy the progress file next to itself; None when there is nothing to copy."""
        if self.path is None or not self.path.exists():
            return None
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        target = self.path.with_name(f"progress_backup_{stamp}.json")
        with self._lock:
            shutil.copy2(self.path, target)
        return target


def encode_progress(data: ProgressData) -> dict[str, object]:
    """Serialize the document to JSON-compatible primitives."""
    document: dict[str, object] = dict(data.extra_sections)
    document.update(
        {
            "format_version": FORMAT_VERSION,
            "last_updated": _iso(data.last_updated),
            "practice": {name: _encode_practice(progress) for name, progress in data.practice.items()},
            "streaks": {
                "current_streak": data.streaks.current_streak,
                "longest_streak": data.streaks.longest_streak,
                "last_activity_date": _iso_date(data.streaks.last_activity_date),
                "streak_start_date": _iso_date(data.streaks.streak_start_date),
                "activity_dates": [day.isoformat() for day in data.streaks.activity_dates],
            },
            "stats": {
                "first_session": _iso(data.stats.first_session),
                "total_sessions": data.stats.total_sessions,
                "practice_sessions_completed": data.stats.practice_sessions_completed,
            },
        }
    )
    return document


def _encode_practice(progress: PracticeProgress) -> dict[str, object]:
    return {
        "scenario_name": progress.scenario_name,
        "first_attempt": _iso(progress.first_attempt),
        "last_attempt": _iso(progress.last_attempt),
        "completed": progress.completed,
        "best_score": progress.best_score,
        "best_time_seconds": progress.best_time_seconds,
        "attempts": [
            {
                "start_time": _iso(attempt.start_time),
                "completed_time": _iso(attempt.completed_time),
                "objectives_completed": attempt.objectives_completed,
                "total_objectives": attempt.total_objectives,
                "duration_seconds": attempt.duration_seconds,
                "completed": attempt.completed,
                "score": attempt.score,
                "hints_used": list(attempt.hints_used),
            }
            for attempt in progress.attempts
        ],
    }


def decode_progress(document: dict[str, object]) -> ProgressData:
    """Decode a progress document, resolving defaults for missing or malformed fields."""
    now = datetime.now(UTC)
    data = ProgressData(
        last_updated=_parse_datetime(document.get("last_updated")),
        extra_sections={key: value for key, value in document.items() if key not in KNOWN_SECTIONS},
    )

    practice_raw = document.get("practice")
    if isinstance(practice_raw, dict):
        for name, entry in cast(dict[str, object], practice_raw).items():
            if isinstance(entry, dict) and str(name).strip():
                data.practice[str(name)] = _decode_practice(str(name), cast(dict[str, object], entry), now)

    streaks_raw = document.get("streaks")
    if isinstance(streaks_raw, dict):
        streaks = cast(dict[str, object], streaks_raw)
        dates_raw = streaks.get("activity_dates")
        activity_dates = [
            parsed
            for parsed in (_parse_date(item) for item in (dates_raw if isinstance(dates_raw, list) else []))
            if parsed is not None
        ]
        data.streaks = StreakData(
            current_streak=max(0, _coerce_int(streaks.get("current_streak"), default=0) or 0),
            longest_streak=max(0, _coerce_int(streaks.get("longest_streak"), default=0) or 0),
            last_activity_date=_parse_date(streaks.get("last_activity_date")),
            streak_start_date=_parse_date(streaks.get("streak_start_date")),
            activity_dates=activity_dates,
        )

    stats_raw = document.get("stats")
    if isinstance(stats_raw, dict):
        stats = cast(dict[str, object], stats_raw)
        data.stats = UserStats(
            first_session=_parse_datetime(stats.get("first_session")),
            total_sessions=max(0, _coerce_int(stats.get("total_sessions"), default=0) or 0),
            practice_sessions_completed=max(0, _coerce_int(stats.get("practice_sessions_completed"), default=0) or 0),
        )
    return data


def _decode_practice(name: str, entry: dict[str, object], now: datetime) -> PracticeProgress:
    attempts: list[PracticeAttempt] = []
    attempts_raw = entry.get("attempts")
    if isinstance(attempts_raw, list):
        for item in cast(list[object], attempts_raw):
            if not isinstance(item, dict):
                continue
            row = cast(dict[str, object], item)
            hints_raw = row.get("hints_used")
            hints = [str(hint) for hint in hints_raw] if isinstance(hints_raw, list) else []
            attempts.append(
                PracticeAttempt(
                    start_time=_parse_datetime(row.get("start_time")) or now,
                    completed_time=_parse_datetime(row.get("completed_time")),
                    objectives_completed=max(0, _coerce_int(row.get("objectives_completed"), default=0) or 0),
                    total_objectives=max(0, _coerce_int(row.get("total_objectives"), default=0) or 0),
                    duration_seconds=max(0.0, _coerce_float(row.get("duration_seconds"), default=0.0) or 0.0),
                    completed=bool(row.get("completed", False)),
                    score=min(100, max(0, _coerce_int(row.get("score"), default=0) or 0)),
                    hints_used=hints,
                )
            )

    best_time = _coerce_float(entry.get("best_time_seconds"), default=None)
    return PracticeProgress(
        scenario_name=str(entry.get("scenario_name") or name),
        attempts=attempts,
        first_attempt=_parse_datetime(entry.get("first_attempt")),
        last_attempt=_parse_datetime(entry.get("last_attempt")),
        completed=bool(entry.get("completed", False)),
        best_score=min(100, max(0, _coerce_int(entry.get("best_score"), default=0) or 0)),
        best_time_seconds=best_time if best_time is not None and best_time >= 0 else None,
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _iso_date(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: object) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _parse_date(value: object) -> date | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce a loosely-typed JSON value to int."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def _coerce_float(value: object, default: float | None = None) -> float | None:
    """Coerce a loosely-typed JSON value to float."""
    if isinstance(value, bool):
        return float(int(value))
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return default
    return default
