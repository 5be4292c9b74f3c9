"""Progress Recorder: attempt bookkeeping, scoring, streaks."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta

from .config import ScoringPolicy
from .progress import PracticeAttempt, PracticeProgress, ProgressData, ProgressStore

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def score_attempt(
    objectives_completed: int,
    total_objectives: int,
    completed: bool,
    hints_used: int,
    policy: ScoringPolicy | None = None,
) -> int:
    """Return the 0-100 score for a finished attempt.

    >>> score_attempt(4, 4, True, 0)
    100
    >>> score_attempt(2, 4, True, 6)
    50
    >>> score_attempt(1, 4, False, 0)
    25
    """
    policy = policy or ScoringPolicy()
    if total_objectives <= 0:
        return 0
    # Round half up; 12.5 scores 13.
    score = int(objectives_completed / total_objectives * 100 + 0.5)
    if completed:
        score = max(score, policy.completion_floor)
        score -= min(hints_used * policy.hint_penalty, policy.max_hint_penalty)
        score = max(score, policy.completed_minimum)
    return max(0, min(100, score))


class ProgressRecorder:
    """Sole writer of practice progress; every mutation is saved immediately."""

    def __init__(self, store: ProgressStore, scoring: ScoringPolicy | None = None, clock: Clock = _utcnow) -> None:
        self.store = store
        self.scoring = scoring or ScoringPolicy()
        self._clock = clock

    def start_attempt(self, scenario_name: str) -> PracticeAttempt:
        """Open a new in-flight attempt for a scenario."""
        now = self._clock()
        with self.store.transaction() as data:
            _record_activity(data, now)
            progress = data.practice.get(scenario_name)
            if progress is None:
                progress = PracticeProgress(scenario_name=scenario_name, first_attempt=now)
                data.practice[scenario_name] = progress
            progress.last_attempt = now
            attempt = PracticeAttempt(start_time=now)
            progress.attempts.append(attempt)
        return attempt

    def complete_attempt(
        self,
        scenario_name: str,
        objectives_completed: int,
        total_objectives: int,
        completed: bool,
        hints_used: Sequence[str],
    ) -> PracticeAttempt | None:
        """Close the most recent attempt and fold it into the scenario's best results.

        Returns None when no attempt was ever started for the scenario.
        """
        now = self._clock()
        with self.store.transaction() as data:
            progress = data.practice.get(scenario_name)
            if progress is None or not progress.attempts:
                return None
            attempt = progress.attempts[-1]
            attempt.completed_time = now
            attempt.objectives_completed = objectives_completed
            attempt.total_objectives = total_objectives
            attempt.completed = completed
            attempt.hints_used = list(hints_used)
            attempt.duration_seconds = max(0.0, (now - attempt.start_time).total_seconds())
            attempt.score = score_attempt(
                objectives_completed, total_objectives, completed, len(attempt.hints_used), self.scoring
            )

            if completed:
                progress.completed = True
                data.stats.practice_sessions_completed += 1
                if attempt.score > progress.best_score:
                    progress.best_score = attempt.score
                if progress.best_time_seconds is None or attempt.duration_seconds < progress.best_time_seconds:
                    progress.best_time_seconds = attempt.duration_seconds
        return attempt


def _record_activity(data: ProgressData, now: datetime) -> None:
    """Count today toward the daily streak and session totals."""
    today = now.astimezone().date()
    if data.stats.first_session is None:
        data.stats.first_session = now

    streaks = data.streaks
    if streaks.last_activity_date == today:
        return
    if streaks.last_activity_date == today - timedelta(days=1):
        streaks.current_streak += 1
    else:
        streaks.current_streak = 1
        streaks.streak_start_date = today
    streaks.last_activity_date = today
    streaks.longest_streak = max(streaks.longest_streak, streaks.current_streak)
    if today not in streaks.activity_dates:
        streaks.activity_dates.append(today)
    data.stats.total_sessions += 1
