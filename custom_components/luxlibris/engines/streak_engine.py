"""Streak Engine - Pure derivation of reading streaks from the session log.

The session log is the source of truth; the streak fields cached on a student
record are a materialized view that must always be reproducible from it:
- current_streak: consecutive completed days ending today or yesterday
- longest_streak: longest run of consecutive completed days ever
- total_reading_days / total_days_read: distinct dates with any session
- last_reading_date: most recent completed date

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
All functions are static methods that operate on passed-in data.
Writing the derived fields back to a student belongs in StreakManager.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from .. import const
from ..utils.dt_utils import dt_coerce_date, dt_today_local

if TYPE_CHECKING:
    from ..type_defs import StreakResult


class StreakEngine:
    """Pure logic engine for reading-streak derivation.

    All methods are static - no instance state. The only time-dependent input
    is "today", which callers may pass explicitly (tests, bulk jobs) or leave
    to `_dt_today_local()`.
    """

    @staticmethod
    def _dt_today_local() -> date:
        """Return today's date in the tenant's local timezone."""
        return dt_today_local()

    # ────────────────────────────────────────────────────────────────
    # Session Classification
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def iter_sessions(
        sessions: Mapping[str, Any] | Iterable[Any] | None,
    ) -> list[Mapping[str, Any]]:
        """Normalize a session collection to a list of session mappings.

        Sessions are stored keyed by session id, but callers migrating raw
        exports may pass a plain list. Non-mapping entries are dropped.
        """
        if not sessions:
            return []
        values = sessions.values() if isinstance(sessions, Mapping) else sessions
        return [session for session in values if isinstance(session, Mapping)]

    @staticmethod
    def is_session_completed(
        session: Mapping[str, Any],
        threshold_minutes: int = const.DEFAULT_SESSION_COMPLETION_MINUTES,
    ) -> bool:
        """Return whether a session counts toward streaks.

        An explicit boolean `completed` flag wins. Otherwise the session is
        completed when its duration reaches the threshold.
        """
        completed = session.get(const.DATA_SESSION_COMPLETED)
        if isinstance(completed, bool):
            return completed

        duration = session.get(const.DATA_SESSION_DURATION)
        if isinstance(duration, bool) or not isinstance(duration, (int, float)):
            return False
        return duration >= threshold_minutes

    @staticmethod
    def session_date(session: Mapping[str, Any]) -> date | None:
        """Return the calendar day of a session, or None if unparseable."""
        return dt_coerce_date(session.get(const.DATA_SESSION_DATE))

    @staticmethod
    def completed_dates(
        sessions: Mapping[str, Any] | Iterable[Any] | None,
        threshold_minutes: int = const.DEFAULT_SESSION_COMPLETION_MINUTES,
    ) -> set[date]:
        """Return the set of dates with at least one completed session."""
        dates: set[date] = set()
        for session in StreakEngine.iter_sessions(sessions):
            if not StreakEngine.is_session_completed(session, threshold_minutes):
                continue
            day = StreakEngine.session_date(session)
            if day is None:
                const.LOGGER.debug(
                    "DEBUG: Skipping completed session with unparseable date: %s",
                    session.get(const.DATA_SESSION_DATE),
                )
                continue
            dates.add(day)
        return dates

    @staticmethod
    def reading_dates(
        sessions: Mapping[str, Any] | Iterable[Any] | None,
    ) -> set[date]:
        """Return the set of dates with any session, completed or not."""
        dates: set[date] = set()
        for session in StreakEngine.iter_sessions(sessions):
            day = StreakEngine.session_date(session)
            if day is not None:
                dates.add(day)
        return dates

    # ────────────────────────────────────────────────────────────────
    # Streak Calculations
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def calculate_current_streak(completed: set[date], today: date) -> int:
        """Count consecutive completed days ending at today or yesterday.

        If today has no completed session yet, yesterday anchors the streak so
        it survives until the day is over. The backward walk stops at the
        first missing day and never exceeds STREAK_MAX_ITERATIONS.

        Example:
            completed = {Jan 1..Jan 5}, today = Jan 6 -> 5
        """
        if today in completed:
            anchor = today
        elif today - timedelta(days=1) in completed:
            anchor = today - timedelta(days=1)
        else:
            return 0

        streak = 0
        check_date = anchor
        while check_date in completed and streak < const.STREAK_MAX_ITERATIONS:
            streak += 1
            check_date -= timedelta(days=1)
        return streak

    @staticmethod
    def calculate_longest_streak(completed: set[date]) -> int:
        """Return the longest run of consecutive completed days."""
        if not completed:
            return 0

        ordered = sorted(completed)
        longest = 1
        running = 1
        for previous, current in zip(ordered, ordered[1:]):
            if (current - previous).days == 1:
                running += 1
            else:
                running = 1
            longest = max(longest, running)
        return longest

    @staticmethod
    def derive(
        sessions: Mapping[str, Any] | Iterable[Any] | None,
        reference_date: date | datetime | None = None,
        threshold_minutes: int = const.DEFAULT_SESSION_COMPLETION_MINUTES,
    ) -> StreakResult:
        """Derive every cached streak field from a student's session log.

        Args:
            sessions: Session records (mapping keyed by id, or a list)
            reference_date: Local "today". Defaults to the actual local date.
            threshold_minutes: Minimum duration for a session without an
                explicit `completed` flag to count as completed.

        Returns:
            StreakResult with both legacy-duplicated day totals kept equal.
        """
        if reference_date is None:
            today = StreakEngine._dt_today_local()
        elif isinstance(reference_date, datetime):
            today = reference_date.date()
        else:
            today = reference_date

        completed = StreakEngine.completed_dates(sessions, threshold_minutes)
        total_days = len(StreakEngine.reading_dates(sessions))
        last_reading = max(completed).isoformat() if completed else None

        return {
            const.DATA_STUDENT_CURRENT_STREAK: StreakEngine.calculate_current_streak(
                completed, today
            ),
            const.DATA_STUDENT_LONGEST_STREAK: StreakEngine.calculate_longest_streak(
                completed
            ),
            const.DATA_STUDENT_TOTAL_READING_DAYS: total_days,
            const.DATA_STUDENT_TOTAL_DAYS_READ: total_days,
            const.DATA_STUDENT_LAST_READING_DATE: last_reading,
        }  # type: ignore[return-value]

    @staticmethod
    def differs(student: Mapping[str, Any], result: Mapping[str, Any]) -> bool:
        """Return whether a student's cached streak fields differ from `result`."""
        return any(
            student.get(field) != result.get(field)
            for field in const.STUDENT_STREAK_FIELDS
        )
