"""Phase Engine - Pure logic for the academic-year program phase machine.

Phases and the canonical yearly cycle:

    SETUP -> TEACHER_SELECTION -> ACTIVE -> VOTING -> RESULTS -> SETUP (next year)

CLOSED is an idle state between years, entered only through the manual
close override and left through CLOSED -> SETUP.

This engine provides stateless functions for:
- Transition validation against the allowed-transition table
- PhaseTransition planning (does the edge start a new academic year?)
- Academic-year arithmetic ("2025-26" -> "2026-27")
- Calendar schedule checks (which phase is due on a given day)
- Phase display info and feature permissions

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
All functions are static methods that operate on passed-in data.
PhaseManager is the only code that writes the program phase.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import re
from typing import Any

from .. import const
from ..utils.dt_utils import dt_add_years

_ACADEMIC_YEAR_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")


# =============================================================================
# EXCEPTIONS
# =============================================================================


class InvalidPhaseTransitionError(Exception):
    """Raised when a requested phase change is not an allowed edge.

    Attributes:
        from_phase: The current program phase
        to_phase: The requested target phase
    """

    def __init__(self, from_phase: str, to_phase: str) -> None:
        """Initialize InvalidPhaseTransitionError.

        Args:
            from_phase: The current program phase
            to_phase: The requested target phase
        """
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(
            const.ERROR_INVALID_TRANSITION_FMT.format(from_phase, to_phase)
        )


class RolloverIncompleteError(Exception):
    """Raised when teacher selection is requested before the year clear finished.

    Attributes:
        new_year: The academic year being rolled into
        failed: Number of records that still failed to clear
    """

    def __init__(self, new_year: str, failed: int) -> None:
        """Initialize RolloverIncompleteError.

        Args:
            new_year: The academic year being rolled into
            failed: Number of records that still failed to clear
        """
        self.new_year = new_year
        self.failed = failed
        super().__init__(
            f"Rollover into {new_year} is incomplete: {failed} records failed to clear"
        )


# =============================================================================
# TRANSITION PLAN
# =============================================================================


@dataclass
class PhaseTransition:
    """A validated phase change, returned by PhaseEngine.plan_transition().

    Attributes:
        from_phase: Phase before the change
        to_phase: Phase after the change
        starts_new_year: Edge enters SETUP; the academic year is bumped and
            per-year student data is cleared
        override: Manual close override rather than a table edge
    """

    from_phase: str
    to_phase: str
    starts_new_year: bool = False
    override: bool = False


# =============================================================================
# PHASE ENGINE
# =============================================================================


class PhaseEngine:
    """Pure logic engine for program phases and the academic calendar.

    All methods are static - no instance state.
    """

    PHASES: tuple[str, ...] = (
        const.PHASE_SETUP,
        const.PHASE_TEACHER_SELECTION,
        const.PHASE_ACTIVE,
        const.PHASE_VOTING,
        const.PHASE_RESULTS,
        const.PHASE_CLOSED,
    )

    # Allowed edges; anything else is rejected
    VALID_TRANSITIONS: dict[str, list[str]] = {
        # Release nominees to the teacher selection workflow
        const.PHASE_SETUP: [const.PHASE_TEACHER_SELECTION],
        # Scheduled start of the reading year
        const.PHASE_TEACHER_SELECTION: [const.PHASE_ACTIVE],
        # Submissions end, voting opens
        const.PHASE_ACTIVE: [const.PHASE_VOTING],
        # Announce results
        const.PHASE_VOTING: [const.PHASE_RESULTS],
        # Year rollover
        const.PHASE_RESULTS: [const.PHASE_SETUP],
        # Reopen after a break
        const.PHASE_CLOSED: [const.PHASE_SETUP],
    }

    # Display metadata and the features each phase opens to students
    PHASE_INFO: dict[str, dict[str, Any]] = {
        const.PHASE_SETUP: {
            "name": "Setup",
            "icon": "mdi:clipboard-edit-outline",
            "message": "System is being set up for the new academic year.",
            "permissions": {
                "book_selection": False,
                "book_submission": False,
                "nominees_browsing": False,
                "bookshelf_editing": False,
                "voting_interface": False,
                "voting_results": False,
                "reading_timer": True,
                "book_details": True,
                "achievements": False,
            },
        },
        const.PHASE_TEACHER_SELECTION: {
            "name": "Teacher Selection",
            "icon": "mdi:human-male-board",
            "message": "Teachers are selecting books for the new year.",
            "permissions": {
                "book_selection": False,
                "book_submission": False,
                "nominees_browsing": False,
                "bookshelf_editing": False,
                "voting_interface": False,
                "voting_results": False,
                "reading_timer": True,
                "book_details": True,
                "achievements": False,
            },
        },
        const.PHASE_ACTIVE: {
            "name": "Active Reading",
            "icon": "mdi:book-open-page-variant",
            "message": "Happy reading! Explore books and earn achievements.",
            "permissions": {
                "book_selection": True,
                "book_submission": True,
                "nominees_browsing": True,
                "bookshelf_editing": True,
                "voting_interface": False,
                "voting_results": False,
                "reading_timer": True,
                "book_details": True,
                "achievements": True,
            },
        },
        const.PHASE_VOTING: {
            "name": "Voting Period",
            "icon": "mdi:vote",
            "message": "Voting time! Choose your favorite books of the year.",
            "permissions": {
                "book_selection": False,
                "book_submission": False,
                "nominees_browsing": False,
                "bookshelf_editing": False,
                "voting_interface": True,
                "voting_results": False,
                "reading_timer": True,
                "book_details": True,
                "achievements": False,
            },
        },
        const.PHASE_RESULTS: {
            "name": "Results",
            "icon": "mdi:trophy",
            "message": "Results are in! See this year's winners.",
            "permissions": {
                "book_selection": False,
                "book_submission": False,
                "nominees_browsing": False,
                "bookshelf_editing": False,
                "voting_interface": False,
                "voting_results": True,
                "reading_timer": True,
                "book_details": True,
                "achievements": False,
            },
        },
        const.PHASE_CLOSED: {
            "name": "Closed",
            "icon": "mdi:snowflake",
            "message": "Taking a break between school years.",
            "permissions": {
                "book_selection": False,
                "book_submission": False,
                "nominees_browsing": False,
                "bookshelf_editing": False,
                "voting_interface": False,
                "voting_results": False,
                "reading_timer": True,
                "book_details": False,
                "achievements": False,
            },
        },
    }

    # ────────────────────────────────────────────────────────────────
    # Transitions
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def is_valid_phase(phase: Any) -> bool:
        """Return whether `phase` names a known program phase."""
        return phase in PhaseEngine.PHASES

    @staticmethod
    def can_transition(from_phase: str, to_phase: str) -> bool:
        """Check if a transition is an allowed edge."""
        return to_phase in PhaseEngine.VALID_TRANSITIONS.get(from_phase, [])

    @staticmethod
    def next_phase(phase: str) -> str | None:
        """Return the single forward successor of a phase."""
        successors = PhaseEngine.VALID_TRANSITIONS.get(phase, [])
        return successors[0] if successors else None

    @staticmethod
    def plan_transition(from_phase: str, to_phase: str) -> PhaseTransition:
        """Validate an edge and describe its effects.

        Raises:
            InvalidPhaseTransitionError: The edge is not in VALID_TRANSITIONS.
        """
        if not PhaseEngine.can_transition(from_phase, to_phase):
            raise InvalidPhaseTransitionError(from_phase, to_phase)
        return PhaseTransition(
            from_phase=from_phase,
            to_phase=to_phase,
            starts_new_year=to_phase == const.PHASE_SETUP,
        )

    @staticmethod
    def plan_close(from_phase: str) -> PhaseTransition:
        """Plan the manual override into CLOSED.

        Raises:
            InvalidPhaseTransitionError: The program is already closed.
        """
        if from_phase == const.PHASE_CLOSED:
            raise InvalidPhaseTransitionError(from_phase, const.PHASE_CLOSED)
        return PhaseTransition(
            from_phase=from_phase, to_phase=const.PHASE_CLOSED, override=True
        )

    @staticmethod
    def phase_info(phase: str) -> dict[str, Any]:
        """Return display info, permissions and the next phase for `phase`."""
        info = PhaseEngine.PHASE_INFO.get(phase, PhaseEngine.PHASE_INFO[const.PHASE_SETUP])
        return {
            **info,
            "permissions": dict(info["permissions"]),
            const.ATTR_NEXT_PHASE: PhaseEngine.next_phase(phase),
        }

    # ────────────────────────────────────────────────────────────────
    # Academic Year
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def parse_academic_year(academic_year: str) -> int:
        """Return the start year of an academic year string like "2025-26".

        Raises:
            ValueError: Not in "YYYY-YY" form, or the two years are not consecutive.
        """
        if not isinstance(academic_year, str):
            raise ValueError(f"Invalid academic year: '{academic_year}'")
        match = _ACADEMIC_YEAR_PATTERN.match(academic_year)
        if match is None:
            raise ValueError(f"Invalid academic year: '{academic_year}'")
        start = int(match.group(1))
        if int(match.group(2)) != (start + 1) % 100:
            raise ValueError(f"Invalid academic year: '{academic_year}'")
        return start

    @staticmethod
    def format_academic_year(start_year: int) -> str:
        """Return the academic year string starting in `start_year`."""
        return f"{start_year}-{(start_year + 1) % 100:02d}"

    @staticmethod
    def next_academic_year(academic_year: str) -> str:
        """Return the academic year after `academic_year`.

        Example:
            "2025-26" -> "2026-27", "2099-00" -> "2100-01"
        """
        start = PhaseEngine.parse_academic_year(academic_year)
        return PhaseEngine.format_academic_year(start + 1)

    @staticmethod
    def academic_year_for_date(day: date) -> str:
        """Return the academic year containing `day` (years start on June 1)."""
        month, day_of_month = const.ACADEMIC_YEAR_START
        if (day.month, day.day) >= (month, day_of_month):
            return PhaseEngine.format_academic_year(day.year)
        return PhaseEngine.format_academic_year(day.year - 1)

    # ────────────────────────────────────────────────────────────────
    # Schedule
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def schedule_dates(academic_year: str) -> dict[str, date]:
        """Return the calendar day each scheduled phase begins.

        ACTIVE begins in the start year; VOTING and RESULTS in the end year.
        """
        start = PhaseEngine.parse_academic_year(academic_year)
        return {
            const.PHASE_ACTIVE: date(start, *const.SCHEDULE_ACTIVE_START),
            const.PHASE_VOTING: dt_add_years(
                date(start, *const.SCHEDULE_VOTING_START), 1
            ),
            const.PHASE_RESULTS: dt_add_years(
                date(start, *const.SCHEDULE_RESULTS_START), 1
            ),
        }

    @staticmethod
    def scheduled_target(phase: str, academic_year: str, today: date) -> str | None:
        """Return the next phase the calendar calls for, or None.

        Only one legal forward edge is ever proposed per call; SETUP, RESULTS
        and CLOSED are never advanced by the calendar.
        """
        target = PhaseEngine.next_phase(phase)
        if phase not in (
            const.PHASE_TEACHER_SELECTION,
            const.PHASE_ACTIVE,
            const.PHASE_VOTING,
        ) or target is None:
            return None

        starts_on = PhaseEngine.schedule_dates(academic_year)[target]
        return target if today >= starts_on else None
