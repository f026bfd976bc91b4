"""Type definitions for Lux Libris data structures.

HYBRID APPROACH (TypedDict + dict[str, Any])
============================================

1. **TypedDict for STATIC structures** (fixed keys known at design time):
   - Records: SessionData, FamilyBattleData, BattleHistoryData, ProgramConfigData
   - Operation results: StreakResult, FamilyIssueReport, BatchReport, RolloverReport

2. **dict[str, Any] for DYNAMIC structures** (keys determined at runtime):
   - Tenancy maps keyed by entity/school/student ids
   - Dotted-path patches produced by the repair engine

IMPORTANT: This file must NOT import from coordinator.py or any manager to
avoid circular dependencies.

NOTE: TypedDict is STATIC ANALYSIS ONLY. Stored records may be malformed;
runtime checks (isinstance, .get() defaults) stay in the engines.
"""

from typing import Any, NotRequired, TypedDict

# =============================================================================
# Type Aliases (for readability)
# =============================================================================

EntityId = str
SchoolId = str
StudentId = str
TeacherId = str
FamilyId = str
ISODatetime = str  # ISO 8601 datetime string "2026-01-18T12:30:00+00:00"
ISODate = str  # ISO 8601 date string (no time) "2026-01-18"
AcademicYear = str  # "2025-26"
Patch = dict[str, Any]  # Dotted field path -> value (or DELETE_FIELD)


# =============================================================================
# Reading Sessions & Streaks
# =============================================================================


class SessionData(TypedDict):
    """A single reading session logged by a student."""

    date: ISODate
    duration: int
    completed: NotRequired[bool]  # Derived from duration when absent
    book_id: NotRequired[str | None]
    start_time: NotRequired[ISODatetime | None]
    target_duration: NotRequired[int]


class StreakResult(TypedDict):
    """Derived streak/aggregate fields for one student."""

    current_streak: int
    longest_streak: int
    total_reading_days: int
    total_days_read: int
    last_reading_date: ISODate | None


class StudentRef(TypedDict):
    """Location of a student record inside the tenancy tree."""

    entity_id: EntityId
    school_id: SchoolId
    student_id: StudentId


# =============================================================================
# Family Battles
# =============================================================================


class BattleStreakData(TypedDict):
    """Which team holds the current win streak."""

    team: str | None
    count: int


class BattleHistoryData(TypedDict):
    """Current-shape battle history."""

    total_battles: int
    children_wins: int
    parent_wins: int
    ties: int
    current_streak: BattleStreakData
    recent_battles: list[dict[str, Any]]
    xp_awarded: dict[str, Any]
    unattributed_battles: NotRequired[int]


class LegacyBattleHistoryData(TypedDict):
    """Deprecated `family_battle_history` shape."""

    battles: int
    children_wins: NotRequired[int]
    parent_wins: NotRequired[int]
    ties: NotRequired[int]


class FamilyBattleData(TypedDict):
    """Current-shape family battle sub-structure."""

    enabled: bool
    current_week: dict[str, Any] | None
    completed_week: dict[str, Any] | None
    history: NotRequired[BattleHistoryData]
    children: NotRequired[dict[str, Any]]
    parents: NotRequired[dict[str, Any]]
    repaired_at: NotRequired[ISODatetime]
    repaired_reason: NotRequired[str]


class BattleCounters(TypedDict):
    """The four battle counters, normalized to ints."""

    total_battles: int
    children_wins: int
    parent_wins: int
    ties: int


class FamilyIssue(TypedDict):
    """One taxonomy issue found on a family record.

    Detail keys vary by issue type (legacy/current counters, week flags,
    math breakdown, malformed paths).
    """

    type: str
    severity: str
    description: str
    legacy_counters: NotRequired[BattleCounters]
    current_counters: NotRequired[BattleCounters]
    has_current_week: NotRequired[bool]
    has_completed_week: NotRequired[bool]
    has_battle_data: NotRequired[bool]
    total_battles: NotRequired[Any]
    calculated_total: NotRequired[int]
    breakdown: NotRequired[dict[str, int]]
    problems: NotRequired[list[str]]


class FamilyIssueReport(TypedDict):
    """Scan result for a family with at least one issue."""

    family_id: FamilyId
    family_name: str
    linked_students: list[StudentId]
    linked_parents: list[str]
    issues: list[FamilyIssue]


class StudentLinkDrift(TypedDict):
    """A student whose family-battle settings disagree with the family."""

    student_id: StudentId
    school_id: SchoolId
    entity_id: EntityId
    family_id: FamilyId
    family_enabled: bool
    student_enabled: bool | None
    student_settings_family_id: str | None


class RepairPlan(TypedDict):
    """A family's scan report together with the patch that heals it."""

    report: FamilyIssueReport
    patch: Patch


# =============================================================================
# Bulk Operation Reports
# =============================================================================


class BatchReport(TypedDict):
    """Aggregated outcome of a bounded fan-out over independent units."""

    succeeded: list[Any]
    failed: int
    errors: list[dict[str, Any]]


class MigrationReport(TypedDict):
    """Outcome of recomputing every student's streak fields."""

    processed: int
    updated: int
    unchanged: int
    errors: list[dict[str, Any]]


class RolloverReport(TypedDict):
    """Outcome of the academic year rollover."""

    new_year: AcademicYear
    students_cleared: int
    students_skipped: int
    teachers_reset: int
    failed: int
    errors: list[dict[str, Any]]
    completed: bool
    phase: str


# =============================================================================
# Program Config
# =============================================================================


class PhaseHistoryEntry(TypedDict):
    """One recorded phase change."""

    from_phase: str
    to_phase: str
    academic_year: AcademicYear
    changed_at: ISODatetime
    reason: str | None


class ProgramConfigData(TypedDict):
    """The singleton program config record."""

    program_phase: str
    current_academic_year: AcademicYear
    last_modified: ISODatetime | None
    phase_history: list[PhaseHistoryEntry]
    rollover_pending: bool
    last_rollover: RolloverReport | None
