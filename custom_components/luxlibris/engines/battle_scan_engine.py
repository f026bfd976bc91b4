"""Battle Scan Engine - Pure classification of family battle records.

This engine inspects a family record's battle sub-structures and classifies it
against a fixed, ordered issue taxonomy:

    dual_structure      (high)    legacy and current histories both present
    inconsistent_state  (medium)  disabled, yet a week pointer is set
    missing_history     (high)    enabled, yet no history sub-structure
    invalid_math        (medium)  total_battles != children + parents + ties
    orphaned_data       (low)     legacy history present, no current battle
    malformed_record    (high)    sub-structure/counter of the wrong type

A family may carry several issues at once. Each issue carries the detail the
repair engine needs, so repairing never re-reads the store.

A record's shape is a small sum type (BattleShape): LEGACY, CURRENT, BOTH or
NEITHER. Repairs always normalize toward CURRENT.

ARCHITECTURE: This is a pure logic engine with NO Home Assistant dependencies.
Scanning never mutates its input.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
import math
from typing import TYPE_CHECKING, Any

from .. import const

if TYPE_CHECKING:
    from ..type_defs import (
        BattleCounters,
        FamilyIssue,
        FamilyIssueReport,
        StudentLinkDrift,
        StudentRef,
    )


# =============================================================================
# TAXONOMY
# =============================================================================

# Ordered: repair patches are unioned in this order
ISSUE_ORDER: tuple[str, ...] = (
    const.ISSUE_MALFORMED_RECORD,
    const.ISSUE_DUAL_STRUCTURE,
    const.ISSUE_INCONSISTENT_STATE,
    const.ISSUE_MISSING_HISTORY,
    const.ISSUE_INVALID_MATH,
    const.ISSUE_ORPHANED_DATA,
)

ISSUE_SEVERITY: dict[str, str] = {
    const.ISSUE_DUAL_STRUCTURE: const.SEVERITY_HIGH,
    const.ISSUE_INCONSISTENT_STATE: const.SEVERITY_MEDIUM,
    const.ISSUE_MISSING_HISTORY: const.SEVERITY_HIGH,
    const.ISSUE_INVALID_MATH: const.SEVERITY_MEDIUM,
    const.ISSUE_ORPHANED_DATA: const.SEVERITY_LOW,
    const.ISSUE_MALFORMED_RECORD: const.SEVERITY_HIGH,
}

# Battle shapes
BATTLE_SHAPE_LEGACY = "legacy"
BATTLE_SHAPE_CURRENT = "current"
BATTLE_SHAPE_BOTH = "both"
BATTLE_SHAPE_NEITHER = "neither"

_LEGACY_COUNTER_FIELDS = (const.DATA_LEGACY_BATTLES, *const.BATTLE_WIN_COUNTERS)
_HISTORY_COUNTER_FIELDS = (
    const.DATA_HISTORY_TOTAL_BATTLES,
    *const.BATTLE_WIN_COUNTERS,
    const.DATA_HISTORY_UNATTRIBUTED_BATTLES,
)


# =============================================================================
# NORMALIZED VIEW
# =============================================================================


@dataclass(frozen=True)
class BattleView:
    """Tagged view of a family's battle state.

    Attributes:
        shape: One of the BATTLE_SHAPE_* tags
        battle: The current `family_battle` mapping, or None
        legacy: The deprecated `family_battle_history` mapping, or None
    """

    shape: str
    battle: Mapping[str, Any] | None
    legacy: Mapping[str, Any] | None

    @property
    def history(self) -> Mapping[str, Any] | None:
        """Return the current history mapping when present."""
        if self.battle is None:
            return None
        history = self.battle.get(const.DATA_BATTLE_HISTORY)
        return history if isinstance(history, Mapping) else None


class BattleScanEngine:
    """Pure logic engine classifying family battle records.

    All methods are static - no instance state.
    """

    # ────────────────────────────────────────────────────────────────
    # Shape & Counters
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def classify_shape(family: Mapping[str, Any]) -> BattleView:
        """Return the tagged battle view of a well-formed family record."""
        battle = family.get(const.DATA_FAMILY_BATTLE)
        legacy = family.get(const.DATA_FAMILY_LEGACY_HISTORY)
        battle = battle if isinstance(battle, Mapping) else None
        legacy = legacy if isinstance(legacy, Mapping) else None

        if battle is not None and legacy is not None:
            shape = BATTLE_SHAPE_BOTH
        elif battle is not None:
            shape = BATTLE_SHAPE_CURRENT
        elif legacy is not None:
            shape = BATTLE_SHAPE_LEGACY
        else:
            shape = BATTLE_SHAPE_NEITHER
        return BattleView(shape=shape, battle=battle, legacy=legacy)

    @staticmethod
    def is_valid_counter(value: Any) -> bool:
        """Return whether a stored counter is a non-negative integer (or absent)."""
        if value is None:
            return True
        if isinstance(value, bool) or not isinstance(value, int):
            return False
        return value >= 0

    @staticmethod
    def coerce_counter(value: Any) -> int:
        """Best-effort conversion of a stored counter to a non-negative int.

        Integral numbers and numeric strings are kept; anything else becomes 0.
        """
        if isinstance(value, bool) or value is None:
            return 0
        if isinstance(value, str):
            try:
                value = float(value.strip())
            except ValueError:
                return 0
        if isinstance(value, float):
            if not math.isfinite(value):
                return 0
            value = int(value)
        if not isinstance(value, int):
            return 0
        return max(value, 0)

    @staticmethod
    def legacy_counters(legacy: Mapping[str, Any]) -> BattleCounters:
        """Return the legacy counters, with missing values read as 0."""
        return {
            const.DATA_HISTORY_TOTAL_BATTLES: legacy.get(const.DATA_LEGACY_BATTLES) or 0,
            const.DATA_HISTORY_CHILDREN_WINS: legacy.get(const.DATA_HISTORY_CHILDREN_WINS)
            or 0,
            const.DATA_HISTORY_PARENT_WINS: legacy.get(const.DATA_HISTORY_PARENT_WINS)
            or 0,
            const.DATA_HISTORY_TIES: legacy.get(const.DATA_HISTORY_TIES) or 0,
        }  # type: ignore[return-value]

    @staticmethod
    def history_counters(history: Mapping[str, Any]) -> BattleCounters:
        """Return the current history counters, with missing values read as 0."""
        return {
            field: history.get(field) or 0
            for field in (const.DATA_HISTORY_TOTAL_BATTLES, *const.BATTLE_WIN_COUNTERS)
        }  # type: ignore[return-value]

    @staticmethod
    def win_sum(counters: Mapping[str, Any]) -> int:
        """Return children_wins + parent_wins + ties (missing read as 0)."""
        return sum(counters.get(field) or 0 for field in const.BATTLE_WIN_COUNTERS)

    @staticmethod
    def participant_total(container: Any, side: str) -> int:
        """Return `<side>.total` from a battle or week mapping, 0 when absent."""
        if not isinstance(container, Mapping):
            return 0
        participants = container.get(side)
        if not isinstance(participants, Mapping):
            return 0
        total = participants.get(const.DATA_BATTLE_TOTAL)
        if isinstance(total, bool) or not isinstance(total, (int, float)):
            return 0
        return int(total)

    @staticmethod
    def has_battle_data(battle: Mapping[str, Any]) -> bool:
        """Return whether a battle carries real data worth keeping.

        Signals: a current or completed week pointer, a non-zero history
        total, or non-zero participant totals on the battle itself.
        """
        if battle.get(const.DATA_BATTLE_CURRENT_WEEK) or battle.get(
            const.DATA_BATTLE_COMPLETED_WEEK
        ):
            return True

        history = battle.get(const.DATA_BATTLE_HISTORY)
        if isinstance(history, Mapping):
            total = history.get(const.DATA_HISTORY_TOTAL_BATTLES)
            if isinstance(total, int) and not isinstance(total, bool) and total > 0:
                return True

        return (
            BattleScanEngine.participant_total(battle, const.DATA_BATTLE_CHILDREN) > 0
            or BattleScanEngine.participant_total(battle, const.DATA_BATTLE_PARENTS) > 0
        )

    # ────────────────────────────────────────────────────────────────
    # Malformed Detection
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def find_malformed_paths(family: Mapping[str, Any]) -> list[str]:
        """Return dotted paths of sub-structures or counters with the wrong type."""
        problems: list[str] = []

        legacy = family.get(const.DATA_FAMILY_LEGACY_HISTORY)
        if legacy is not None:
            if not isinstance(legacy, Mapping):
                problems.append(const.DATA_FAMILY_LEGACY_HISTORY)
            else:
                problems.extend(
                    f"{const.DATA_FAMILY_LEGACY_HISTORY}.{field}"
                    for field in _LEGACY_COUNTER_FIELDS
                    if not BattleScanEngine.is_valid_counter(legacy.get(field))
                )

        battle = family.get(const.DATA_FAMILY_BATTLE)
        if battle is None:
            return problems
        if not isinstance(battle, Mapping):
            problems.append(const.DATA_FAMILY_BATTLE)
            return problems

        enabled = battle.get(const.DATA_BATTLE_ENABLED)
        if enabled is not None and not isinstance(enabled, bool):
            problems.append(f"{const.DATA_FAMILY_BATTLE}.{const.DATA_BATTLE_ENABLED}")

        history = battle.get(const.DATA_BATTLE_HISTORY)
        history_path = f"{const.DATA_FAMILY_BATTLE}.{const.DATA_BATTLE_HISTORY}"
        if history is not None:
            if not isinstance(history, Mapping):
                problems.append(history_path)
            else:
                problems.extend(
                    f"{history_path}.{field}"
                    for field in _HISTORY_COUNTER_FIELDS
                    if not BattleScanEngine.is_valid_counter(history.get(field))
                )
        return problems

    # ────────────────────────────────────────────────────────────────
    # Scanning
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def find_issues(family: Mapping[str, Any]) -> list[FamilyIssue]:
        """Classify one family record; returns issues in taxonomy order."""
        problems = BattleScanEngine.find_malformed_paths(family)
        if problems:
            return [
                {
                    const.ATTR_ISSUE_TYPE: const.ISSUE_MALFORMED_RECORD,
                    const.ATTR_SEVERITY: ISSUE_SEVERITY[const.ISSUE_MALFORMED_RECORD],
                    const.ATTR_DESCRIPTION: (
                        f"Malformed battle data at: {', '.join(problems)}"
                    ),
                    const.ATTR_PROBLEMS: problems,
                }
            ]  # type: ignore[list-item]

        view = BattleScanEngine.classify_shape(family)
        battle = view.battle
        history = view.history
        issues: list[dict[str, Any]] = []

        if view.legacy is not None and history is not None:
            legacy_counters = BattleScanEngine.legacy_counters(view.legacy)
            current_counters = BattleScanEngine.history_counters(history)
            issues.append(
                {
                    const.ATTR_ISSUE_TYPE: const.ISSUE_DUAL_STRUCTURE,
                    const.ATTR_SEVERITY: ISSUE_SEVERITY[const.ISSUE_DUAL_STRUCTURE],
                    const.ATTR_DESCRIPTION: (
                        "Has both legacy ({} battles) and current ({} battles) "
                        "history structures".format(
                            legacy_counters[const.DATA_HISTORY_TOTAL_BATTLES],
                            current_counters[const.DATA_HISTORY_TOTAL_BATTLES],
                        )
                    ),
                    const.ATTR_LEGACY_COUNTERS: legacy_counters,
                    const.ATTR_CURRENT_COUNTERS: current_counters,
                }
            )

        if battle is not None and not battle.get(const.DATA_BATTLE_ENABLED):
            has_current = bool(battle.get(const.DATA_BATTLE_CURRENT_WEEK))
            has_completed = bool(battle.get(const.DATA_BATTLE_COMPLETED_WEEK))
            if has_current or has_completed:
                issues.append(
                    {
                        const.ATTR_ISSUE_TYPE: const.ISSUE_INCONSISTENT_STATE,
                        const.ATTR_SEVERITY: ISSUE_SEVERITY[
                            const.ISSUE_INCONSISTENT_STATE
                        ],
                        const.ATTR_DESCRIPTION: (
                            "Battle disabled but contains active battle data"
                        ),
                        const.ATTR_HAS_CURRENT_WEEK: has_current,
                        const.ATTR_HAS_COMPLETED_WEEK: has_completed,
                        const.ATTR_HAS_BATTLE_DATA: BattleScanEngine.has_battle_data(
                            battle
                        ),
                    }
                )

        if (
            battle is not None
            and battle.get(const.DATA_BATTLE_ENABLED)
            and history is None
        ):
            issues.append(
                {
                    const.ATTR_ISSUE_TYPE: const.ISSUE_MISSING_HISTORY,
                    const.ATTR_SEVERITY: ISSUE_SEVERITY[const.ISSUE_MISSING_HISTORY],
                    const.ATTR_DESCRIPTION: (
                        "Battle enabled but missing history structure"
                    ),
                }
            )

        if history is not None:
            total = history.get(const.DATA_HISTORY_TOTAL_BATTLES)
            calculated = BattleScanEngine.win_sum(history)
            if total != calculated:
                issues.append(
                    {
                        const.ATTR_ISSUE_TYPE: const.ISSUE_INVALID_MATH,
                        const.ATTR_SEVERITY: ISSUE_SEVERITY[const.ISSUE_INVALID_MATH],
                        const.ATTR_DESCRIPTION: (
                            f"Math error: total_battles ({total}) != sum of "
                            f"wins and ties ({calculated})"
                        ),
                        const.ATTR_TOTAL_BATTLES: total,
                        const.ATTR_CALCULATED_TOTAL: calculated,
                        const.ATTR_BREAKDOWN: {
                            field: history.get(field) or 0
                            for field in const.BATTLE_WIN_COUNTERS
                        },
                    }
                )

        if view.shape == BATTLE_SHAPE_LEGACY and view.legacy is not None:
            legacy_counters = BattleScanEngine.legacy_counters(view.legacy)
            issues.append(
                {
                    const.ATTR_ISSUE_TYPE: const.ISSUE_ORPHANED_DATA,
                    const.ATTR_SEVERITY: ISSUE_SEVERITY[const.ISSUE_ORPHANED_DATA],
                    const.ATTR_DESCRIPTION: (
                        "Has legacy battle history but no current battle structure"
                    ),
                    const.ATTR_LEGACY_COUNTERS: legacy_counters,
                }
            )

        return issues  # type: ignore[return-value]

    @staticmethod
    def scan_family(
        family_id: str, family: Mapping[str, Any]
    ) -> FamilyIssueReport | None:
        """Return the issue report for one family, or None when healthy."""
        issues = BattleScanEngine.find_issues(family)
        if not issues:
            return None

        linked_students = family.get(const.DATA_FAMILY_LINKED_STUDENTS)
        linked_parents = family.get(const.DATA_FAMILY_LINKED_PARENTS)
        return {
            const.ATTR_FAMILY_ID: family_id,
            const.ATTR_FAMILY_NAME: family.get(const.DATA_FAMILY_NAME)
            or const.DEFAULT_FAMILY_NAME,
            const.ATTR_LINKED_STUDENTS: list(linked_students)
            if isinstance(linked_students, list)
            else [],
            const.ATTR_LINKED_PARENTS: list(linked_parents)
            if isinstance(linked_parents, list)
            else [],
            const.ATTR_ISSUES: issues,
        }  # type: ignore[return-value]

    @staticmethod
    def scan_families(families: Mapping[str, Any]) -> list[FamilyIssueReport]:
        """Scan every family; returns reports only for families with issues."""
        reports: list[FamilyIssueReport] = []
        for family_id, family in families.items():
            if not isinstance(family, Mapping):
                # A family document that is not a mapping cannot be repaired here
                const.LOGGER.warning(
                    "WARNING: Family '%s' is not a document (%s), skipping",
                    family_id,
                    type(family).__name__,
                )
                continue
            report = BattleScanEngine.scan_family(family_id, family)
            if report is not None:
                reports.append(report)
        return reports

    @staticmethod
    def summarize(reports: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
        """Count families, issue types and severities across scan reports."""
        issue_counts = {issue_type: 0 for issue_type in ISSUE_ORDER}
        severity_counts = {
            const.SEVERITY_HIGH: 0,
            const.SEVERITY_MEDIUM: 0,
            const.SEVERITY_LOW: 0,
        }
        families = 0
        for report in reports:
            families += 1
            for issue in report[const.ATTR_ISSUES]:
                issue_counts[issue[const.ATTR_ISSUE_TYPE]] += 1
                severity_counts[issue[const.ATTR_SEVERITY]] += 1

        return {
            "status": const.HEALTH_STATE_HEALTHY
            if families == 0
            else const.HEALTH_STATE_ISSUES_FOUND,
            const.ATTR_FAMILIES_WITH_ISSUES: families,
            const.ATTR_ISSUE_COUNTS: issue_counts,
            "severity_counts": severity_counts,
        }

    # ────────────────────────────────────────────────────────────────
    # Student Link Drift
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def student_family_id(student: Mapping[str, Any]) -> str | None:
        """Return the family a student points at (record first, then settings)."""
        family_id = student.get(const.DATA_STUDENT_FAMILY_ID)
        if family_id:
            return family_id
        settings = student.get(const.DATA_STUDENT_FAMILY_BATTLE_SETTINGS)
        if isinstance(settings, Mapping):
            return settings.get(const.DATA_STUDENT_FAMILY_ID) or None
        return None

    @staticmethod
    def find_student_link_drift(
        families: Mapping[str, Any],
        students: Iterable[tuple[StudentRef, Mapping[str, Any]]],
    ) -> list[StudentLinkDrift]:
        """Report students whose battle settings disagree with their family.

        A student drifts when its `family_battle_settings.enabled` differs from
        the family's `family_battle.enabled`, or when the settings point at a
        different family. Students without a family, or whose family does not
        exist, are not reported here.
        """
        drift: list[StudentLinkDrift] = []
        for ref, student in students:
            family_id = BattleScanEngine.student_family_id(student)
            family = families.get(family_id) if family_id else None
            if not isinstance(family, Mapping):
                continue

            battle = family.get(const.DATA_FAMILY_BATTLE)
            family_enabled = bool(
                isinstance(battle, Mapping) and battle.get(const.DATA_BATTLE_ENABLED)
            )
            settings = student.get(const.DATA_STUDENT_FAMILY_BATTLE_SETTINGS)
            settings = settings if isinstance(settings, Mapping) else {}
            student_enabled = settings.get(const.DATA_BATTLE_ENABLED)
            settings_family = settings.get(const.DATA_STUDENT_FAMILY_ID)

            if bool(student_enabled) == family_enabled and settings_family in (
                None,
                family_id,
            ):
                continue

            drift.append(
                {
                    const.ATTR_STUDENT_ID: ref[const.ATTR_STUDENT_ID],
                    const.ATTR_SCHOOL_ID: ref[const.ATTR_SCHOOL_ID],
                    const.ATTR_ENTITY_ID: ref[const.ATTR_ENTITY_ID],
                    const.ATTR_FAMILY_ID: family_id,
                    const.ATTR_FAMILY_ENABLED: family_enabled,
                    const.ATTR_STUDENT_ENABLED: student_enabled,
                    const.ATTR_STUDENT_FAMILY_ID: settings_family,
                }  # type: ignore[typeddict-item]
            )
        return drift
