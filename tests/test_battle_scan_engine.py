"""Tests for BattleScanEngine - pure logic, no HA fixtures needed.

These tests validate the family battle issue taxonomy: detection, detail
payloads, ordering and the health summary.
"""

from __future__ import annotations

import copy
from typing import Any

import pytest

from custom_components.luxlibris import const
from custom_components.luxlibris.engines.battle_repair_engine import (
    default_battle,
    default_history,
)
from custom_components.luxlibris.engines.battle_scan_engine import (
    BATTLE_SHAPE_BOTH,
    BATTLE_SHAPE_CURRENT,
    BATTLE_SHAPE_LEGACY,
    BATTLE_SHAPE_NEITHER,
    ISSUE_ORDER,
    BattleScanEngine,
)
from tests.helpers import SCENARIO_PROGRAM, load_scenario


def _history(total: int, children: int, parents: int, ties: int) -> dict[str, Any]:
    return {
        **default_history(),
        const.DATA_HISTORY_TOTAL_BATTLES: total,
        const.DATA_HISTORY_CHILDREN_WINS: children,
        const.DATA_HISTORY_PARENT_WINS: parents,
        const.DATA_HISTORY_TIES: ties,
    }


def _family(**fields: Any) -> dict[str, Any]:
    return {const.DATA_FAMILY_NAME: "Test Family", **fields}


def _issue_types(family: dict[str, Any]) -> list[str]:
    return [
        issue[const.ATTR_ISSUE_TYPE] for issue in BattleScanEngine.find_issues(family)
    ]


@pytest.fixture
def scenario_families() -> dict[str, Any]:
    """Return the families of the program scenario."""
    return load_scenario(SCENARIO_PROGRAM)[const.DATA_FAMILIES]


# =============================================================================
# TEST: SHAPE
# =============================================================================


class TestShape:
    """Test battle shape classification."""

    def test_shapes(self) -> None:
        legacy = {const.DATA_LEGACY_BATTLES: 1}
        assert (
            BattleScanEngine.classify_shape(_family()).shape == BATTLE_SHAPE_NEITHER
        )
        assert (
            BattleScanEngine.classify_shape(
                _family(**{const.DATA_FAMILY_LEGACY_HISTORY: legacy})
            ).shape
            == BATTLE_SHAPE_LEGACY
        )
        assert (
            BattleScanEngine.classify_shape(
                _family(**{const.DATA_FAMILY_BATTLE: default_battle()})
            ).shape
            == BATTLE_SHAPE_CURRENT
        )
        assert (
            BattleScanEngine.classify_shape(
                _family(
                    **{
                        const.DATA_FAMILY_BATTLE: default_battle(),
                        const.DATA_FAMILY_LEGACY_HISTORY: legacy,
                    }
                )
            ).shape
            == BATTLE_SHAPE_BOTH
        )


# =============================================================================
# TEST: HEALTHY RECORDS
# =============================================================================


class TestHealthy:
    """Records that must scan clean."""

    def test_no_battle_at_all(self) -> None:
        """A family that never battled is healthy."""
        assert BattleScanEngine.find_issues(_family()) == []

    def test_fresh_default_battle(self) -> None:
        assert (
            BattleScanEngine.find_issues(
                _family(**{const.DATA_FAMILY_BATTLE: default_battle()})
            )
            == []
        )

    def test_enabled_battle_with_consistent_history(self) -> None:
        battle = {**default_battle(), const.DATA_BATTLE_ENABLED: True}
        battle[const.DATA_BATTLE_HISTORY] = _history(5, 3, 1, 1)
        assert BattleScanEngine.find_issues(_family(family_battle=battle)) == []

    def test_disabled_battle_without_history(self) -> None:
        """Disabled battles do not need a history."""
        battle = {
            const.DATA_BATTLE_ENABLED: False,
            const.DATA_BATTLE_CURRENT_WEEK: None,
            const.DATA_BATTLE_COMPLETED_WEEK: None,
        }
        assert BattleScanEngine.find_issues(_family(family_battle=battle)) == []


# =============================================================================
# TEST: TAXONOMY
# =============================================================================


class TestTaxonomy:
    """Each issue type is detected with its detail payload."""

    def test_dual_structure(self, scenario_families: dict[str, Any]) -> None:
        issues = BattleScanEngine.find_issues(scenario_families["family_dual"])
        assert [issue[const.ATTR_ISSUE_TYPE] for issue in issues] == [
            const.ISSUE_DUAL_STRUCTURE
        ]
        issue = issues[0]
        assert issue[const.ATTR_SEVERITY] == const.SEVERITY_HIGH
        assert issue[const.ATTR_LEGACY_COUNTERS] == {
            const.DATA_HISTORY_TOTAL_BATTLES: 6,
            const.DATA_HISTORY_CHILDREN_WINS: 3,
            const.DATA_HISTORY_PARENT_WINS: 1,
            const.DATA_HISTORY_TIES: 1,
        }
        assert issue[const.ATTR_CURRENT_COUNTERS][const.DATA_HISTORY_TOTAL_BATTLES] == 4
        assert "6 battles" in issue[const.ATTR_DESCRIPTION]

    def test_inconsistent_state_with_data(
        self, scenario_families: dict[str, Any]
    ) -> None:
        issues = BattleScanEngine.find_issues(scenario_families["family_inconsistent"])
        assert len(issues) == 1
        issue = issues[0]
        assert issue[const.ATTR_ISSUE_TYPE] == const.ISSUE_INCONSISTENT_STATE
        assert issue[const.ATTR_SEVERITY] == const.SEVERITY_MEDIUM
        assert issue[const.ATTR_HAS_CURRENT_WEEK] is True
        assert issue[const.ATTR_HAS_COMPLETED_WEEK] is False
        assert issue[const.ATTR_HAS_BATTLE_DATA] is True

    def test_inconsistent_state_with_empty_week(
        self, scenario_families: dict[str, Any]
    ) -> None:
        """A week pointer without minutes still counts as battle data."""
        issues = BattleScanEngine.find_issues(scenario_families["family_stale_week"])
        assert len(issues) == 1
        assert issues[0][const.ATTR_HAS_BATTLE_DATA] is True

    def test_has_battle_data_signals(self) -> None:
        battle = default_battle()
        assert BattleScanEngine.has_battle_data(battle) is False
        assert BattleScanEngine.has_battle_data(
            {**battle, const.DATA_BATTLE_COMPLETED_WEEK: {"week_id": "2025-W09"}}
        ) is True
        assert BattleScanEngine.has_battle_data(
            {**battle, const.DATA_BATTLE_CHILDREN: {const.DATA_BATTLE_TOTAL: 30}}
        ) is True

    def test_missing_history(self, scenario_families: dict[str, Any]) -> None:
        assert _issue_types(scenario_families["family_missing_history"]) == [
            const.ISSUE_MISSING_HISTORY
        ]

    def test_invalid_math(self, scenario_families: dict[str, Any]) -> None:
        issues = BattleScanEngine.find_issues(scenario_families["family_bad_math"])
        assert len(issues) == 1
        issue = issues[0]
        assert issue[const.ATTR_ISSUE_TYPE] == const.ISSUE_INVALID_MATH
        assert issue[const.ATTR_TOTAL_BATTLES] == 10
        assert issue[const.ATTR_CALCULATED_TOTAL] == 6
        assert issue[const.ATTR_BREAKDOWN] == {
            const.DATA_HISTORY_CHILDREN_WINS: 3,
            const.DATA_HISTORY_PARENT_WINS: 2,
            const.DATA_HISTORY_TIES: 1,
        }

    def test_invalid_math_when_total_missing(self) -> None:
        """A missing total with non-zero wins is a math error."""
        history = _history(0, 2, 0, 0)
        del history[const.DATA_HISTORY_TOTAL_BATTLES]
        battle = {**default_battle(), const.DATA_BATTLE_HISTORY: history}
        assert _issue_types(_family(family_battle=battle)) == [
            const.ISSUE_INVALID_MATH
        ]

    def test_orphaned_data(self, scenario_families: dict[str, Any]) -> None:
        issues = BattleScanEngine.find_issues(scenario_families["family_orphaned"])
        assert [issue[const.ATTR_ISSUE_TYPE] for issue in issues] == [
            const.ISSUE_ORPHANED_DATA
        ]
        assert issues[0][const.ATTR_SEVERITY] == const.SEVERITY_LOW
        assert issues[0][const.ATTR_LEGACY_COUNTERS][
            const.DATA_HISTORY_TOTAL_BATTLES
        ] == 5

    def test_malformed_battle(self, scenario_families: dict[str, Any]) -> None:
        issues = BattleScanEngine.find_issues(scenario_families["family_malformed"])
        assert len(issues) == 1
        assert issues[0][const.ATTR_ISSUE_TYPE] == const.ISSUE_MALFORMED_RECORD
        assert issues[0][const.ATTR_PROBLEMS] == [const.DATA_FAMILY_BATTLE]

    @pytest.mark.parametrize(
        ("history_field", "value"),
        [
            (const.DATA_HISTORY_TOTAL_BATTLES, -1),
            (const.DATA_HISTORY_CHILDREN_WINS, "3"),
            (const.DATA_HISTORY_TIES, 1.5),
            (const.DATA_HISTORY_PARENT_WINS, True),
        ],
    )
    def test_malformed_counters(self, history_field: str, value: Any) -> None:
        """Counters must be non-negative integers."""
        battle = {**default_battle(), const.DATA_BATTLE_HISTORY: default_history()}
        battle[const.DATA_BATTLE_HISTORY][history_field] = value
        issues = BattleScanEngine.find_issues(_family(family_battle=battle))
        assert issues[0][const.ATTR_PROBLEMS] == [
            f"{const.DATA_FAMILY_BATTLE}.{const.DATA_BATTLE_HISTORY}.{history_field}"
        ]

    def test_multiple_issues_in_taxonomy_order(self) -> None:
        """A record can carry several issues; they come back in order."""
        battle = {
            const.DATA_BATTLE_ENABLED: False,
            const.DATA_BATTLE_CURRENT_WEEK: {"week_id": "2025-W18"},
            const.DATA_BATTLE_COMPLETED_WEEK: None,
            const.DATA_BATTLE_HISTORY: _history(9, 1, 1, 1),
        }
        family = _family(
            family_battle=battle,
            family_battle_history={const.DATA_LEGACY_BATTLES: 2},
        )
        types = _issue_types(family)
        assert types == [
            const.ISSUE_DUAL_STRUCTURE,
            const.ISSUE_INCONSISTENT_STATE,
            const.ISSUE_INVALID_MATH,
        ]
        assert types == sorted(types, key=ISSUE_ORDER.index)

    def test_scan_never_mutates(self, scenario_families: dict[str, Any]) -> None:
        before = copy.deepcopy(scenario_families)
        BattleScanEngine.scan_families(scenario_families)
        assert scenario_families == before


# =============================================================================
# TEST: REPORTS & SUMMARY
# =============================================================================


class TestReports:
    """Test per-family reports and the summary."""

    def test_scan_families_reports_only_unhealthy(
        self, scenario_families: dict[str, Any]
    ) -> None:
        reports = BattleScanEngine.scan_families(scenario_families)
        ids = [report[const.ATTR_FAMILY_ID] for report in reports]
        assert "family_healthy" not in ids
        assert len(ids) == 7

    def test_report_carries_family_context(
        self, scenario_families: dict[str, Any]
    ) -> None:
        report = BattleScanEngine.scan_family(
            "family_dual", scenario_families["family_dual"]
        )
        assert report is not None
        assert report[const.ATTR_FAMILY_NAME] == "Nguyen Family"
        assert report[const.ATTR_LINKED_STUDENTS] == ["student_ben"]
        assert report[const.ATTR_LINKED_PARENTS] == ["parent_nguyen"]

    def test_unnamed_family_gets_default_name(self) -> None:
        report = BattleScanEngine.scan_family(
            "family_x", {const.DATA_FAMILY_BATTLE: "bad"}
        )
        assert report[const.ATTR_FAMILY_NAME] == const.DEFAULT_FAMILY_NAME

    def test_non_mapping_family_is_skipped(self) -> None:
        assert BattleScanEngine.scan_families({"family_x": "not-a-document"}) == []

    def test_summary(self, scenario_families: dict[str, Any]) -> None:
        summary = BattleScanEngine.summarize(
            BattleScanEngine.scan_families(scenario_families)
        )
        assert summary["status"] == const.HEALTH_STATE_ISSUES_FOUND
        assert summary[const.ATTR_FAMILIES_WITH_ISSUES] == 7
        assert summary[const.ATTR_ISSUE_COUNTS] == {
            const.ISSUE_MALFORMED_RECORD: 1,
            const.ISSUE_DUAL_STRUCTURE: 1,
            const.ISSUE_INCONSISTENT_STATE: 2,
            const.ISSUE_MISSING_HISTORY: 1,
            const.ISSUE_INVALID_MATH: 1,
            const.ISSUE_ORPHANED_DATA: 1,
        }
        assert summary["severity_counts"] == {
            const.SEVERITY_HIGH: 3,
            const.SEVERITY_MEDIUM: 3,
            const.SEVERITY_LOW: 1,
        }

    def test_summary_healthy(self) -> None:
        summary = BattleScanEngine.summarize([])
        assert summary["status"] == const.HEALTH_STATE_HEALTHY
        assert summary[const.ATTR_FAMILIES_WITH_ISSUES] == 0


# =============================================================================
# TEST: STUDENT LINK DRIFT
# =============================================================================


class TestStudentLinkDrift:
    """Test detection of student settings that disagree with the family."""

    def _students(self, *students: tuple[str, dict[str, Any]]):
        return [
            (
                {"entity_id": "diocese", "school_id": "school", "student_id": sid},
                student,
            )
            for sid, student in students
        ]

    def test_enabled_mismatch_is_reported(
        self, scenario_families: dict[str, Any]
    ) -> None:
        student = {
            const.DATA_STUDENT_FAMILY_ID: "family_dual",
            const.DATA_STUDENT_FAMILY_BATTLE_SETTINGS: {const.DATA_BATTLE_ENABLED: False},
        }
        drift = BattleScanEngine.find_student_link_drift(
            scenario_families, self._students(("student_ben", student))
        )
        assert len(drift) == 1
        assert drift[0][const.ATTR_FAMILY_ENABLED] is True
        assert drift[0][const.ATTR_STUDENT_ENABLED] is False
        assert drift[0][const.ATTR_SCHOOL_ID] == "school"

    def test_family_pointer_mismatch_is_reported(
        self, scenario_families: dict[str, Any]
    ) -> None:
        student = {
            const.DATA_STUDENT_FAMILY_ID: "family_healthy",
            const.DATA_STUDENT_FAMILY_BATTLE_SETTINGS: {
                const.DATA_BATTLE_ENABLED: True,
                const.DATA_STUDENT_FAMILY_ID: "family_other",
            },
        }
        drift = BattleScanEngine.find_student_link_drift(
            scenario_families, self._students(("student_ava", student))
        )
        assert drift[0][const.ATTR_STUDENT_FAMILY_ID] == "family_other"

    def test_family_id_falls_back_to_settings(
        self, scenario_families: dict[str, Any]
    ) -> None:
        student = {
            const.DATA_STUDENT_FAMILY_BATTLE_SETTINGS: {
                const.DATA_BATTLE_ENABLED: True,
                const.DATA_STUDENT_FAMILY_ID: "family_healthy",
            },
        }
        assert BattleScanEngine.student_family_id(student) == "family_healthy"
        assert (
            BattleScanEngine.find_student_link_drift(
                scenario_families, self._students(("student_ava", student))
            )
            == []
        )

    def test_unlinked_and_unknown_families_are_ignored(
        self, scenario_families: dict[str, Any]
    ) -> None:
        students = self._students(
            ("student_x", {}),
            ("student_y", {const.DATA_STUDENT_FAMILY_ID: "family_missing"}),
        )
        assert BattleScanEngine.find_student_link_drift(scenario_families, students) == []
