"""Service tests for the family battle health tools.

Uses the program scenario: seven unhealthy families (one per issue shape)
plus one healthy family, and one student whose battle settings drifted.
"""

# pylint: disable=redefined-outer-name  # Pytest fixtures shadow names

from typing import Any

import pytest
import yaml
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ServiceValidationError

from custom_components.luxlibris import const
from custom_components.luxlibris.engines.battle_scan_engine import BattleScanEngine
from tests.helpers import SetupResult, setup_from_yaml

UNHEALTHY_FAMILIES = {
    "family_dual",
    "family_inconsistent",
    "family_stale_week",
    "family_missing_history",
    "family_bad_math",
    "family_orphaned",
    "family_malformed",
}


@pytest.fixture
async def scenario(hass: HomeAssistant) -> SetupResult:
    """Boot the integration from the program scenario."""
    return await setup_from_yaml(hass)


async def _call(hass: HomeAssistant, service: str, data: dict[str, Any] | None = None):
    return await hass.services.async_call(
        const.DOMAIN,
        service,
        data or {},
        blocking=True,
        return_response=True,
    )


def _family(scenario: SetupResult, family_id: str) -> dict[str, Any]:
    return scenario.coordinator.families_data[family_id]


# =============================================================================
# TEST: SCAN
# =============================================================================


class TestScanFamilyIssues:
    """Test the scan_family_issues service."""

    async def test_scan_reports_every_unhealthy_family(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        response = await _call(hass, const.SERVICE_SCAN_FAMILY_ISSUES)

        reported = {report[const.ATTR_FAMILY_ID] for report in response["families"]}
        assert reported == UNHEALTHY_FAMILIES
        assert response["summary"]["status"] == const.HEALTH_STATE_ISSUES_FOUND
        assert response["summary"][const.ATTR_FAMILIES_WITH_ISSUES] == 7

    async def test_scan_does_not_write(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        await _call(hass, const.SERVICE_SCAN_FAMILY_ISSUES)
        assert const.DATA_FAMILY_LEGACY_HISTORY in _family(scenario, "family_dual")


# =============================================================================
# TEST: REPAIR
# =============================================================================


class TestRepairFamilies:
    """Test the repair_families service."""

    async def test_repair_all(self, hass: HomeAssistant, scenario: SetupResult) -> None:
        response = await _call(hass, const.SERVICE_REPAIR_FAMILIES)

        assert response["success"] == 7
        assert response["failed"] == 0
        assert response["errors"] == []
        assert response["skipped_healthy"] == 1
        assert set(response["repaired"]) == UNHEALTHY_FAMILIES

        # Every family now scans clean
        for family_id, family in scenario.coordinator.families_data.items():
            assert BattleScanEngine.find_issues(family) == [], family_id

        dual = _family(scenario, "family_dual")
        assert const.DATA_FAMILY_LEGACY_HISTORY not in dual
        assert dual[const.DATA_FAMILY_REPAIRED_BY] == const.REPAIRED_BY_HEALTH_TOOL
        assert dual[const.DATA_FAMILY_LAST_REPAIRED] is not None

    async def test_repair_twice_is_a_noop(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        await _call(hass, const.SERVICE_REPAIR_FAMILIES)
        before = {
            family_id: dict(family)
            for family_id, family in scenario.coordinator.families_data.items()
        }

        response = await _call(hass, const.SERVICE_REPAIR_FAMILIES)

        assert response["success"] == 0
        assert response["skipped_healthy"] == 8
        assert scenario.coordinator.families_data == before

    async def test_repair_selected_family_only(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        response = await _call(
            hass,
            const.SERVICE_REPAIR_FAMILIES,
            {const.FIELD_FAMILY_IDS: ["family_bad_math"]},
        )

        assert response["repaired"] == ["family_bad_math"]
        history = _family(scenario, "family_bad_math")[const.DATA_FAMILY_BATTLE][
            const.DATA_BATTLE_HISTORY
        ]
        assert history[const.DATA_HISTORY_TOTAL_BATTLES] == 6
        assert history[const.DATA_HISTORY_UNATTRIBUTED_BATTLES] == 4
        # Others untouched
        assert const.DATA_FAMILY_LEGACY_HISTORY in _family(scenario, "family_dual")

    async def test_repair_healthy_family_is_skipped(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        before = dict(_family(scenario, "family_healthy"))
        response = await _call(
            hass,
            const.SERVICE_REPAIR_FAMILIES,
            {const.FIELD_FAMILY_IDS: "family_healthy"},
        )

        assert response["success"] == 0
        assert response["skipped_healthy"] == 1
        assert _family(scenario, "family_healthy") == before

    async def test_repair_unknown_family_raises(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        with pytest.raises(ServiceValidationError, match="family_nope"):
            await _call(
                hass,
                const.SERVICE_REPAIR_FAMILIES,
                {const.FIELD_FAMILY_IDS: ["family_bad_math", "family_nope"]},
            )
        # Validation happens before any write
        history = _family(scenario, "family_bad_math")[const.DATA_FAMILY_BATTLE][
            const.DATA_BATTLE_HISTORY
        ]
        assert history[const.DATA_HISTORY_TOTAL_BATTLES] == 10

    async def test_one_failure_does_not_stop_the_batch(
        self,
        hass: HomeAssistant,
        scenario: SetupResult,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A family whose patch fails verification is reported, others repair."""
        from custom_components.luxlibris.engines.battle_repair_engine import (
            BattleRepairEngine,
        )

        monkeypatch.setitem(
            BattleRepairEngine.BUILDERS,
            const.ISSUE_INVALID_MATH,
            lambda issue, family, repaired_at: {},
        )
        response = await _call(hass, const.SERVICE_REPAIR_FAMILIES)

        assert response["success"] == 6
        assert response["failed"] == 1
        assert response["errors"][0].startswith("family_bad_math: ")
        history = _family(scenario, "family_bad_math")[const.DATA_FAMILY_BATTLE][
            const.DATA_BATTLE_HISTORY
        ]
        assert history[const.DATA_HISTORY_TOTAL_BATTLES] == 10


# =============================================================================
# TEST: REPAIR SCRIPT
# =============================================================================


class TestGenerateRepairScript:
    """Test the dry-run repair script service."""

    async def test_script_lists_repairs_without_applying(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        response = await _call(hass, const.SERVICE_GENERATE_REPAIR_SCRIPT)

        parsed = yaml.safe_load(response["script"])
        family_ids = {entry["family_id"] for entry in parsed["families"]}
        assert family_ids == UNHEALTHY_FAMILIES
        assert const.DATA_FAMILY_LEGACY_HISTORY in _family(scenario, "family_dual")

    async def test_script_for_healthy_family_is_empty(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        response = await _call(
            hass,
            const.SERVICE_GENERATE_REPAIR_SCRIPT,
            {const.FIELD_FAMILY_IDS: ["family_healthy"]},
        )
        assert yaml.safe_load(response["script"]) == {"families": []}

    async def test_script_unknown_family_raises(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        with pytest.raises(ServiceValidationError):
            await _call(
                hass,
                const.SERVICE_GENERATE_REPAIR_SCRIPT,
                {const.FIELD_FAMILY_IDS: ["family_nope"]},
            )


# =============================================================================
# TEST: STUDENT LINKS
# =============================================================================


class TestStudentLinks:
    """Test student battle-setting drift scan and repair."""

    async def test_scan_finds_drifted_student(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        response = await _call(hass, const.SERVICE_SCAN_STUDENT_LINKS)

        assert [drift[const.ATTR_STUDENT_ID] for drift in response["students"]] == [
            "student_ben"
        ]
        drift = response["students"][0]
        assert drift[const.ATTR_FAMILY_ID] == "family_dual"
        assert drift[const.ATTR_FAMILY_ENABLED] is True
        assert drift[const.ATTR_STUDENT_ENABLED] is False

    async def test_repair_aligns_settings(
        self, hass: HomeAssistant, scenario: SetupResult
    ) -> None:
        response = await _call(hass, const.SERVICE_REPAIR_STUDENT_LINKS)
        assert response == {"success": 1, "failed": 0, "errors": []}

        student = scenario.data[const.DATA_ENTITIES]["diocese_st_anne"][
            const.DATA_ENTITY_SCHOOLS
        ]["school_a"][const.DATA_SCHOOL_STUDENTS]["student_ben"]
        settings = student[const.DATA_STUDENT_FAMILY_BATTLE_SETTINGS]
        assert settings[const.DATA_BATTLE_ENABLED] is True
        assert settings[const.DATA_STUDENT_FAMILY_ID] == "family_dual"

        rescan = await _call(hass, const.SERVICE_SCAN_STUDENT_LINKS)
        assert rescan["students"] == []
