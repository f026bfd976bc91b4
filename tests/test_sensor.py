"""Tests for the Lux Libris sensors."""

from homeassistant.core import HomeAssistant

from custom_components.luxlibris import const
from tests.helpers import setup_from_yaml

PHASE_SENSOR = "sensor.luxlibris_program_phase"
HEALTH_SENSOR = "sensor.luxlibris_family_battle_health"


class TestProgramPhaseSensor:
    """Test the program phase sensor."""

    async def test_state_and_attributes(self, hass: HomeAssistant) -> None:
        await setup_from_yaml(hass)

        state = hass.states.get(PHASE_SENSOR)
        assert state is not None
        assert state.state == const.PHASE_RESULTS
        assert state.attributes[const.ATTR_ACADEMIC_YEAR] == "2025-26"
        assert state.attributes[const.ATTR_NEXT_PHASE] == const.PHASE_SETUP
        assert state.attributes[const.ATTR_ROLLOVER_PENDING] is False
        assert state.attributes["permissions"]["voting_results"] is True
        assert state.attributes["icon"] == "mdi:trophy"

    async def test_updates_after_rollover(self, hass: HomeAssistant) -> None:
        await setup_from_yaml(hass)

        await hass.services.async_call(
            const.DOMAIN,
            const.SERVICE_ROLLOVER_ACADEMIC_YEAR,
            {},
            blocking=True,
            return_response=True,
        )
        await hass.async_block_till_done()

        state = hass.states.get(PHASE_SENSOR)
        assert state.state == const.PHASE_TEACHER_SELECTION
        assert state.attributes[const.ATTR_ACADEMIC_YEAR] == "2026-27"
        assert state.attributes[const.ATTR_NEXT_PHASE] == const.PHASE_ACTIVE


class TestFamilyBattleHealthSensor:
    """Test the family battle health sensor."""

    async def test_reports_issues(self, hass: HomeAssistant) -> None:
        await setup_from_yaml(hass)

        state = hass.states.get(HEALTH_SENSOR)
        assert state is not None
        assert state.state == const.HEALTH_STATE_ISSUES_FOUND
        assert state.attributes[const.ATTR_FAMILIES_WITH_ISSUES] == 7
        assert state.attributes[const.ATTR_ISSUE_COUNTS][const.ISSUE_DUAL_STRUCTURE] == 1

    async def test_healthy_after_repair(self, hass: HomeAssistant) -> None:
        await setup_from_yaml(hass)

        await hass.services.async_call(
            const.DOMAIN,
            const.SERVICE_REPAIR_FAMILIES,
            {},
            blocking=True,
            return_response=True,
        )
        await hass.async_block_till_done()

        state = hass.states.get(HEALTH_SENSOR)
        assert state.state == const.HEALTH_STATE_HEALTHY
        assert state.attributes[const.ATTR_FAMILIES_WITH_ISSUES] == 0
