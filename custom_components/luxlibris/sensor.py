# File: sensor.py
"""Sensors for the Lux Libris integration.

Sensors Defined in This File (2):

01. ProgramPhaseSensor
02. FamilyBattleHealthSensor
"""

from typing import Any

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from . import const
from .coordinator import LuxLibrisDataCoordinator
from .engines.phase_engine import PhaseEngine
from .entity import LuxLibrisCoordinatorEntity
from .helpers.entity_helpers import create_program_device_info


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities
):
    """Set up sensors for Lux Libris integration."""
    coordinator: LuxLibrisDataCoordinator = hass.data[const.DOMAIN][entry.entry_id][
        const.COORDINATOR
    ]

    async_add_entities(
        [
            ProgramPhaseSensor(coordinator, entry),
            FamilyBattleHealthSensor(coordinator, entry),
        ]
    )


class ProgramPhaseSensor(LuxLibrisCoordinatorEntity, SensorEntity):
    """Sensor showing the current program phase.

    State is the phase key. Attributes carry the academic year, the next
    phase on the annual cycle, a pending rollover flag and the per-feature
    permissions of the phase.
    """

    _attr_has_entity_name = True
    _attr_translation_key = const.SENSOR_KEY_PROGRAM_PHASE

    def __init__(self, coordinator: LuxLibrisDataCoordinator, entry: ConfigEntry):
        """Initialize the ProgramPhaseSensor."""
        super().__init__(coordinator)
        self._entry = entry
        self._attr_unique_id = f"{entry.entry_id}_{const.SENSOR_KEY_PROGRAM_PHASE}"
        self._attr_device_info = create_program_device_info(entry)
        self.entity_id = f"sensor.{const.DOMAIN}_{const.SENSOR_KEY_PROGRAM_PHASE}"

    @property
    def native_value(self) -> str:
        """Return the current phase."""
        return self.coordinator.phase_manager.phase

    @property
    def icon(self) -> str:
        """Return the icon of the current phase."""
        return PhaseEngine.phase_info(self.coordinator.phase_manager.phase)["icon"]

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the academic year, next phase and permissions."""
        view = self.coordinator.phase_manager.get_phase()
        return {
            const.ATTR_ACADEMIC_YEAR: view[const.ATTR_ACADEMIC_YEAR],
            const.ATTR_NEXT_PHASE: view[const.ATTR_NEXT_PHASE],
            const.ATTR_ROLLOVER_PENDING: view[const.ATTR_ROLLOVER_PENDING],
            "name": view["name"],
            "message": view["message"],
            "permissions": view["permissions"],
        }


class FamilyBattleHealthSensor(LuxLibrisCoordinatorEntity, SensorEntity):
    """Sensor summarizing the family battle health scan."""

    _attr_has_entity_name = True
    _attr_translation_key = const.SENSOR_KEY_FAMILY_HEALTH
    _attr_icon = "mdi:shield-sword-outline"

    def __init__(self, coordinator: LuxLibrisDataCoordinator, entry: ConfigEntry):
        """Initialize the FamilyBattleHealthSensor."""
        super().__init__(coordinator)
        self._entry = entry
        self._attr_unique_id = f"{entry.entry_id}_{const.SENSOR_KEY_FAMILY_HEALTH}"
        self._attr_device_info = create_program_device_info(entry)
        self.entity_id = f"sensor.{const.DOMAIN}_{const.SENSOR_KEY_FAMILY_HEALTH}"

    @property
    def native_value(self) -> str:
        """Return healthy or issues_found."""
        return self.coordinator.family_battle_manager.health_summary()["status"]

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return the per-issue counts of the latest scan."""
        summary = self.coordinator.family_battle_manager.health_summary()
        return {
            const.ATTR_FAMILIES_WITH_ISSUES: summary[const.ATTR_FAMILIES_WITH_ISSUES],
            const.ATTR_ISSUE_COUNTS: summary[const.ATTR_ISSUE_COUNTS],
            "severity_counts": summary["severity_counts"],
        }
