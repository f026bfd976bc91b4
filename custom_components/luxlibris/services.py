# File: services.py
"""Defines operator services for the Lux Libris integration.

These services expose the family health tools, streak recomputation, and the
program phase machine to scripts, automations and the developer tools. Every
service returns a response describing what it did.
"""

import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall, SupportsResponse
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError
from homeassistant.helpers import config_validation as cv

from . import const
from .coordinator import LuxLibrisDataCoordinator
from .engines.battle_repair_engine import RepairInvariantError
from .engines.battle_scan_engine import BattleScanEngine
from .engines.phase_engine import (
    InvalidPhaseTransitionError,
    PhaseEngine,
    RolloverIncompleteError,
)
from .helpers.entity_helpers import get_coordinator, get_first_luxlibris_entry
from .store import FamilyNotFoundError, StudentNotFoundError

# --- Service Schemas ---
FAMILY_IDS_SCHEMA = vol.Schema(
    {
        vol.Optional(const.FIELD_FAMILY_IDS): vol.All(cv.ensure_list, [cv.string]),
    }
)

RECOMPUTE_STREAK_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_STUDENT_ID): cv.string,
    }
)

TRANSITION_PHASE_SCHEMA = vol.Schema(
    {
        vol.Required(const.FIELD_TARGET_PHASE): vol.In(PhaseEngine.PHASES),
        vol.Optional(const.FIELD_REASON): cv.string,
    }
)

REASON_SCHEMA = vol.Schema(
    {
        vol.Optional(const.FIELD_REASON): cv.string,
    }
)

NO_FIELDS_SCHEMA = vol.Schema({})


def _get_coordinator(hass: HomeAssistant, service: str) -> LuxLibrisDataCoordinator:
    """Return the coordinator of the first loaded entry or raise."""
    entry_id = get_first_luxlibris_entry(hass)
    if not entry_id:
        const.LOGGER.warning("WARNING: %s: %s", service, const.MSG_NO_ENTRY_FOUND)
        raise HomeAssistantError(const.MSG_NO_ENTRY_FOUND)
    return get_coordinator(hass, entry_id)


def async_setup_services(hass: HomeAssistant):
    """Register Lux Libris services."""

    # --- Family Battle Health ---

    async def handle_scan_family_issues(call: ServiceCall):
        """Scan every family for battle issues."""
        coordinator = _get_coordinator(hass, const.SERVICE_SCAN_FAMILY_ISSUES)
        reports = coordinator.family_battle_manager.scan_families()
        summary = BattleScanEngine.summarize(reports)
        const.LOGGER.info(
            "INFO: Family scan: %s families with issues",
            summary[const.ATTR_FAMILIES_WITH_ISSUES],
        )
        return {"families": reports, "summary": summary}

    async def handle_repair_families(call: ServiceCall):
        """Repair the given families, or every family with issues."""
        coordinator = _get_coordinator(hass, const.SERVICE_REPAIR_FAMILIES)
        family_ids = call.data.get(const.FIELD_FAMILY_IDS)
        try:
            return await coordinator.family_battle_manager.async_repair_families(
                family_ids
            )
        except FamilyNotFoundError as err:
            const.LOGGER.warning("WARNING: Repair Families: %s", err)
            raise ServiceValidationError(str(err)) from err

    async def handle_generate_repair_script(call: ServiceCall):
        """Render the repair script without applying it."""
        coordinator = _get_coordinator(hass, const.SERVICE_GENERATE_REPAIR_SCRIPT)
        family_ids = call.data.get(const.FIELD_FAMILY_IDS)
        try:
            script = coordinator.family_battle_manager.generate_repair_script(
                family_ids
            )
        except FamilyNotFoundError as err:
            const.LOGGER.warning("WARNING: Generate Repair Script: %s", err)
            raise ServiceValidationError(str(err)) from err
        except RepairInvariantError as err:
            raise HomeAssistantError(str(err)) from err
        return {"script": script}

    async def handle_scan_student_links(call: ServiceCall):
        """Report students whose battle settings drifted from their family."""
        coordinator = _get_coordinator(hass, const.SERVICE_SCAN_STUDENT_LINKS)
        return {"students": coordinator.family_battle_manager.scan_student_links()}

    async def handle_repair_student_links(call: ServiceCall):
        """Align drifted student battle settings with their family."""
        coordinator = _get_coordinator(hass, const.SERVICE_REPAIR_STUDENT_LINKS)
        return await coordinator.family_battle_manager.async_repair_student_links()

    # --- Streaks ---

    async def handle_recompute_streak(call: ServiceCall):
        """Recompute one student's streak fields from the session log."""
        coordinator = _get_coordinator(hass, const.SERVICE_RECOMPUTE_STREAK)
        student_id = call.data[const.FIELD_STUDENT_ID]
        try:
            result = coordinator.streak_manager.recompute_streak(student_id)
        except StudentNotFoundError as err:
            const.LOGGER.warning("WARNING: Recompute Streak: %s", err)
            raise ServiceValidationError(str(err)) from err
        return dict(result)

    async def handle_migrate_all_students(call: ServiceCall):
        """Recompute every student's streak fields."""
        coordinator = _get_coordinator(hass, const.SERVICE_MIGRATE_ALL_STUDENTS)
        return dict(await coordinator.streak_manager.async_migrate_all_students())

    # --- Program Phase ---

    async def handle_get_phase(call: ServiceCall):
        """Return the current program phase."""
        coordinator = _get_coordinator(hass, const.SERVICE_GET_PHASE)
        return coordinator.phase_manager.get_phase()

    async def handle_transition_phase(call: ServiceCall):
        """Move the program along one allowed phase edge."""
        coordinator = _get_coordinator(hass, const.SERVICE_TRANSITION_PHASE)
        target_phase = call.data[const.FIELD_TARGET_PHASE]
        try:
            return await coordinator.phase_manager.async_transition_phase(
                target_phase, call.data.get(const.FIELD_REASON)
            )
        except InvalidPhaseTransitionError as err:
            const.LOGGER.warning("WARNING: Transition Phase: %s", err)
            raise ServiceValidationError(str(err)) from err
        except RolloverIncompleteError as err:
            const.LOGGER.error("ERROR: Transition Phase: %s", err)
            raise HomeAssistantError(str(err)) from err

    async def handle_close_program(call: ServiceCall):
        """Close the program from any phase."""
        coordinator = _get_coordinator(hass, const.SERVICE_CLOSE_PROGRAM)
        try:
            return await coordinator.phase_manager.async_close_program(
                call.data.get(const.FIELD_REASON)
            )
        except InvalidPhaseTransitionError as err:
            raise ServiceValidationError(str(err)) from err

    async def handle_rollover_academic_year(call: ServiceCall):
        """Roll the program into the next academic year."""
        coordinator = _get_coordinator(hass, const.SERVICE_ROLLOVER_ACADEMIC_YEAR)
        try:
            report = await coordinator.phase_manager.async_rollover_academic_year(
                call.data.get(const.FIELD_REASON)
            )
        except InvalidPhaseTransitionError as err:
            const.LOGGER.warning("WARNING: Rollover Academic Year: %s", err)
            raise ServiceValidationError(str(err)) from err
        return dict(report)

    async def handle_check_scheduled_phase(call: ServiceCall):
        """Apply the scheduled phase transition due today, if any."""
        coordinator = _get_coordinator(hass, const.SERVICE_CHECK_SCHEDULED_PHASE)
        return await coordinator.phase_manager.async_check_scheduled_phase()

    # --- Register Services ---
    registrations = (
        (
            const.SERVICE_SCAN_FAMILY_ISSUES,
            handle_scan_family_issues,
            NO_FIELDS_SCHEMA,
            SupportsResponse.ONLY,
        ),
        (
            const.SERVICE_REPAIR_FAMILIES,
            handle_repair_families,
            FAMILY_IDS_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            const.SERVICE_GENERATE_REPAIR_SCRIPT,
            handle_generate_repair_script,
            FAMILY_IDS_SCHEMA,
            SupportsResponse.ONLY,
        ),
        (
            const.SERVICE_SCAN_STUDENT_LINKS,
            handle_scan_student_links,
            NO_FIELDS_SCHEMA,
            SupportsResponse.ONLY,
        ),
        (
            const.SERVICE_REPAIR_STUDENT_LINKS,
            handle_repair_student_links,
            NO_FIELDS_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            const.SERVICE_RECOMPUTE_STREAK,
            handle_recompute_streak,
            RECOMPUTE_STREAK_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            const.SERVICE_MIGRATE_ALL_STUDENTS,
            handle_migrate_all_students,
            NO_FIELDS_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            const.SERVICE_GET_PHASE,
            handle_get_phase,
            NO_FIELDS_SCHEMA,
            SupportsResponse.ONLY,
        ),
        (
            const.SERVICE_TRANSITION_PHASE,
            handle_transition_phase,
            TRANSITION_PHASE_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            const.SERVICE_CLOSE_PROGRAM,
            handle_close_program,
            REASON_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            const.SERVICE_ROLLOVER_ACADEMIC_YEAR,
            handle_rollover_academic_year,
            REASON_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
        (
            const.SERVICE_CHECK_SCHEDULED_PHASE,
            handle_check_scheduled_phase,
            NO_FIELDS_SCHEMA,
            SupportsResponse.OPTIONAL,
        ),
    )
    for service, handler, schema, supports_response in registrations:
        hass.services.async_register(
            const.DOMAIN,
            service,
            handler,
            schema=schema,
            supports_response=supports_response,
        )

    const.LOGGER.info("INFO: Lux Libris services have been registered successfully")


async def async_unload_services(hass: HomeAssistant):
    """Unregister Lux Libris services when unloading the integration."""
    services = [
        const.SERVICE_SCAN_FAMILY_ISSUES,
        const.SERVICE_REPAIR_FAMILIES,
        const.SERVICE_GENERATE_REPAIR_SCRIPT,
        const.SERVICE_SCAN_STUDENT_LINKS,
        const.SERVICE_REPAIR_STUDENT_LINKS,
        const.SERVICE_RECOMPUTE_STREAK,
        const.SERVICE_MIGRATE_ALL_STUDENTS,
        const.SERVICE_GET_PHASE,
        const.SERVICE_TRANSITION_PHASE,
        const.SERVICE_CLOSE_PROGRAM,
        const.SERVICE_ROLLOVER_ACADEMIC_YEAR,
        const.SERVICE_CHECK_SCHEDULED_PHASE,
    ]

    for service in services:
        if hass.services.has_service(const.DOMAIN, service):
            hass.services.async_remove(const.DOMAIN, service)

    const.LOGGER.info("INFO: Lux Libris services have been unregistered")
