# File: helpers/entity_helpers.py
"""Config entry and dispatcher helper functions for Lux Libris.

All functions here require a `hass` object or build names consumed by
Home Assistant's dispatcher.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.helpers.device_registry import DeviceEntryType, DeviceInfo

from .. import const

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from ..coordinator import LuxLibrisDataCoordinator


# ==============================================================================
# Event Signal Helpers (Manager Communication)
# ==============================================================================


def get_event_signal(entry_id: str, suffix: str) -> str:
    """Build instance-scoped event signal name for dispatcher.

    Each config entry gets its own signal namespace, so managers of two
    instances never hear each other.

    Format: 'luxlibris_{entry_id}_{suffix}'

    Args:
        entry_id: ConfigEntry.entry_id from coordinator
        suffix: Signal suffix constant from const.py (e.g., SIGNAL_SUFFIX_PHASE_CHANGED)

    Returns:
        Fully qualified signal name scoped to this integration instance

    Example:
        >>> get_event_signal("abc123", const.SIGNAL_SUFFIX_PHASE_CHANGED)
        'luxlibris_abc123_phase_changed'
    """
    return f"{const.DOMAIN}_{entry_id}_{suffix}"


# ==============================================================================
# Config Entry Lookup
# ==============================================================================


def get_first_luxlibris_entry(hass: HomeAssistant) -> str | None:
    """Get the entry_id of the first loaded Lux Libris config entry.

    Args:
        hass: HomeAssistant instance

    Returns:
        Config entry ID string, or None if no loaded entries
    """
    entries = hass.config_entries.async_entries(const.DOMAIN)
    for entry in entries:
        if entry.state.name == "LOADED":
            return entry.entry_id
    return None


def get_coordinator(hass: HomeAssistant, entry_id: str) -> LuxLibrisDataCoordinator:
    """Return the coordinator stored for a loaded config entry."""
    return hass.data[const.DOMAIN][entry_id][const.COORDINATOR]


# ==============================================================================
# Device Info
# ==============================================================================


def create_program_device_info(config_entry: ConfigEntry) -> DeviceInfo:
    """Create device info for the program-wide entities.

    Args:
        config_entry: Config entry for this integration instance

    Returns:
        DeviceInfo dict for the program device
    """
    return DeviceInfo(
        identifiers={(const.DOMAIN, f"{config_entry.entry_id}_program")},
        name=f"Program ({config_entry.title})",
        manufacturer=const.LUXLIBRIS_TITLE,
        model="Reading Program",
        entry_type=DeviceEntryType.SERVICE,
    )
