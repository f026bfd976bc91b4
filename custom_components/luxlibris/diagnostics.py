"""Diagnostics support for Lux Libris integration.

The diagnostics JSON returns the raw storage document, so a copy can be
inspected offline or fed to the repair script renderer.
"""

from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from . import const
from .coordinator import LuxLibrisDataCoordinator


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a config entry.

    Alongside the raw document, includes the current family health summary
    and phase view so a report can be read without rescanning.
    """
    coordinator: LuxLibrisDataCoordinator = hass.data[const.DOMAIN][entry.entry_id][
        const.COORDINATOR
    ]

    return {
        "data": coordinator.store.data,
        "family_health": coordinator.family_battle_manager.health_summary(),
        "phase": coordinator.phase_manager.get_phase(),
    }
