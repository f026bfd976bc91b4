# File: coordinator.py
"""Coordinator for the Lux Libris integration.

Owns the in-memory program document, the domain managers, and persistence.
Managers read and swap records in `_data`; the coordinator saves once per
operation through `_persist()`.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from . import const
from .managers import FamilyBattleManager, PhaseManager, StreakManager, SystemManager

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .store import LuxLibrisStore


class LuxLibrisDataCoordinator(DataUpdateCoordinator):
    """Coordinator for Lux Libris integration.

    Boot cascade:
    1. Domain managers subscribe to their signals
    2. SystemManager.ensure_data_integrity() bootstraps the document and
       emits DATA_READY
    3. SystemManager.async_setup() registers the midnight timer and runs the
       startup catch-up
    """

    def __init__(
        self,
        hass: HomeAssistant,
        config_entry: ConfigEntry,
        store: LuxLibrisStore,
    ) -> None:
        """Initialize the LuxLibrisDataCoordinator."""
        update_interval_minutes = config_entry.options.get(
            const.CONF_UPDATE_INTERVAL, const.DEFAULT_UPDATE_INTERVAL
        )

        super().__init__(
            hass,
            const.LOGGER,
            config_entry=config_entry,
            name=f"{const.DOMAIN}{const.COORDINATOR_SUFFIX}",
            update_interval=timedelta(minutes=update_interval_minutes),
        )
        self.config_entry = config_entry
        self.store = store
        self._data: dict[str, Any] = {}

        self.system_manager = SystemManager(hass, self)
        self.family_battle_manager = FamilyBattleManager(hass, self)
        self.streak_manager = StreakManager(hass, self)
        self.phase_manager = PhaseManager(hass, self)

    # -------------------------------------------------------------------------------------
    # Options
    # -------------------------------------------------------------------------------------

    @property
    def session_completion_minutes(self) -> int:
        """Minimum duration for a session without a `completed` flag to count."""
        return int(
            self.config_entry.options.get(
                const.CONF_SESSION_COMPLETION_MINUTES,
                const.DEFAULT_SESSION_COMPLETION_MINUTES,
            )
        )

    @property
    def bulk_concurrency(self) -> int:
        """Maximum number of bulk units processed at once."""
        return int(
            self.config_entry.options.get(
                const.CONF_BULK_CONCURRENCY, const.DEFAULT_BULK_CONCURRENCY
            )
        )

    @property
    def auto_phase_transitions(self) -> bool:
        """Whether the midnight tick applies scheduled phase transitions."""
        return bool(
            self.config_entry.options.get(
                const.CONF_AUTO_PHASE_TRANSITIONS, const.DEFAULT_AUTO_PHASE_TRANSITIONS
            )
        )

    # -------------------------------------------------------------------------------------
    # Data Accessors
    # -------------------------------------------------------------------------------------

    @property
    def program_config(self) -> dict[str, Any]:
        """Return the program config singleton."""
        return self._data.setdefault(const.DATA_PROGRAM_CONFIG, {})

    @property
    def entities_data(self) -> dict[str, Any]:
        """Return the entity -> school tenancy tree."""
        return self._data.setdefault(const.DATA_ENTITIES, {})

    @property
    def families_data(self) -> dict[str, Any]:
        """Return the family collection."""
        return self._data.setdefault(const.DATA_FAMILIES, {})

    # -------------------------------------------------------------------------------------
    # Periodic + First Refresh
    # -------------------------------------------------------------------------------------

    async def _async_update_data(self):
        """Periodic update."""
        if not isinstance(self._data.get(const.DATA_PROGRAM_CONFIG), dict):
            raise UpdateFailed("Error updating Lux Libris data: program config missing")
        return self._data

    async def async_config_entry_first_refresh(self):
        """Load from storage and run the boot cascade."""
        self._data = self.store.data
        current_version = self._data.get(const.DATA_META, {}).get(
            const.DATA_META_SCHEMA_VERSION, const.DEFAULT_ZERO
        )

        await self.family_battle_manager.async_setup()
        await self.streak_manager.async_setup()
        await self.phase_manager.async_setup()

        await self.system_manager.ensure_data_integrity(current_version)
        await self.system_manager.async_setup()

        self._persist()
        await super().async_config_entry_first_refresh()

    # -------------------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------------------

    def _persist(self):
        """Save to persistent storage."""
        self.store.set_data(self._data)
        self.hass.add_job(self.store.async_save)

    def _persist_and_update(self):
        """Save to persistent storage and refresh listening entities."""
        self._persist()
        self.async_update_listeners()
