# File: managers/system_manager.py
"""System Manager for Lux Libris integration.

The "Janitor" - owns the daily heartbeat and the startup data integrity pass.

Architecture Principles:
- TIMER OWNER: the only place `async_track_time_change` is registered;
  domain managers subscribe to MIDNIGHT_ROLLOVER instead
- ISOLATED: No imports from other managers, only engines, helpers and const
- BOOT: ensure_data_integrity() runs BLOCKING before domain work starts

Signals Emitted:
- SIGNAL_SUFFIX_DATA_READY: document is bootstrapped and safe to read
- SIGNAL_SUFFIX_MIDNIGHT_ROLLOVER: local midnight (or startup catch-up)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from homeassistant.core import callback
from homeassistant.helpers.event import async_track_time_change
from homeassistant.util import dt as dt_util

from .. import const
from ..engines.phase_engine import PhaseEngine
from ..utils.dt_utils import dt_today_local
from .base_manager import BaseManager

if TYPE_CHECKING:
    from datetime import datetime

    from homeassistant.core import HomeAssistant

    from ..coordinator import LuxLibrisDataCoordinator


class SystemManager(BaseManager):
    """System Manager - The Janitor.

    Boot Cascade Role:
    - Coordinator calls ensure_data_integrity() (BLOCKING)
    - SystemManager fills missing sections and bootstraps the program config
    - SystemManager emits DATA_READY to trigger cascade
    """

    def __init__(
        self,
        hass: HomeAssistant,
        coordinator: LuxLibrisDataCoordinator,
    ) -> None:
        """Initialize system manager.

        Args:
            hass: Home Assistant instance
            coordinator: Parent coordinator
        """
        super().__init__(hass, coordinator)

    async def async_setup(self) -> None:
        """Set up the system manager.

        Registers the midnight timer and runs the startup catch-up for a
        midnight missed while Home Assistant was down.
        """
        unsub = async_track_time_change(
            self.hass,
            self._on_midnight_tick,
            **const.DEFAULT_DAILY_RESET_TIME,
        )
        self.coordinator.config_entry.async_on_unload(unsub)

        await self._run_startup_midnight_catchup()

        const.LOGGER.debug(
            "SystemManager initialized: midnight timer registered for entry %s",
            self.entry_id,
        )

    @callback
    def _on_midnight_tick(self, _: datetime) -> None:
        """Handle midnight timer tick.

        Emits MIDNIGHT_ROLLOVER signal for all domain managers to react:
        - StreakManager: refresh current streaks that lapsed overnight
        - PhaseManager: apply a scheduled phase transition when due
        """
        const.LOGGER.debug("SystemManager: Midnight rollover triggered")
        self.emit(const.SIGNAL_SUFFIX_MIDNIGHT_ROLLOVER)
        self._stamp_midnight_processed()

    def _stamp_midnight_processed(self) -> None:
        """Persist the timestamp of the most recent midnight rollover handling."""
        meta = self.coordinator._data.setdefault(const.DATA_META, {})
        meta[const.DATA_META_LAST_MIDNIGHT_PROCESSED] = dt_util.utcnow().isoformat()
        self.coordinator._persist()

    def _get_last_midnight_processed_utc(self) -> datetime | None:
        """Return parsed last-midnight timestamp in UTC, or None if unavailable."""
        meta = self.coordinator._data.get(const.DATA_META, {})
        raw_timestamp = meta.get(const.DATA_META_LAST_MIDNIGHT_PROCESSED)
        if not isinstance(raw_timestamp, str) or not raw_timestamp:
            return None

        parsed = dt_util.parse_datetime(raw_timestamp)
        if parsed is None:
            const.LOGGER.warning(
                "WARNING: Invalid last_midnight_processed timestamp '%s'",
                raw_timestamp,
            )
            return None

        return dt_util.as_utc(parsed)

    async def _run_startup_midnight_catchup(self) -> None:
        """Emit midnight rollover on startup when last processed day is stale."""
        local_today_midnight = dt_util.start_of_local_day()
        today_midnight_utc = dt_util.as_utc(local_today_midnight)

        last_processed_utc = self._get_last_midnight_processed_utc()
        if last_processed_utc is not None and last_processed_utc >= today_midnight_utc:
            const.LOGGER.debug(
                "SystemManager: Midnight catch-up not needed (last_processed=%s)",
                last_processed_utc.isoformat(),
            )
            return

        const.LOGGER.info(
            "INFO: Startup midnight catch-up triggered "
            "(last_processed=%s, today_midnight=%s)",
            last_processed_utc.isoformat() if last_processed_utc else "missing",
            today_midnight_utc.isoformat(),
        )
        self.emit(const.SIGNAL_SUFFIX_MIDNIGHT_ROLLOVER, catch_up=True)
        self._stamp_midnight_processed()

    # =========================================================================
    # Data Integrity (Boot Cascade - called from Coordinator)
    # =========================================================================

    async def ensure_data_integrity(self, current_version: int) -> None:
        """Ensure the document is complete before domain managers act on it.

        This is a BLOCKING call from Coordinator. No domain manager should
        see data until this method returns.

        Args:
            current_version: Schema version detected by Coordinator
        """
        const.LOGGER.debug(
            "SystemManager: Ensuring data integrity (schema version: %s)",
            current_version,
        )
        data = self.coordinator._data

        meta = data.setdefault(const.DATA_META, {})
        if current_version < const.SCHEMA_VERSION_CURRENT:
            meta[const.DATA_META_SCHEMA_VERSION] = const.SCHEMA_VERSION_CURRENT
        meta.setdefault(const.DATA_META_LAST_MIDNIGHT_PROCESSED, None)

        for section in (const.DATA_ENTITIES, const.DATA_FAMILIES):
            if not isinstance(data.get(section), dict):
                const.LOGGER.warning(
                    "WARNING: Storage section '%s' missing or invalid, resetting",
                    section,
                )
                data[section] = {}

        self._ensure_program_config(data)

        const.LOGGER.info("INFO: SystemManager: Data integrity verified")
        self.emit(const.SIGNAL_SUFFIX_DATA_READY)

    def _ensure_program_config(self, data: dict[str, Any]) -> None:
        """Bootstrap the program config singleton and repair invalid fields."""
        config = data.get(const.DATA_PROGRAM_CONFIG)
        if not isinstance(config, dict):
            config = {}
            data[const.DATA_PROGRAM_CONFIG] = config

        if not config:
            const.LOGGER.info(
                "INFO: No program config found. Bootstrapping phase %s",
                const.PHASE_SETUP,
            )

        phase = config.get(const.DATA_CONFIG_PROGRAM_PHASE)
        if not PhaseEngine.is_valid_phase(phase):
            if phase is not None:
                const.LOGGER.warning(
                    "WARNING: Unknown program phase '%s', resetting to %s",
                    phase,
                    const.PHASE_SETUP,
                )
            config[const.DATA_CONFIG_PROGRAM_PHASE] = const.PHASE_SETUP

        academic_year = config.get(const.DATA_CONFIG_ACADEMIC_YEAR)
        try:
            PhaseEngine.parse_academic_year(academic_year)
        except ValueError:
            current_year = PhaseEngine.academic_year_for_date(dt_today_local())
            if academic_year is not None:
                const.LOGGER.warning(
                    "WARNING: Invalid academic year '%s', resetting to %s",
                    academic_year,
                    current_year,
                )
            config[const.DATA_CONFIG_ACADEMIC_YEAR] = current_year

        config.setdefault(const.DATA_CONFIG_LAST_MODIFIED, None)
        config.setdefault(const.DATA_CONFIG_ROLLOVER_PENDING, False)
        config.setdefault(const.DATA_CONFIG_LAST_ROLLOVER, None)
        if not isinstance(config.get(const.DATA_CONFIG_PHASE_HISTORY), list):
            config[const.DATA_CONFIG_PHASE_HISTORY] = []
