"""Shared plumbing for the Lux Libris managers.

Managers talk to each other only through dispatcher signals scoped to the
config entry, so two Lux Libris instances never see each other's events:

    SystemManager     -> SIGNAL_SUFFIX_DATA_READY, SIGNAL_SUFFIX_MIDNIGHT_ROLLOVER
    StreakManager     -> SIGNAL_SUFFIX_STREAKS_UPDATED
    FamilyBattleManager -> SIGNAL_SUFFIX_FAMILIES_REPAIRED
    PhaseManager      -> SIGNAL_SUFFIX_PHASE_CHANGED
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from homeassistant.helpers.dispatcher import (
    async_dispatcher_connect,
    async_dispatcher_send,
)

from .. import const
from ..helpers.entity_helpers import get_event_signal

if TYPE_CHECKING:
    from collections.abc import Callable

    from homeassistant.core import HomeAssistant

    from ..coordinator import LuxLibrisDataCoordinator


class BaseManager(ABC):
    """A coordinator-owned component with entry-scoped signals.

    Writes go through the coordinator: `_persist_and_update()` after a change
    that sensors show (phase, repairs, streaks), `_persist()` for bookkeeping
    such as the midnight stamp.
    """

    def __init__(
        self, hass: HomeAssistant, coordinator: LuxLibrisDataCoordinator
    ) -> None:
        """Bind the manager to its coordinator and config entry."""
        self.hass = hass
        self.coordinator = coordinator
        self.entry_id = coordinator.config_entry.entry_id

    def emit(self, suffix: str, **payload: Any) -> None:
        """Send `payload` as one dict to every listener of `suffix` on this entry."""
        const.LOGGER.debug(
            "DEBUG: %s sends '%s' (%s)",
            self.__class__.__name__,
            suffix,
            ", ".join(payload) or "no payload",
        )
        async_dispatcher_send(
            self.hass, get_event_signal(self.entry_id, suffix), payload
        )

    def listen(self, suffix: str, callback: Callable[..., Any]) -> None:
        """Subscribe `callback` to `suffix` until the config entry unloads.

        Coroutine callbacks are scheduled on the event loop by the dispatcher.
        """
        unsub = async_dispatcher_connect(
            self.hass, get_event_signal(self.entry_id, suffix), callback
        )
        self.coordinator.config_entry.async_on_unload(unsub)
        const.LOGGER.debug(
            "DEBUG: %s listens for '%s'", self.__class__.__name__, suffix
        )

    @abstractmethod
    async def async_setup(self) -> None:
        """Register listeners; called once while the coordinator starts."""
