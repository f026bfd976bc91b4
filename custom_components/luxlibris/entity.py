"""Base entity classes for Lux Libris integration."""

from __future__ import annotations

from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .coordinator import LuxLibrisDataCoordinator


class LuxLibrisCoordinatorEntity(CoordinatorEntity[LuxLibrisDataCoordinator]):
    """Base entity class for Lux Libris sensors with typed coordinator access."""

    @property
    def coordinator(self) -> LuxLibrisDataCoordinator:
        """Return typed coordinator.

        Uses object.__getattribute__ to access the private _coordinator attribute
        set by the parent CoordinatorEntity class.
        """
        return object.__getattribute__(self, "_coordinator")

    @coordinator.setter
    def coordinator(self, value: LuxLibrisDataCoordinator) -> None:
        """Set coordinator with proper typing."""
        object.__setattr__(self, "_coordinator", value)
