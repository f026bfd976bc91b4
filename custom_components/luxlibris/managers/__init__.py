"""Manager modules for Lux Libris integration.

Managers orchestrate workflows and coordinate between engines.
They are stateful, event-aware, and handle cross-cutting concerns.
"""

from .base_manager import BaseManager
from .family_battle_manager import FamilyBattleManager
from .phase_manager import PhaseManager
from .streak_manager import StreakManager
from .system_manager import SystemManager

__all__ = [
    "BaseManager",
    "FamilyBattleManager",
    "PhaseManager",
    "StreakManager",
    "SystemManager",
]
