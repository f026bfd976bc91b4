"""Engine modules for Lux Libris integration.

Contains specialized computation engines:
- streak_engine: Reading streak derivation from the session log
- battle_scan_engine: Family battle issue taxonomy and detection
- battle_repair_engine: Patch construction, verification and dry-run scripts
- phase_engine: Program phase state machine and academic calendar
"""

# Use relative imports within package to avoid mypy module resolution issues
from .battle_repair_engine import BattleRepairEngine, RepairInvariantError
from .battle_scan_engine import ISSUE_ORDER, BattleScanEngine, BattleView
from .phase_engine import (
    InvalidPhaseTransitionError,
    PhaseEngine,
    PhaseTransition,
    RolloverIncompleteError,
)
from .streak_engine import StreakEngine

__all__ = [
    "ISSUE_ORDER",
    "BattleRepairEngine",
    "BattleScanEngine",
    "BattleView",
    "InvalidPhaseTransitionError",
    "PhaseEngine",
    "PhaseTransition",
    "RepairInvariantError",
    "RolloverIncompleteError",
    "StreakEngine",
]
