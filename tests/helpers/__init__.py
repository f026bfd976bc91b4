"""Test helpers for Lux Libris integration tests.

    from tests.helpers import SetupResult, setup_from_yaml, load_scenario

See individual modules for full documentation:
- setup.py: YAML scenario loading and integration setup
"""

from tests.helpers.setup import (
    SCENARIO_PROGRAM,
    SetupResult,
    load_scenario,
    setup_from_yaml,
)

__all__ = [
    "SCENARIO_PROGRAM",
    "SetupResult",
    "load_scenario",
    "setup_from_yaml",
]
