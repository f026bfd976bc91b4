# File: helpers/__init__.py
"""Home Assistant-bound helper functions for Lux Libris.

This module contains functions that REQUIRE Home Assistant dependencies or
run on the Home Assistant event loop.

NOTE: Pure date and patch utilities belong in utils/, NOT here.

Submodules:
    - entity_helpers: Event signal names, config entry lookup and device info
    - bulk_helpers: Bounded-concurrency fan-out for tenant-wide operations

Usage:
    from .helpers.entity_helpers import get_event_signal
    from .helpers.bulk_helpers import async_fan_out
"""

from . import bulk_helpers, entity_helpers

__all__ = [
    "bulk_helpers",
    "entity_helpers",
]
