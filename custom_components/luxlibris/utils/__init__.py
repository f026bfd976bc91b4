# File: utils/__init__.py
"""Pure Python utilities for Lux Libris.

This module contains pure Python functions with ZERO Home Assistant dependencies.
All functions here can be unit tested without Home Assistant mocking.

Submodules:
    - dt_utils: Calendar-day parsing and arithmetic
    - patch_utils: Dotted-path document patches with a delete sentinel

Usage:
    from . import dt_utils
    from .patch_utils import DELETE_FIELD, apply_patch
"""

from . import dt_utils, patch_utils

__all__ = ["dt_utils", "patch_utils"]
