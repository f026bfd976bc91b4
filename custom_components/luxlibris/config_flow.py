# File: config_flow.py
"""Config flow for the Lux Libris integration.

A single Lux Libris instance owns the whole program document, so the flow
only confirms setup and seeds the default options.
"""

from typing import Any, Optional

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.core import callback

from . import const
from .options_flow import LuxLibrisOptionsFlowHandler


class LuxLibrisConfigFlow(config_entries.ConfigFlow, domain=const.DOMAIN):
    """Config Flow for Lux Libris."""

    VERSION = 1

    async def async_step_user(self, user_input: Optional[dict[str, Any]] = None):
        """Confirm setup of the single Lux Libris instance."""
        if any(self._async_current_entries()):
            return self.async_abort(reason=const.CONFIG_FLOW_ABORT_SINGLE_INSTANCE)

        if user_input is not None:
            const.LOGGER.info("INFO: Creating Lux Libris config entry")
            return self.async_create_entry(
                title=const.LUXLIBRIS_TITLE,
                data={},
                options=dict(const.DEFAULT_OPTIONS),
            )

        return self.async_show_form(
            step_id=const.CONFIG_FLOW_STEP_USER, data_schema=vol.Schema({})
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: config_entries.ConfigEntry):
        """Return the Options Flow."""
        return LuxLibrisOptionsFlowHandler()
