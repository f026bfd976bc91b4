# File: options_flow.py
"""Options Flow for the Lux Libris integration.

Edits the program-wide tunables. Saving the form updates the entry options,
and the update listener reloads the integration so the managers pick them up.
"""

from typing import Any, Optional

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.helpers import selector

from . import const


def build_general_options_schema(default: Optional[dict[str, Any]] = None) -> vol.Schema:
    """Build schema for the general options with the current values as defaults."""
    default = default or {}

    return vol.Schema(
        {
            vol.Required(
                const.CONF_SESSION_COMPLETION_MINUTES,
                default=default.get(
                    const.CONF_SESSION_COMPLETION_MINUTES,
                    const.DEFAULT_SESSION_COMPLETION_MINUTES,
                ),
            ): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    mode=selector.NumberSelectorMode.BOX,
                    min=const.MIN_SESSION_COMPLETION_MINUTES,
                    max=const.MAX_SESSION_COMPLETION_MINUTES,
                    step=1,
                )
            ),
            vol.Required(
                const.CONF_BULK_CONCURRENCY,
                default=default.get(
                    const.CONF_BULK_CONCURRENCY, const.DEFAULT_BULK_CONCURRENCY
                ),
            ): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    mode=selector.NumberSelectorMode.BOX,
                    min=const.MIN_BULK_CONCURRENCY,
                    max=const.MAX_BULK_CONCURRENCY,
                    step=1,
                )
            ),
            vol.Required(
                const.CONF_AUTO_PHASE_TRANSITIONS,
                default=default.get(
                    const.CONF_AUTO_PHASE_TRANSITIONS,
                    const.DEFAULT_AUTO_PHASE_TRANSITIONS,
                ),
            ): selector.BooleanSelector(),
            vol.Required(
                const.CONF_UPDATE_INTERVAL,
                default=default.get(
                    const.CONF_UPDATE_INTERVAL, const.DEFAULT_UPDATE_INTERVAL
                ),
            ): selector.NumberSelector(
                selector.NumberSelectorConfig(
                    mode=selector.NumberSelectorMode.BOX,
                    min=1,
                    step=1,
                )
            ),
        }
    )


class LuxLibrisOptionsFlowHandler(config_entries.OptionsFlow):
    """Options Flow for the Lux Libris tunables."""

    async def async_step_init(self, user_input=None):
        """Show and save the general options."""
        entry_options = dict(self.config_entry.options)

        if user_input is not None:
            # Number selectors hand back floats
            entry_options[const.CONF_SESSION_COMPLETION_MINUTES] = int(
                user_input[const.CONF_SESSION_COMPLETION_MINUTES]
            )
            entry_options[const.CONF_BULK_CONCURRENCY] = int(
                user_input[const.CONF_BULK_CONCURRENCY]
            )
            entry_options[const.CONF_AUTO_PHASE_TRANSITIONS] = bool(
                user_input[const.CONF_AUTO_PHASE_TRANSITIONS]
            )
            entry_options[const.CONF_UPDATE_INTERVAL] = int(
                user_input[const.CONF_UPDATE_INTERVAL]
            )
            const.LOGGER.debug(
                "DEBUG: General Options Updated: Session Minutes=%s, "
                "Bulk Concurrency=%s, Auto Phase=%s, Update Interval=%s",
                entry_options[const.CONF_SESSION_COMPLETION_MINUTES],
                entry_options[const.CONF_BULK_CONCURRENCY],
                entry_options[const.CONF_AUTO_PHASE_TRANSITIONS],
                entry_options[const.CONF_UPDATE_INTERVAL],
            )
            return self.async_create_entry(title="", data=entry_options)

        return self.async_show_form(
            step_id=const.OPTIONS_FLOW_STEP_INIT,
            data_schema=build_general_options_schema(entry_options),
            description_placeholders={},
        )
