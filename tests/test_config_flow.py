"""Tests for the Lux Libris config and options flows."""

from unittest.mock import patch

from homeassistant import config_entries
from homeassistant.core import HomeAssistant
from homeassistant.data_entry_flow import FlowResultType
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.luxlibris import const


async def test_user_flow_creates_entry_with_default_options(
    hass: HomeAssistant,
) -> None:
    """The user step confirms setup and seeds the default options."""
    result = await hass.config_entries.flow.async_init(
        const.DOMAIN, context={"source": config_entries.SOURCE_USER}
    )
    assert result.get("type") == FlowResultType.FORM
    assert result.get("step_id") == const.CONFIG_FLOW_STEP_USER

    with patch(
        "custom_components.luxlibris.async_setup_entry", return_value=True
    ):
        result = await hass.config_entries.flow.async_configure(
            result.get("flow_id"), user_input={}
        )
        await hass.async_block_till_done()

    assert result.get("type") == FlowResultType.CREATE_ENTRY
    assert result.get("title") == const.LUXLIBRIS_TITLE
    entry = hass.config_entries.async_entries(const.DOMAIN)[0]
    assert dict(entry.options) == const.DEFAULT_OPTIONS


async def test_second_instance_is_aborted(
    hass: HomeAssistant, mock_config_entry: MockConfigEntry
) -> None:
    """Only one Lux Libris instance may exist."""
    mock_config_entry.add_to_hass(hass)

    result = await hass.config_entries.flow.async_init(
        const.DOMAIN, context={"source": config_entries.SOURCE_USER}
    )

    assert result.get("type") == FlowResultType.ABORT
    assert result.get("reason") == const.CONFIG_FLOW_ABORT_SINGLE_INSTANCE


async def test_options_flow_shows_current_values(
    hass: HomeAssistant, init_integration: MockConfigEntry
) -> None:
    """The options form opens on the init step."""
    result = await hass.config_entries.options.async_init(init_integration.entry_id)

    assert result.get("type") == FlowResultType.FORM
    assert result.get("step_id") == const.OPTIONS_FLOW_STEP_INIT


async def test_options_flow_saves_integer_values(
    hass: HomeAssistant, init_integration: MockConfigEntry
) -> None:
    """Selector floats are stored as integers."""
    result = await hass.config_entries.options.async_init(init_integration.entry_id)
    result = await hass.config_entries.options.async_configure(
        result.get("flow_id"),
        user_input={
            const.CONF_SESSION_COMPLETION_MINUTES: 15.0,
            const.CONF_BULK_CONCURRENCY: 4.0,
            const.CONF_AUTO_PHASE_TRANSITIONS: True,
            const.CONF_UPDATE_INTERVAL: 10.0,
        },
    )
    await hass.async_block_till_done()

    assert result.get("type") == FlowResultType.CREATE_ENTRY
    assert init_integration.options[const.CONF_SESSION_COMPLETION_MINUTES] == 15
    assert init_integration.options[const.CONF_BULK_CONCURRENCY] == 4
    assert init_integration.options[const.CONF_AUTO_PHASE_TRANSITIONS] is True
    assert init_integration.options[const.CONF_UPDATE_INTERVAL] == 10
