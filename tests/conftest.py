"""Shared fixtures for Lux Libris tests."""

from typing import Any
from unittest.mock import patch

import pytest
from homeassistant.core import HomeAssistant
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.luxlibris.const import (
    CONF_AUTO_PHASE_TRANSITIONS,
    CONF_BULK_CONCURRENCY,
    CONF_SESSION_COMPLETION_MINUTES,
    CONF_UPDATE_INTERVAL,
    DATA_ENTITIES,
    DATA_FAMILIES,
    DATA_META,
    DATA_META_LAST_MIDNIGHT_PROCESSED,
    DATA_META_SCHEMA_VERSION,
    DATA_PROGRAM_CONFIG,
    DEFAULT_BULK_CONCURRENCY,
    DEFAULT_SESSION_COMPLETION_MINUTES,
    DEFAULT_UPDATE_INTERVAL,
    DOMAIN,
    LUXLIBRIS_TITLE,
    SCHEMA_VERSION_CURRENT,
)

# pylint: disable=invalid-name
pytest_plugins = "pytest_homeassistant_custom_component"
# pylint: enable=invalid-name

# Far enough ahead that the startup midnight catch-up never fires in tests
FUTURE_MIDNIGHT_STAMP = "2099-01-01T00:00:00+00:00"


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations: Any) -> Any:
    """Enable custom integrations in tests."""
    # pylint: disable=unused-argument
    yield


@pytest.fixture
def mock_config_entry() -> MockConfigEntry:
    """Return a mock config entry."""
    return MockConfigEntry(
        domain=DOMAIN,
        title=LUXLIBRIS_TITLE,
        data={},
        options={
            CONF_SESSION_COMPLETION_MINUTES: DEFAULT_SESSION_COMPLETION_MINUTES,
            CONF_BULK_CONCURRENCY: DEFAULT_BULK_CONCURRENCY,
            CONF_AUTO_PHASE_TRANSITIONS: False,
            CONF_UPDATE_INTERVAL: DEFAULT_UPDATE_INTERVAL,
        },
        entry_id="test_entry_id",
        unique_id="test_unique_id",
    )


@pytest.fixture
def mock_storage_data() -> dict[str, Any]:
    """Return an empty, already-processed storage document."""
    return {
        DATA_META: {
            DATA_META_SCHEMA_VERSION: SCHEMA_VERSION_CURRENT,
            DATA_META_LAST_MIDNIGHT_PROCESSED: FUTURE_MIDNIGHT_STAMP,
        },
        DATA_PROGRAM_CONFIG: {},
        DATA_ENTITIES: {},
        DATA_FAMILIES: {},
    }


@pytest.fixture
async def init_integration(
    hass: HomeAssistant,
    mock_config_entry: MockConfigEntry,  # pylint: disable=redefined-outer-name
    mock_storage_data: dict[str, Any],  # pylint: disable=redefined-outer-name
) -> MockConfigEntry:
    """Set up the Lux Libris integration for testing with mocked storage."""
    mock_config_entry.add_to_hass(hass)

    # Mock the Store's async_load to return our test data
    with patch(
        "homeassistant.helpers.storage.Store.async_load",
        return_value=mock_storage_data,
    ):
        assert await hass.config_entries.async_setup(mock_config_entry.entry_id)
        await hass.async_block_till_done()

    return mock_config_entry
