import pytest

from homeassistant.data_entry_flow import FlowResultType

from custom_components.pet_medication_reminder.const import (
    ATTR_DOSE_AMOUNT,
    ATTR_DOSE_UNIT,
    ATTR_END_DATE,
    ATTR_INDEFINITE,
    ATTR_MEDICATION_ID,
    ATTR_NAME,
    ATTR_PERIOD,
    ATTR_PET,
    ATTR_PET_ID,
    ATTR_START_DATE,
    ATTR_TIMES,
    ATTR_TIMES_PER_PERIOD,
    DOMAIN,
)

pytestmark = pytest.mark.usefixtures("enable_custom_integrations")


def _input(**overrides):
    data = {
        ATTR_PET: "Rex",
        ATTR_NAME: "Carprofen",
        ATTR_DOSE_AMOUNT: 25,
        ATTR_DOSE_UNIT: "mg",
        ATTR_TIMES_PER_PERIOD: 2,
        ATTR_PERIOD: "day",
        ATTR_TIMES: "8:00, 20:00",
        ATTR_START_DATE: "2024-01-01",
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_config_flow_success(hass):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": "user"}
    )
    assert result["type"] == FlowResultType.FORM

    result2 = await hass.config_entries.flow.async_configure(
        result["flow_id"], user_input=_input()
    )
    await hass.async_block_till_done()
    assert result2["type"] == FlowResultType.CREATE_ENTRY
    assert result2["title"] == "Rex Carprofen"
    data = result2["data"]
    assert data[ATTR_PET_ID] == "rex"
    assert data[ATTR_NAME] == "Carprofen"
    assert data[ATTR_TIMES] == ["08:00", "20:00"]
    assert data[ATTR_INDEFINITE] is True
    assert data[ATTR_END_DATE] is None
    assert data[ATTR_MEDICATION_ID]


@pytest.mark.asyncio
async def test_config_flow_invalid_times(hass):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": "user"}
    )
    result2 = await hass.config_entries.flow.async_configure(
        result["flow_id"], user_input=_input(**{ATTR_TIMES: "25:00"})
    )
    assert result2["type"] == FlowResultType.FORM
    assert result2["errors"]["base"] == "invalid_times"


@pytest.mark.asyncio
async def test_config_flow_end_before_start(hass):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": "user"}
    )
    result2 = await hass.config_entries.flow.async_configure(
        result["flow_id"], user_input=_input(**{ATTR_END_DATE: "2023-12-01"})
    )
    assert result2["type"] == FlowResultType.FORM
    assert result2["errors"]["base"] == "invalid_schedule"


@pytest.mark.asyncio
async def test_config_flow_fills_missing_times(hass):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": "user"}
    )
    result2 = await hass.config_entries.flow.async_configure(
        result["flow_id"], user_input=_input(**{ATTR_TIMES_PER_PERIOD: 3, ATTR_TIMES: "08:00"})
    )
    assert result2["type"] == FlowResultType.FORM
    assert result2["step_id"] == "fill_times"
    assert result2["description_placeholders"]["suggested"] == "08:00, 12:40, 17:20"

    result3 = await hass.config_entries.flow.async_configure(
        result2["flow_id"], user_input={"auto_fill": True}
    )
    await hass.async_block_till_done()
    assert result3["type"] == FlowResultType.CREATE_ENTRY
    assert result3["data"][ATTR_TIMES] == ["08:00", "12:40", "17:20"]


@pytest.mark.asyncio
async def test_config_flow_keeps_partial_times_when_declined(hass):
    result = await hass.config_entries.flow.async_init(
        DOMAIN, context={"source": "user"}
    )
    result2 = await hass.config_entries.flow.async_configure(
        result["flow_id"], user_input=_input(**{ATTR_TIMES_PER_PERIOD: 3, ATTR_TIMES: "08:00"})
    )
    result3 = await hass.config_entries.flow.async_configure(
        result2["flow_id"], user_input={"auto_fill": False}
    )
    await hass.async_block_till_done()
    assert result3["type"] == FlowResultType.CREATE_ENTRY
    assert result3["data"][ATTR_TIMES] == ["08:00"]


@pytest.mark.asyncio
async def test_config_flow_duplicate_aborts(hass):
    for expected in (FlowResultType.CREATE_ENTRY, FlowResultType.ABORT):
        result = await hass.config_entries.flow.async_init(
            DOMAIN, context={"source": "user"}
        )
        result2 = await hass.config_entries.flow.async_configure(
            result["flow_id"], user_input=_input()
        )
        await hass.async_block_till_done()
        assert result2["type"] == expected
