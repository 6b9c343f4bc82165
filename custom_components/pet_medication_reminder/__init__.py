"""Pet Medication Reminder integration for Home Assistant."""
from __future__ import annotations

import asyncio
from datetime import timedelta
import logging

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry, ConfigEntryState
from homeassistant.core import HomeAssistant, ServiceCall, ServiceResponse, SupportsResponse
from homeassistant.exceptions import HomeAssistantError
import homeassistant.helpers.config_validation as cv
from homeassistant.helpers.event import async_track_time_interval
from homeassistant.helpers.typing import ConfigType
from homeassistant.util import dt as dt_util

from .const import (
    ACTION_GIVEN,
    ACTION_SKIP,
    ATTR_MEDICATION_ID,
    ATTR_PET_ID,
    CONF_DAY_END,
    CONF_DAY_START,
    CONF_DEVICE_QUOTA,
    CONF_HORIZON_HOURS,
    CONF_OPERATION_TIMEOUT,
    CONF_REFRESH_INTERVAL,
    DEFAULT_DAY_END,
    DEFAULT_DAY_START,
    DEFAULT_DEVICE_QUOTA,
    DEFAULT_HORIZON_HOURS,
    DEFAULT_OPERATION_TIMEOUT,
    DEFAULT_REFRESH_INTERVAL_MINUTES,
    DOMAIN,
    SERVICE_MARK_GIVEN,
    SERVICE_MARK_SKIPPED,
    SERVICE_REFRESH,
    STATE_GIVEN,
    STATE_SKIPPED,
)
from .exceptions import ValidationError
from .history import DoseHistory
from .models import parse_time_of_day
from .notifier import ReminderNotifier
from .reconciler import NotificationReconciler
from .reminders import ReminderManager
from .repository import MedicationRepository
from .schedule import DoseScheduleGenerator, config_from_options

_LOGGER = logging.getLogger(__name__)

PLATFORMS = ["sensor"]
SERVICES = (SERVICE_REFRESH, SERVICE_MARK_GIVEN, SERVICE_MARK_SKIPPED)


def _time_of_day(value) -> str:
    try:
        parse_time_of_day(str(value))
    except ValidationError as err:
        raise vol.Invalid(f"Invalid time format: {value}") from err
    return str(value)


DOMAIN_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_HORIZON_HOURS, default=DEFAULT_HORIZON_HOURS): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=24 * 30)
        ),
        vol.Optional(CONF_DEVICE_QUOTA, default=DEFAULT_DEVICE_QUOTA): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional(CONF_REFRESH_INTERVAL, default=DEFAULT_REFRESH_INTERVAL_MINUTES): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=1440)
        ),
        vol.Optional(CONF_OPERATION_TIMEOUT, default=DEFAULT_OPERATION_TIMEOUT): vol.All(
            vol.Coerce(float), vol.Range(min=0.1)
        ),
        vol.Optional(CONF_DAY_START, default=DEFAULT_DAY_START): _time_of_day,
        vol.Optional(CONF_DAY_END, default=DEFAULT_DAY_END): _time_of_day,
    }
)

CONFIG_SCHEMA = vol.Schema({DOMAIN: DOMAIN_SCHEMA}, extra=vol.ALLOW_EXTRA)

REFRESH_SCHEMA = vol.Schema({vol.Optional(ATTR_PET_ID): cv.string})
MARK_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_MEDICATION_ID): cv.string,
        vol.Optional("scheduled_time"): cv.string,
    }
)


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    """Store the integration-wide settings from YAML, if any."""
    hass.data.setdefault(DOMAIN, {})["config"] = DOMAIN_SCHEMA(config.get(DOMAIN) or {})
    return True


async def _async_start(hass: HomeAssistant, store: dict) -> ReminderManager:
    conf = store.get("config") or DOMAIN_SCHEMA({})
    generator = DoseScheduleGenerator(config_from_options(conf))
    manager = ReminderManager(
        hass,
        MedicationRepository(),
        ReminderNotifier(hass, quota=conf[CONF_DEVICE_QUOTA]),
        NotificationReconciler(generator),
        horizon=timedelta(hours=conf[CONF_HORIZON_HOURS]),
        timeout=conf[CONF_OPERATION_TIMEOUT],
    )
    history = DoseHistory(hass)
    await history.async_load()
    store["manager"] = manager
    store["history"] = history

    async def _record(medication_id: str, status: str, scheduled_time: str | None) -> None:
        if manager.repository.get_medication_by_id(medication_id) is None:
            raise HomeAssistantError(f"Medication not found: {medication_id}")
        await history.record(medication_id, status, dt_util.now().isoformat(), scheduled_time)

    async def refresh_reminders(call: ServiceCall) -> ServiceResponse:
        result = await manager.async_refresh(call.data.get(ATTR_PET_ID))
        return result.as_dict()

    async def mark_given(call: ServiceCall) -> None:
        await _record(call.data[ATTR_MEDICATION_ID], STATE_GIVEN, call.data.get("scheduled_time"))

    async def mark_skipped(call: ServiceCall) -> None:
        await _record(call.data[ATTR_MEDICATION_ID], STATE_SKIPPED, call.data.get("scheduled_time"))

    hass.services.async_register(
        DOMAIN,
        SERVICE_REFRESH,
        refresh_reminders,
        schema=REFRESH_SCHEMA,
        supports_response=SupportsResponse.OPTIONAL,
    )
    hass.services.async_register(DOMAIN, SERVICE_MARK_GIVEN, mark_given, schema=MARK_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_MARK_SKIPPED, mark_skipped, schema=MARK_SCHEMA)
    _LOGGER.debug("%s: services registered", DOMAIN)

    async def _handle_mobile_action(event):
        data = event.data or {}
        action = str(data.get("action", "")).upper()
        ad = data.get("action_data", {}) or {}
        medication_id = ad.get(ATTR_MEDICATION_ID) or data.get("tag")
        if not medication_id or manager.repository.get_medication_by_id(medication_id) is None:
            return
        if action == ACTION_GIVEN:
            await history.record(medication_id, STATE_GIVEN, dt_util.now().isoformat(), ad.get("scheduled_time"))
        elif action == ACTION_SKIP:
            await history.record(medication_id, STATE_SKIPPED, dt_util.now().isoformat(), ad.get("scheduled_time"))

    async def _periodic_refresh(_now) -> None:
        await manager.async_refresh()

    store["unsubs"] = [
        hass.bus.async_listen("mobile_app_notification_action", _handle_mobile_action),
        async_track_time_interval(
            hass, _periodic_refresh, timedelta(minutes=conf[CONF_REFRESH_INTERVAL])
        ),
    ]
    _LOGGER.debug("%s: listening for mobile_app_notification_action", DOMAIN)
    return manager


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up one medication from a config entry."""
    store = hass.data.setdefault(DOMAIN, {})
    # entries are set up concurrently; only the first one starts the manager
    async with store.setdefault("start_lock", asyncio.Lock()):
        manager: ReminderManager | None = store.get("manager")
        if manager is None:
            manager = await _async_start(hass, store)

    manager.repository.register(entry)
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.debug("%s: sensor platform forwarded for entry %s", DOMAIN, entry.entry_id)
    entry.async_on_unload(entry.add_update_listener(_async_options_updated))

    await manager.async_refresh()
    return True


async def _async_options_updated(hass: HomeAssistant, entry: ConfigEntry) -> None:
    manager: ReminderManager = hass.data[DOMAIN]["manager"]
    manager.repository.register(entry)
    await manager.async_refresh()


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if not ok:
        return False

    store = hass.data.get(DOMAIN, {})
    manager: ReminderManager | None = store.get("manager")
    if manager is None:
        return True
    manager.repository.unregister(entry.entry_id)

    entries = hass.config_entries.async_entries(DOMAIN)
    any_loaded = any(e.state == ConfigEntryState.LOADED and e.entry_id != entry.entry_id for e in entries)
    if any_loaded:
        await manager.async_refresh()
        return True

    # Last medication gone: drop reminders, services and listeners
    for svc in SERVICES:
        if hass.services.has_service(DOMAIN, svc):
            hass.services.async_remove(DOMAIN, svc)
    for unsub in store.pop("unsubs", []):
        unsub()
    manager.async_shutdown()
    store.pop("manager", None)
    store.pop("history", None)
    return True
