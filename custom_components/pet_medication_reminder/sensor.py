"""Sensor platform for Pet Medication Reminder."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import async_generate_entity_id
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.util import dt as dt_util

from .const import (
    ATTR_LAST_ACTION,
    ATTR_NAME,
    ATTR_PET_ID,
    DOMAIN,
    SIGNAL_HISTORY_UPDATED,
    SIGNAL_REMINDERS_UPDATED,
    STATUS_ACTIVE,
)
from .exceptions import ValidationError
from .history import DoseHistory
from .models import GenerationResult, MedicationSchedule
from .reminders import ReminderManager
from .repository import schedule_from_entry


def _slugify(name: str) -> str:
    base = "".join(ch if ch.isalnum() else "_" for ch in name.lower())
    return "_".join([p for p in base.split("_") if p])


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    store = hass.data[DOMAIN]
    async_add_entities([NextDoseSensor(hass, entry, store["manager"], store["history"])])


class NextDoseSensor(SensorEntity):
    """Next upcoming dose of one medication."""

    _attr_icon = "mdi:pill"
    _attr_device_class = SensorDeviceClass.TIMESTAMP
    _attr_should_poll = False

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry, manager: ReminderManager, history: DoseHistory):
        self.hass = hass
        self._entry_id = entry.entry_id
        self._manager = manager
        self._history = history
        self._unsubs: list[Callable[[], None]] = []
        self._result = GenerationResult()
        self._error: Optional[str] = None

        # naming only needs the entry itself, the repository may not have it yet
        schedule = self._schedule or schedule_from_entry(entry)
        slug = _slugify(f"{schedule.pet_id} {schedule.name}")
        self._attr_name = f"{schedule.display_pet} {schedule.name} next dose"
        self._attr_unique_id = f"{schedule.id}_next_dose"
        self.entity_id = async_generate_entity_id("sensor.{}", f"{slug}_next_dose", hass=hass)
        self._attr_device_info = {
            "identifiers": {(DOMAIN, schedule.pet_id)},
            "name": f"{schedule.display_pet} medications",
        }

    @property
    def _schedule(self) -> MedicationSchedule | None:
        return self._manager.repository.get_by_entry(self._entry_id)

    def _compute(self) -> None:
        schedule = self._schedule
        if schedule is None:
            return
        if schedule.status != STATUS_ACTIVE:
            self._result = GenerationResult()
            self._error = None
            return
        now = dt_util.now()
        try:
            self._result = self._manager.reconciler.generator.generate(
                schedule, now, now + self._manager.horizon
            )
            self._error = None
        except ValidationError as err:
            self._result = GenerationResult()
            self._error = err.reason

    @property
    def native_value(self) -> datetime | None:
        if not self._result.doses:
            return None
        return self._result.doses[0].scheduled_time

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        schedule = self._schedule
        if schedule is None:
            return {}
        since = dt_util.now() - timedelta(days=7)
        counts = self._history.counts_since(schedule.id, since)
        return {
            "medication_id": schedule.id,
            ATTR_PET_ID: schedule.pet_id,
            ATTR_NAME: schedule.name,
            "dosage": schedule.dosage.describe(),
            "status": schedule.status,
            "reminders_enabled": schedule.reminder_settings.enabled,
            "upcoming": [d.scheduled_time.isoformat() for d in self._result.doses],
            "warnings": list(self._result.warnings),
            "error": self._error,
            ATTR_LAST_ACTION: self._history.last(schedule.id),
            "recent": self._history.recent(schedule.id, limit=5),
            "given_7d": counts.get("given", 0),
            "skipped_7d": counts.get("skipped", 0),
        }

    async def async_added_to_hass(self) -> None:
        @callback
        def _reminders_updated() -> None:
            self._compute()
            self.async_write_ha_state()

        @callback
        def _history_updated(medication_id: str) -> None:
            schedule = self._schedule
            if schedule is not None and medication_id == schedule.id:
                self.async_write_ha_state()

        self._unsubs.append(async_dispatcher_connect(self.hass, SIGNAL_REMINDERS_UPDATED, _reminders_updated))
        self._unsubs.append(async_dispatcher_connect(self.hass, SIGNAL_HISTORY_UPDATED, _history_updated))
        # Initial compute
        self._compute()

    async def async_will_remove_from_hass(self) -> None:
        for u in self._unsubs:
            u()
        self._unsubs.clear()
