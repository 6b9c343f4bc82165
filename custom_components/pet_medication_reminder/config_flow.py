"""Config flow for Pet Medication Reminder integration."""
from __future__ import annotations

from typing import Any
import uuid

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.util import dt as dt_util

from .const import (
    ATTR_DOSE_AMOUNT,
    ATTR_DOSE_UNIT,
    ATTR_END_DATE,
    ATTR_INDEFINITE,
    ATTR_MEDICATION_ID,
    ATTR_NAME,
    ATTR_NOTIFY_SERVICES,
    ATTR_PERIOD,
    ATTR_PET,
    ATTR_PET_ID,
    ATTR_REMINDER_LEAD,
    ATTR_REMINDERS_ENABLED,
    ATTR_START_DATE,
    ATTR_STATUS,
    ATTR_TIMES,
    ATTR_TIMES_PER_PERIOD,
    DOMAIN,
    DOSAGE_UNITS,
    PERIOD_DAY,
    PERIODS,
    STATUS_ACTIVE,
    STATUSES,
)
from .exceptions import ValidationError
from .models import MedicationSchedule
from .schedule import config_from_options, fill_missing_times

CONF_AUTO_FILL = "auto_fill"


def _slugify(name: str) -> str:
    base = "".join(ch if ch.isalnum() else "_" for ch in name.lower())
    return "_".join([p for p in base.split("_") if p])


def _normalize_times(value: str) -> list[str]:
    """Parse "8:00, 20:00" style input into sorted unique HH:MM values."""
    items = [v.strip() for v in value.split(",")]
    out: list[str] = []
    for t in items:
        if not t:
            continue
        try:
            hh, mm = t.split(":")
            hhi = int(hh)
            mmi = int(mm)
        except ValueError as err:
            raise vol.Invalid(f"Invalid time format: {t}") from err
        if not (0 <= hhi <= 23 and 0 <= mmi <= 59):
            raise vol.Invalid(f"Invalid time value: {t}")
        out.append(f"{hhi:02d}:{mmi:02d}")
    return sorted(set(out))


def _schedule_fields(user_input: dict[str, Any]) -> dict[str, Any]:
    """Normalise the schedule part of a form submission.

    Raises vol.Invalid for unparseable times.
    """
    end_date = (user_input.get(ATTR_END_DATE) or "").strip()
    return {
        ATTR_DOSE_AMOUNT: float(user_input[ATTR_DOSE_AMOUNT]),
        ATTR_DOSE_UNIT: user_input[ATTR_DOSE_UNIT],
        ATTR_TIMES_PER_PERIOD: int(user_input[ATTR_TIMES_PER_PERIOD]),
        ATTR_PERIOD: user_input[ATTR_PERIOD],
        ATTR_TIMES: _normalize_times(user_input.get(ATTR_TIMES) or ""),
        ATTR_START_DATE: (user_input.get(ATTR_START_DATE) or "").strip(),
        ATTR_END_DATE: end_date or None,
        ATTR_INDEFINITE: not end_date,
        ATTR_REMINDERS_ENABLED: bool(user_input.get(ATTR_REMINDERS_ENABLED, True)),
        ATTR_REMINDER_LEAD: int(user_input.get(ATTR_REMINDER_LEAD) or 0),
    }


def _needs_fill(data: dict[str, Any]) -> bool:
    times = data.get(ATTR_TIMES) or []
    return data.get(ATTR_PERIOD) == PERIOD_DAY and 0 < len(times) < int(data.get(ATTR_TIMES_PER_PERIOD, 1))


def _schedule_schema(current: dict[str, Any]) -> dict:
    return {
        vol.Required(ATTR_DOSE_AMOUNT, default=current.get(ATTR_DOSE_AMOUNT, 1.0)): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Required(ATTR_DOSE_UNIT, default=current.get(ATTR_DOSE_UNIT, DOSAGE_UNITS[0])): vol.In(DOSAGE_UNITS),
        vol.Required(ATTR_TIMES_PER_PERIOD, default=current.get(ATTR_TIMES_PER_PERIOD, 1)): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=24)
        ),
        vol.Required(ATTR_PERIOD, default=current.get(ATTR_PERIOD, PERIOD_DAY)): vol.In(PERIODS),
        vol.Optional(
            ATTR_TIMES,
            default=current.get(ATTR_TIMES, ""),
            description={"suggested_value": "08:00, 20:00"},
        ): str,
        vol.Required(ATTR_START_DATE, default=current.get(ATTR_START_DATE) or dt_util.now().date().isoformat()): str,
        vol.Optional(ATTR_END_DATE, default=current.get(ATTR_END_DATE) or ""): str,
        vol.Optional(ATTR_REMINDERS_ENABLED, default=current.get(ATTR_REMINDERS_ENABLED, True)): bool,
        vol.Optional(ATTR_REMINDER_LEAD, default=current.get(ATTR_REMINDER_LEAD, 0)): vol.All(
            vol.Coerce(int), vol.Range(min=0, max=24 * 60 - 1)
        ),
    }


class PetMedicationConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    def __init__(self) -> None:
        self._pending: dict[str, Any] | None = None

    async def async_step_user(self, user_input=None):
        errors = {}
        if user_input is not None:
            pet = (user_input.get(ATTR_PET) or "").strip()
            name = (user_input.get(ATTR_NAME) or "").strip()
            try:
                fields = _schedule_fields(user_input)
            except vol.Invalid:
                errors["base"] = "invalid_times"
            else:
                if not pet:
                    errors[ATTR_PET] = "required"
                elif not name:
                    errors[ATTR_NAME] = "required"
                else:
                    data = {
                        ATTR_MEDICATION_ID: uuid.uuid4().hex,
                        ATTR_PET: pet,
                        ATTR_PET_ID: _slugify(pet),
                        ATTR_NAME: name,
                        ATTR_STATUS: STATUS_ACTIVE,
                        **fields,
                    }
                    try:
                        MedicationSchedule.from_dict(data).validate()
                    except ValidationError:
                        errors["base"] = "invalid_schedule"
                    else:
                        await self.async_set_unique_id(f"{data[ATTR_PET_ID]}_{_slugify(name)}")
                        self._abort_if_unique_id_configured()
                        self._pending = data
                        if _needs_fill(data):
                            return await self.async_step_fill_times()
                        return self._create()

        schema = vol.Schema(
            {
                vol.Required(ATTR_PET): str,
                vol.Required(ATTR_NAME): str,
                **_schedule_schema({}),
            }
        )
        return self.async_show_form(step_id="user", data_schema=schema, errors=errors)

    async def async_step_fill_times(self, user_input=None):
        """Offer to complete a partial list of daily reminder times."""
        data = self._pending
        conf = self.hass.data.get(DOMAIN, {}).get("config")
        filled = fill_missing_times(MedicationSchedule.from_dict(data), config_from_options(conf))
        if user_input is not None:
            if user_input.get(CONF_AUTO_FILL, True):
                data[ATTR_TIMES] = list(filled)
            return self._create()
        return self.async_show_form(
            step_id="fill_times",
            data_schema=vol.Schema({vol.Required(CONF_AUTO_FILL, default=True): bool}),
            description_placeholders={
                "configured": ", ".join(data[ATTR_TIMES]),
                "doses": str(data[ATTR_TIMES_PER_PERIOD]),
                "suggested": ", ".join(filled),
            },
        )

    def _create(self):
        data = self._pending
        return self.async_create_entry(title=f"{data[ATTR_PET]} {data[ATTR_NAME]}", data=data)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: config_entries.ConfigEntry):
        return PetMedicationOptionsFlow()


class PetMedicationOptionsFlow(config_entries.OptionsFlow):
    async def async_step_init(self, user_input=None):
        errors = {}
        entry = self.config_entry
        current = {**entry.data, **entry.options}
        if user_input is not None:
            try:
                fields = _schedule_fields(user_input)
            except vol.Invalid:
                errors["base"] = "invalid_times"
            else:
                options = {
                    **fields,
                    ATTR_STATUS: user_input.get(ATTR_STATUS, STATUS_ACTIVE),
                    ATTR_NOTIFY_SERVICES: (user_input.get(ATTR_NOTIFY_SERVICES) or "").strip(),
                }
                try:
                    MedicationSchedule.from_dict({**entry.data, **options}).validate()
                except ValidationError:
                    errors["base"] = "invalid_schedule"
                else:
                    return self.async_create_entry(title="", data=options)

        defaults = {
            **current,
            ATTR_TIMES: ", ".join(current.get(ATTR_TIMES) or []),
        }
        schema = vol.Schema(
            {
                **_schedule_schema(defaults),
                vol.Optional(ATTR_STATUS, default=current.get(ATTR_STATUS, STATUS_ACTIVE)): vol.In(STATUSES),
                vol.Optional(
                    ATTR_NOTIFY_SERVICES,
                    default=current.get(ATTR_NOTIFY_SERVICES, ""),
                    description={
                        "suggested_value": "notify.mobile_app_my_phone, notify.family",
                    },
                ): str,
            }
        )
        return self.async_show_form(step_id="init", data_schema=schema, errors=errors)
