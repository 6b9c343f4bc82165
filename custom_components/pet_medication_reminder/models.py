"""Medication schedule and reminder data types."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
import re
from typing import Any, Mapping, Optional

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
    DOSAGE_UNITS,
    PERIODS,
    STATUS_ACTIVE,
    STATUSES,
)
from .exceptions import ValidationError

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_NOTIFY_RE = re.compile(r"^(?:notify\.)?[a-z0-9_]+$")


def parse_time_of_day(value: str, medication_id: str | None = None) -> time:
    """Parse a strict two-digit HH:MM string."""
    match = _TIME_RE.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        raise ValidationError(medication_id, f"invalid time of day {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def format_time_of_day(value: time) -> str:
    return f"{value.hour:02d}:{value.minute:02d}"


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    text = str(value).strip()
    parsed = dt_util.parse_date(text)
    if parsed is not None:
        return parsed
    stamp = dt_util.parse_datetime(text)
    return stamp.date() if stamp is not None else None


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _split_list(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return tuple(str(v).strip() for v in items if str(v).strip())


def sanitize_notify_services(value: Any) -> tuple[str, ...]:
    """Allow 'notify.xxx' or 'xxx'; return normalized unique names 'xxx'."""
    out: list[str] = []
    for svc in _split_list(value):
        if not _NOTIFY_RE.fullmatch(svc):
            continue
        name = svc.split(".", 1)[1] if svc.startswith("notify.") else svc
        if name not in out:
            out.append(name)
    return tuple(out)


@dataclass(frozen=True)
class Dosage:
    amount: float
    unit: str

    def describe(self) -> str:
        return f"{self.amount:g} {self.unit}"


@dataclass(frozen=True)
class Frequency:
    times_per_period: int
    period: str
    explicit_times: tuple[str, ...] = ()


@dataclass(frozen=True)
class ActiveRange:
    start_date: Optional[date]
    end_date: Optional[date] = None
    indefinite: bool = True

    @property
    def last_date(self) -> date | None:
        """Last day doses are given, or None when open-ended."""
        return None if self.indefinite else self.end_date


@dataclass(frozen=True)
class ReminderSettings:
    enabled: bool = True
    notify_services: tuple[str, ...] = ()
    lead_minutes: int = 0


@dataclass(frozen=True)
class MedicationSchedule:
    """A stored medication record as seen by the scheduler."""

    id: str
    pet_id: str
    name: str
    dosage: Dosage
    frequency: Frequency
    active_range: ActiveRange
    reminder_settings: ReminderSettings = field(default_factory=ReminderSettings)
    pet_name: str = ""
    status: str = STATUS_ACTIVE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MedicationSchedule:
        """Build a schedule from config entry data merged with options.

        Conversion is lenient; `validate` decides whether the result is usable.
        """
        end_date = _parse_date(data.get(ATTR_END_DATE))
        indefinite = data.get(ATTR_INDEFINITE)
        if indefinite is None:
            indefinite = end_date is None
        pet_name = str(data.get(ATTR_PET) or data.get(ATTR_PET_ID) or "")
        return cls(
            id=str(data.get(ATTR_MEDICATION_ID) or ""),
            pet_id=str(data.get(ATTR_PET_ID) or ""),
            name=str(data.get(ATTR_NAME) or ""),
            dosage=Dosage(
                amount=_to_float(data.get(ATTR_DOSE_AMOUNT)),
                unit=str(data.get(ATTR_DOSE_UNIT) or ""),
            ),
            frequency=Frequency(
                times_per_period=_to_int(data.get(ATTR_TIMES_PER_PERIOD, 1)),
                period=str(data.get(ATTR_PERIOD) or ""),
                explicit_times=_split_list(data.get(ATTR_TIMES)),
            ),
            active_range=ActiveRange(
                start_date=_parse_date(data.get(ATTR_START_DATE)),
                end_date=None if indefinite else end_date,
                indefinite=bool(indefinite),
            ),
            reminder_settings=ReminderSettings(
                enabled=bool(data.get(ATTR_REMINDERS_ENABLED, True)),
                notify_services=sanitize_notify_services(data.get(ATTR_NOTIFY_SERVICES)),
                lead_minutes=_to_int(data.get(ATTR_REMINDER_LEAD, 0)),
            ),
            pet_name=pet_name,
            status=str(data.get(ATTR_STATUS) or STATUS_ACTIVE),
        )

    def validate(self) -> None:
        """Raise ValidationError unless the schedule can produce doses."""
        if not self.id:
            raise ValidationError(None, "missing medication id")
        freq = self.frequency
        if freq.period not in PERIODS:
            raise ValidationError(self.id, f"unknown period {freq.period!r}")
        if isinstance(freq.times_per_period, bool) or not isinstance(freq.times_per_period, int) or freq.times_per_period < 1:
            raise ValidationError(self.id, "times per period must be a positive integer")
        if not self.dosage.amount > 0:
            raise ValidationError(self.id, "dose amount must be positive")
        if self.dosage.unit not in DOSAGE_UNITS:
            raise ValidationError(self.id, f"unknown dose unit {self.dosage.unit!r}")
        if self.status not in STATUSES:
            raise ValidationError(self.id, f"unknown status {self.status!r}")
        if not 0 <= self.reminder_settings.lead_minutes < 24 * 60:
            raise ValidationError(self.id, "reminder lead time must be between 0 and 1439 minutes")
        for value in freq.explicit_times:
            parse_time_of_day(value, self.id)
        rng = self.active_range
        if rng.start_date is None:
            raise ValidationError(self.id, "start date is missing or not an ISO-8601 date")
        if not rng.indefinite:
            if rng.end_date is None:
                raise ValidationError(self.id, "end date is required unless the schedule is indefinite")
            if rng.end_date < rng.start_date:
                raise ValidationError(self.id, "end date is before start date")

    @property
    def display_pet(self) -> str:
        return self.pet_name or self.pet_id or "your pet"


@dataclass(frozen=True)
class DoseInstant:
    medication_id: str
    pet_id: str
    scheduled_time: datetime
    dose_amount: float
    dose_unit: str

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.medication_id, self.scheduled_time)


@dataclass(frozen=True)
class GenerationResult:
    doses: tuple[DoseInstant, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class NotificationRequest:
    medication_id: str
    pet_id: str
    fires_at: datetime
    title: str
    message: str
    notify_services: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.medication_id, self.fires_at)


@dataclass(frozen=True)
class ScheduledNotification:
    """A notification outstanding on the notifier."""

    id: str
    medication_id: str
    fires_at: datetime
    pet_id: str = ""

    @property
    def key(self) -> tuple[str, datetime]:
        return (self.medication_id, self.fires_at)


@dataclass(frozen=True)
class OperationFailure:
    operation: str
    error: str

    def as_dict(self) -> dict[str, str]:
        return {"operation": self.operation, "error": self.error}


@dataclass(frozen=True)
class ReconcilePlan:
    to_add: tuple[NotificationRequest, ...] = ()
    to_cancel: tuple[str, ...] = ()
    truncated: bool = False
    warnings: tuple[str, ...] = ()
    failures: tuple[OperationFailure, ...] = ()


@dataclass(frozen=True)
class ApplyOutcome:
    added: int = 0
    cancelled: int = 0
    failures: tuple[OperationFailure, ...] = ()
    aborted: bool = False


@dataclass(frozen=True)
class RefreshResult:
    added: int = 0
    cancelled: int = 0
    truncated: bool = False
    warnings: tuple[str, ...] = ()
    failures: tuple[OperationFailure, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "cancelled": self.cancelled,
            "truncated": self.truncated,
            "warnings": list(self.warnings),
            "failures": [f.as_dict() for f in self.failures],
        }
