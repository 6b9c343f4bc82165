"""Dose schedule generation.

Turns a medication's frequency, reminder times and active date range into the
concrete dose instants inside a time window. Two modes exist per schedule:

* explicit times: every configured "HH:MM" on every qualifying day;
* even distribution: ``ceil(doses per day)`` times spread across the daytime
  window (08:00-22:00 by default).

Weekly schedules only fall on the start date's weekday and monthly schedules
on the start date's day of month, clamped to the last day of shorter months.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
import logging
import math
from typing import Any, Mapping

from homeassistant.util import dt as dt_util

from .const import (
    CONF_DAY_END,
    CONF_DAY_START,
    DEFAULT_DAY_END,
    DEFAULT_DAY_START,
    MONTH_LENGTH_DAYS,
    PERIOD_DAY,
    PERIOD_MONTH,
    PERIOD_WEEK,
    WEEK_LENGTH_DAYS,
)
from .models import (
    DoseInstant,
    Frequency,
    GenerationResult,
    MedicationSchedule,
    format_time_of_day,
    parse_time_of_day,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratorConfig:
    """Tunables for even distribution."""

    day_start: time = parse_time_of_day(DEFAULT_DAY_START)
    day_end: time = parse_time_of_day(DEFAULT_DAY_END)
    month_length_days: int = MONTH_LENGTH_DAYS

    def __post_init__(self) -> None:
        if self.span_minutes <= 0:
            raise ValueError("day_end must be later than day_start")
        if self.month_length_days < 1:
            raise ValueError("month_length_days must be positive")

    @property
    def span_minutes(self) -> int:
        start = self.day_start.hour * 60 + self.day_start.minute
        end = self.day_end.hour * 60 + self.day_end.minute
        return end - start


DEFAULT_CONFIG = GeneratorConfig()


def doses_per_day(frequency: Frequency, config: GeneratorConfig = DEFAULT_CONFIG) -> float:
    """Daily dose rate; months use the fixed month-length approximation."""
    if frequency.period == PERIOD_WEEK:
        return frequency.times_per_period / WEEK_LENGTH_DAYS
    if frequency.period == PERIOD_MONTH:
        return frequency.times_per_period / config.month_length_days
    return float(frequency.times_per_period)


def even_times(count: int, config: GeneratorConfig = DEFAULT_CONFIG) -> list[time]:
    """Spread `count` times across the daytime window, first one at its start."""
    if count <= 0:
        return []
    base = config.day_start.hour * 60 + config.day_start.minute
    interval = config.span_minutes / count
    out: list[time] = []
    for i in range(count):
        # half-up rounding to whole minutes
        minutes = base + math.floor(i * interval + 0.5)
        slot = time(minutes // 60, minutes % 60)
        if slot not in out:
            out.append(slot)
    return out


def fill_missing_times(schedule: MedicationSchedule, config: GeneratorConfig = DEFAULT_CONFIG) -> tuple[str, ...]:
    """Top up a partial list of daily times with evenly distributed slots.

    Only daily schedules are filled; other schedules get their times back
    sorted and de-duplicated.
    """
    existing = sorted({parse_time_of_day(t, schedule.id) for t in schedule.frequency.explicit_times})
    needed = schedule.frequency.times_per_period - len(existing)
    if schedule.frequency.period == PERIOD_DAY and needed > 0:
        for slot in even_times(schedule.frequency.times_per_period, config):
            if needed <= 0:
                break
            if slot not in existing:
                existing.append(slot)
                needed -= 1
    return tuple(format_time_of_day(t) for t in sorted(existing))


def _anchor_matches(period: str, day: date, anchor: date) -> bool:
    if period == PERIOD_WEEK:
        return day.weekday() == anchor.weekday()
    if period == PERIOD_MONTH:
        last = calendar.monthrange(day.year, day.month)[1]
        return day.day == min(anchor.day, last)
    return True


def _localize(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


class DoseScheduleGenerator:
    """Compute dose instants for a medication schedule."""

    def __init__(self, config: GeneratorConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def times_of_day(self, schedule: MedicationSchedule) -> tuple[list[time], list[str]]:
        """Return the daily dose times and any advisory warnings."""
        freq = schedule.frequency
        warnings: list[str] = []
        if not freq.explicit_times:
            count = max(1, math.ceil(doses_per_day(freq, self.config)))
            return even_times(count, self.config), warnings

        times = sorted({parse_time_of_day(t, schedule.id) for t in freq.explicit_times})
        if freq.period == PERIOD_DAY and len(times) < freq.times_per_period:
            missing = freq.times_per_period - len(times)
            warnings.append(
                f"{schedule.name or schedule.id} is set to {freq.times_per_period} doses per day "
                f"but only {len(times)} reminder time(s) are configured; "
                f"{missing} more can be filled in automatically"
            )
        return times, warnings

    def generate(self, schedule: MedicationSchedule, window_start: datetime, window_end: datetime) -> GenerationResult:
        """Dose instants in [window_start, window_end), ascending.

        Disabled schedules yield nothing and are not validated. Raises
        ValidationError for a malformed schedule.
        """
        if not schedule.reminder_settings.enabled:
            return GenerationResult()
        schedule.validate()

        tz = window_start.tzinfo or dt_util.get_default_time_zone()
        start = _localize(window_start, tz)
        end = _localize(window_end, tz)
        if end <= start:
            return GenerationResult()

        rng = schedule.active_range
        first_day = max(start.date(), rng.start_date)
        last_day = (end - timedelta(microseconds=1)).date()
        if rng.last_date is not None:
            last_day = min(last_day, rng.last_date)
        if first_day > last_day:
            return GenerationResult()

        times, warnings = self.times_of_day(schedule)
        period = schedule.frequency.period
        doses: dict[tuple[str, datetime], DoseInstant] = {}
        day = first_day
        while day <= last_day:
            if _anchor_matches(period, day, rng.start_date):
                for slot in times:
                    candidate = datetime.combine(day, slot, tzinfo=tz)
                    if not start <= candidate < end:
                        continue
                    dose = DoseInstant(
                        medication_id=schedule.id,
                        pet_id=schedule.pet_id,
                        scheduled_time=candidate,
                        dose_amount=schedule.dosage.amount,
                        dose_unit=schedule.dosage.unit,
                    )
                    doses.setdefault(dose.key, dose)
            day += timedelta(days=1)

        ordered = tuple(sorted(doses.values(), key=lambda d: d.scheduled_time))
        _LOGGER.debug(
            "%d dose(s) for %s between %s and %s",
            len(ordered),
            schedule.id,
            start.isoformat(),
            end.isoformat(),
        )
        return GenerationResult(doses=ordered, warnings=tuple(warnings))


def config_from_options(conf: Mapping[str, Any] | None) -> GeneratorConfig:
    """GeneratorConfig from the integration's YAML settings."""
    if not conf:
        return DEFAULT_CONFIG
    return GeneratorConfig(
        day_start=parse_time_of_day(conf.get(CONF_DAY_START, DEFAULT_DAY_START)),
        day_end=parse_time_of_day(conf.get(CONF_DAY_END, DEFAULT_DAY_END)),
    )
