from datetime import datetime, time, timedelta

import pytest

from homeassistant.util import dt as dt_util

from custom_components.pet_medication_reminder.exceptions import ValidationError
from custom_components.pet_medication_reminder.models import Frequency, MedicationSchedule
from custom_components.pet_medication_reminder.schedule import (
    DoseScheduleGenerator,
    GeneratorConfig,
    doses_per_day,
    fill_missing_times,
)

UTC = dt_util.UTC


def _schedule(**overrides) -> MedicationSchedule:
    data = {
        "medication_id": "med-1",
        "pet_id": "rex",
        "name": "Carprofen",
        "dose_amount": 25,
        "dose_unit": "mg",
        "times_per_period": 2,
        "period": "day",
        "times": ["08:00", "20:00"],
        "start_date": "2024-01-01",
        "indefinite": True,
    }
    data.update(overrides)
    return MedicationSchedule.from_dict(data)


def _at(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def _times(result):
    return [d.scheduled_time for d in result.doses]


def test_explicit_times_single_day():
    gen = DoseScheduleGenerator()
    result = gen.generate(_schedule(), _at(2024, 1, 1), _at(2024, 1, 2))
    assert _times(result) == [_at(2024, 1, 1, 8), _at(2024, 1, 1, 20)]
    assert result.warnings == ()
    dose = result.doses[0]
    assert dose.medication_id == "med-1"
    assert dose.pet_id == "rex"
    assert dose.dose_amount == 25
    assert dose.dose_unit == "mg"


def test_even_distribution_three_per_day():
    gen = DoseScheduleGenerator()
    result = gen.generate(
        _schedule(times_per_period=3, times=[]), _at(2024, 1, 1), _at(2024, 1, 2)
    )
    assert _times(result) == [
        _at(2024, 1, 1, 8, 0),
        _at(2024, 1, 1, 12, 40),
        _at(2024, 1, 1, 17, 20),
    ]


def test_disabled_reminders_produce_nothing():
    gen = DoseScheduleGenerator()
    sched = _schedule(reminders_enabled=False)
    for days in (1, 7, 40):
        assert gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 1) + timedelta(days=days)).doses == ()


def test_window_outside_active_range_is_empty():
    gen = DoseScheduleGenerator()
    sched = _schedule(start_date="2024-02-01", end_date="2024-02-10", indefinite=False)
    assert gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 31)).doses == ()
    assert gen.generate(sched, _at(2024, 2, 11), _at(2024, 2, 20)).doses == ()


def test_start_date_inside_window():
    gen = DoseScheduleGenerator()
    sched = _schedule(start_date="2024-01-02")
    result = gen.generate(sched, _at(2024, 1, 1, 12), _at(2024, 1, 2, 12))
    assert _times(result) == [_at(2024, 1, 2, 8)]


def test_end_date_is_inclusive():
    gen = DoseScheduleGenerator()
    sched = _schedule(end_date="2024-01-02", indefinite=False)
    result = gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 4))
    assert _times(result) == [
        _at(2024, 1, 1, 8),
        _at(2024, 1, 1, 20),
        _at(2024, 1, 2, 8),
        _at(2024, 1, 2, 20),
    ]


def test_weekly_schedule_skips_other_weekdays():
    gen = DoseScheduleGenerator()
    # 2024-01-01 is a Monday
    sched = _schedule(period="week", times_per_period=1, times=["09:00"])
    assert gen.generate(sched, _at(2024, 1, 2), _at(2024, 1, 3)).doses == ()
    result = gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 15))
    assert _times(result) == [_at(2024, 1, 1, 9), _at(2024, 1, 8, 9)]


def test_weekly_even_distribution_uses_one_morning_dose():
    gen = DoseScheduleGenerator()
    sched = _schedule(period="week", times_per_period=1, times=[])
    result = gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 8))
    assert _times(result) == [_at(2024, 1, 1, 8)]


def test_monthly_schedule_clamps_to_last_day():
    gen = DoseScheduleGenerator()
    sched = _schedule(period="month", times_per_period=1, times=["08:00"], start_date="2024-01-31")
    assert _times(gen.generate(sched, _at(2024, 4, 1), _at(2024, 5, 1))) == [_at(2024, 4, 30, 8)]
    assert _times(gen.generate(sched, _at(2024, 2, 1), _at(2024, 3, 1))) == [_at(2024, 2, 29, 8)]
    assert _times(gen.generate(sched, _at(2024, 3, 1), _at(2024, 4, 1))) == [_at(2024, 3, 31, 8)]


def test_month_rate_uses_thirty_day_approximation():
    assert doses_per_day(Frequency(45, "month")) == pytest.approx(1.5)
    assert doses_per_day(Frequency(14, "week")) == pytest.approx(2.0)
    gen = DoseScheduleGenerator()
    sched = _schedule(period="month", times_per_period=45, times=[], start_date="2024-01-05")
    result = gen.generate(sched, _at(2024, 2, 5), _at(2024, 2, 6))
    assert _times(result) == [_at(2024, 2, 5, 8), _at(2024, 2, 5, 15)]


def test_custom_day_window():
    gen = DoseScheduleGenerator(GeneratorConfig(day_start=time(6, 0), day_end=time(18, 0)))
    result = gen.generate(_schedule(times=[]), _at(2024, 1, 1), _at(2024, 1, 2))
    assert _times(result) == [_at(2024, 1, 1, 6), _at(2024, 1, 1, 12)]


def test_generator_config_rejects_empty_window():
    with pytest.raises(ValueError):
        GeneratorConfig(day_start=time(22, 0), day_end=time(8, 0))


def test_instants_stay_inside_window_and_match_times():
    gen = DoseScheduleGenerator()
    sched = _schedule(times_per_period=3, times=["07:15", "13:00", "21:45"])
    allowed = {time(7, 15), time(13, 0), time(21, 45)}
    start = _at(2024, 1, 1)
    for offset in range(0, 72, 5):
        ws = start + timedelta(hours=offset)
        we = ws + timedelta(hours=17)
        for dose in gen.generate(sched, ws, we).doses:
            assert ws <= dose.scheduled_time < we
            assert dose.scheduled_time.timetz().replace(tzinfo=None) in allowed


def test_generate_is_idempotent():
    gen = DoseScheduleGenerator()
    sched = _schedule(times_per_period=4, times=[])
    first = gen.generate(sched, _at(2024, 1, 1, 5), _at(2024, 1, 4, 5))
    second = gen.generate(sched, _at(2024, 1, 1, 5), _at(2024, 1, 4, 5))
    assert first == second
    assert _times(first) == sorted(_times(first))


def test_overlapping_windows_union_without_duplicates():
    gen = DoseScheduleGenerator()
    sched = _schedule(times=["08:00", "08:00", "20:00"])
    a = gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 2, 12))
    b = gen.generate(sched, _at(2024, 1, 1, 12), _at(2024, 1, 3))
    assert len(a.doses) == 3
    union = {d.key: d for d in a.doses + b.doses}
    whole = gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 3))
    assert sorted(union) == [d.key for d in whole.doses]


def test_partial_explicit_times_warns():
    gen = DoseScheduleGenerator()
    sched = _schedule(times_per_period=3, times=["08:00"])
    result = gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 2))
    assert _times(result) == [_at(2024, 1, 1, 8)]
    assert len(result.warnings) == 1
    assert "3 doses per day" in result.warnings[0]
    assert "Carprofen" in result.warnings[0]


def test_fill_missing_times():
    assert fill_missing_times(_schedule(times_per_period=3, times=["08:00"])) == ("08:00", "12:40", "17:20")
    assert fill_missing_times(_schedule(times_per_period=3, times=["09:00"])) == ("08:00", "09:00", "12:40")
    assert fill_missing_times(_schedule(times_per_period=2, times=["20:00", "08:00"])) == ("08:00", "20:00")


@pytest.mark.parametrize(
    "overrides",
    [
        {"times": ["8:00"]},
        {"times": ["25:00"]},
        {"times": ["08:00", "noon"]},
        {"period": "fortnight"},
        {"times_per_period": 0},
        {"dose_amount": 0},
        {"dose_unit": "bucket"},
        {"start_date": "not-a-date"},
        {"end_date": "2023-12-01", "indefinite": False},
        {"end_date": None, "indefinite": False},
        {"reminder_lead_minutes": -5},
        {"reminder_lead_minutes": 1440},
    ],
)
def test_invalid_schedule_raises(overrides):
    gen = DoseScheduleGenerator()
    with pytest.raises(ValidationError) as exc:
        gen.generate(_schedule(**overrides), _at(2024, 1, 1), _at(2024, 1, 2))
    assert exc.value.medication_id == "med-1"
    assert "med-1" in str(exc.value)


def test_indefinite_ignores_end_date():
    gen = DoseScheduleGenerator()
    sched = _schedule(end_date="2023-12-01", indefinite=True)
    assert len(gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 2)).doses) == 2


def test_window_in_local_time_zone():
    tz = dt_util.get_time_zone("Europe/Berlin")
    gen = DoseScheduleGenerator()
    start = datetime(2024, 1, 1, tzinfo=tz)
    result = gen.generate(_schedule(), start, start + timedelta(days=1))
    assert [d.scheduled_time.hour for d in result.doses] == [8, 20]
    assert result.doses[0].scheduled_time == _at(2024, 1, 1, 7)


def test_disabled_schedule_is_not_validated():
    gen = DoseScheduleGenerator()
    sched = _schedule(reminders_enabled=False, times=["8am"], dose_unit="bucket")
    assert gen.generate(sched, _at(2024, 1, 1), _at(2024, 1, 8)).doses == ()
