import logging
from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from medsched.services.expander import expand_range, expand_schedule, sunday_weekday
from conftest import TODAY


def _hhmm(instances):
    return [d.scheduled_at.strftime("%H:%M") for d in instances]


def test_twice_daily_expands_each_time(make_schedule):
    out = expand_schedule(make_schedule(), TODAY)
    assert _hhmm(out) == ["08:00", "20:00"]
    assert all(d.status == "scheduled" for d in out)
    assert [d.instance_id for d in out] == ["sched_1:2026-10-19:08:00", "sched_1:2026-10-19:20:00"]


def test_instances_are_chronological(make_schedule):
    out = expand_schedule(make_schedule(times=["20:00", "08:00"]), TODAY)
    assert _hhmm(out) == ["08:00", "20:00"]


@pytest.mark.parametrize("overrides", [
    {"is_active": False},
    {"is_paused": True},
    {"frequency": "as_needed", "times": ["08:00"]},
])
def test_no_doses_for_inactive_paused_or_prn(make_schedule, overrides):
    assert expand_schedule(make_schedule(**overrides), TODAY) == []


def test_date_bounds(make_schedule):
    bounded = make_schedule(is_indefinite=False, end_date=TODAY + timedelta(days=2))
    assert expand_schedule(bounded, TODAY - timedelta(days=1)) == []
    assert len(expand_schedule(bounded, TODAY + timedelta(days=2))) == 2
    assert expand_schedule(bounded, TODAY + timedelta(days=3)) == []


def test_indefinite_ignores_end_date(make_schedule):
    s = make_schedule(is_indefinite=True, end_date=TODAY + timedelta(days=1))
    assert len(expand_schedule(s, TODAY + timedelta(days=30))) == 2


def test_weekly_uses_sunday_zero(make_schedule):
    assert sunday_weekday(TODAY) == 1  # Monday
    assert sunday_weekday(date(2026, 10, 18)) == 0
    s = make_schedule(frequency="weekly", times=["09:00"], days_of_week=[1], start_date=date(2026, 10, 1))
    assert _hhmm(expand_schedule(s, TODAY)) == ["09:00"]
    assert expand_schedule(s, date(2026, 10, 18)) == []


def test_weekly_over_a_week(make_schedule):
    s = make_schedule(frequency="weekly", times=["09:00"], days_of_week=[1, 3, 5], start_date=date(2026, 10, 1))
    out = expand_range(s, date(2026, 10, 18), date(2026, 10, 24))
    assert [d.scheduled_at.date() for d in out] == [date(2026, 10, 19), date(2026, 10, 21), date(2026, 10, 23)]


@pytest.mark.parametrize("day,expected", [
    (date(2026, 9, 30), 1),   # 30-day month clamps day 31
    (date(2026, 9, 29), 0),
    (date(2026, 2, 28), 1),   # February
    (date(2026, 10, 30), 0),
    (date(2026, 10, 31), 1),
])
def test_monthly_day_31_clamps_to_month_end(make_schedule, day, expected):
    s = make_schedule(frequency="monthly", times=["09:00"], day_of_month=31, start_date=date(2026, 1, 1))
    assert len(expand_schedule(s, day)) == expected


def test_monthly_without_day_uses_start_date(make_schedule):
    s = make_schedule(frequency="monthly", times=["09:00"], start_date=date(2026, 1, 19))
    assert len(expand_schedule(s, TODAY)) == 1
    assert expand_schedule(s, TODAY + timedelta(days=1)) == []


def test_malformed_time_does_not_hide_the_rest(make_schedule, caplog):
    s = make_schedule(times=["08:00", "99:99", "later", "20:00"])
    with caplog.at_level(logging.WARNING, logger="medsched.services.expander"):
        out = expand_schedule(s, TODAY)
    assert _hhmm(out) == ["08:00", "20:00"]
    assert "99:99" in caplog.text


def test_utc_times_shown_in_patient_zone(make_schedule):
    s = make_schedule(times=["13:00"], timezone="America/New_York", start_date=date(2026, 1, 1))
    (winter,) = expand_schedule(s, date(2026, 1, 15))
    (summer,) = expand_schedule(s, date(2026, 7, 15))
    assert winter.scheduled_at.strftime("%H:%M") == "08:00"
    assert summer.scheduled_at.strftime("%H:%M") == "09:00"
    assert winter.scheduled_at.date() == date(2026, 1, 15)


def test_times_are_normalized_and_deduplicated(make_schedule):
    s = make_schedule(times=["8:00", "08:00", "20:00"])
    assert s.times == ["08:00", "20:00"]


def test_schedule_invariants(make_schedule):
    with pytest.raises(ValidationError):
        make_schedule(frequency="weekly", times=["09:00"], days_of_week=[])
    with pytest.raises(ValidationError):
        make_schedule(days_of_week=[7])
    with pytest.raises(ValidationError):
        make_schedule(is_indefinite=False, end_date=TODAY)
    with pytest.raises(ValidationError):
        make_schedule(frequency="monthly", day_of_month=32)
