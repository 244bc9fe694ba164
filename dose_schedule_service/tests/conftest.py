from datetime import date, datetime, timedelta

import pytest
import pytz

from medsched.schemas.models import DoseInstance, MedicationSchedule, TimeSlotConfig
from medsched.services.dose_store import InMemorySchedulingService

UTC = pytz.utc
TODAY = date(2026, 10, 19)  # a Monday


def at(hhmm: str, day: date = TODAY, tz=UTC) -> datetime:
    h, m = map(int, hhmm.split(":"))
    return tz.localize(datetime(day.year, day.month, day.day, h, m))


def dose(instance_id: str, scheduled_at: datetime, status: str = "scheduled", medication_id: str = "med_1") -> DoseInstance:
    return DoseInstance(
        instance_id=instance_id,
        schedule_id="sched_1",
        medication_id=medication_id,
        scheduled_at=scheduled_at,
        status=status,
    )


@pytest.fixture
def utc_config():
    return TimeSlotConfig(timezone="UTC")


@pytest.fixture
def make_schedule():
    def _make(**overrides):
        data = {
            "schedule_id": "sched_1",
            "medication_id": "med_1",
            "patient_id": "patient_1",
            "medication_name": "Metformin 500mg",
            "frequency": "twice_daily",
            "times": ["08:00", "20:00"],
            "start_date": TODAY,
            "is_indefinite": True,
            "timezone": "UTC",
        }
        data.update(overrides)
        return MedicationSchedule(**data)
    return _make


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(at("07:00"))


@pytest.fixture
def store(clock):
    return InMemorySchedulingService(late_threshold_minutes=30, clock=clock, grace_period_minutes=60)
