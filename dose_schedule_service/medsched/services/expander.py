import calendar
import logging
from datetime import date, timedelta
from typing import List, Optional

from medsched.schemas.models import DoseInstance, MedicationSchedule
from medsched.utils.time_convert import get_zone, utc_instant_for_local_date

logger = logging.getLogger(__name__)


def sunday_weekday(d: date) -> int:
    """0=Sunday .. 6=Saturday"""
    return (d.weekday() + 1) % 7


def _monthly_target_day(schedule: MedicationSchedule, for_date: date) -> Optional[int]:
    dom = schedule.day_of_month
    if dom is None and schedule.start_date is not None:
        dom = schedule.start_date.day
    if dom is None:
        return None
    last_day = calendar.monthrange(for_date.year, for_date.month)[1]
    return min(dom, last_day)


def is_due_on(schedule: MedicationSchedule, for_date: date) -> bool:
    if not schedule.is_active or schedule.is_paused:
        return False
    if schedule.frequency == "as_needed":
        return False  # PRN doses are logged when taken, never scheduled
    if schedule.start_date is not None and for_date < schedule.start_date:
        return False
    if not schedule.is_indefinite and schedule.end_date is not None and for_date > schedule.end_date:
        return False

    if schedule.frequency == "weekly":
        return sunday_weekday(for_date) in schedule.days_of_week
    if schedule.frequency == "monthly":
        target = _monthly_target_day(schedule, for_date)
        if target is None:
            logger.warning("Monthly schedule %s has no day_of_month; nothing to expand", schedule.schedule_id)
            return False
        return for_date.day == target
    return True


def instance_id_for(schedule: MedicationSchedule, for_date: date, utc_hhmm: str) -> str:
    owner = schedule.schedule_id or schedule.medication_id
    return f"{owner}:{for_date.isoformat()}:{utc_hhmm}"


def expand_schedule(
    schedule: MedicationSchedule,
    for_date: date,
    timezone: Optional[str] = None,
) -> List[DoseInstance]:
    """
    Dose instances a schedule would produce on for_date (a local calendar date).
    Stored UTC times are placed on the UTC instant whose local date is for_date
    and expressed in the patient's zone. Malformed times are skipped one by one.
    """
    if not is_due_on(schedule, for_date):
        return []

    tz = get_zone(timezone or schedule.timezone)
    instances: List[DoseInstance] = []

    for t in schedule.times:
        try:
            scheduled_utc = utc_instant_for_local_date(t, for_date, tz)
        except ValueError:
            logger.warning(
                "Skipping malformed time %r in schedule %s (medication %s)",
                t, schedule.schedule_id, schedule.medication_id,
            )
            continue

        instances.append(DoseInstance(
            instance_id=instance_id_for(schedule, for_date, t),
            schedule_id=schedule.schedule_id,
            medication_id=schedule.medication_id,
            medication_name=schedule.medication_name,
            scheduled_at=scheduled_utc.astimezone(tz),
            status="scheduled",
        ))

    instances.sort(key=lambda d: d.scheduled_at)
    return instances


def expand_range(
    schedule: MedicationSchedule,
    start: date,
    end: date,
    timezone: Optional[str] = None,
) -> List[DoseInstance]:
    if end < start:
        raise ValueError("end must not be before start")
    out: List[DoseInstance] = []
    d = start
    while d <= end:
        out.extend(expand_schedule(schedule, d, timezone))
        d += timedelta(days=1)
    return out
