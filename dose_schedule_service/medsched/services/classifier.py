"""
Time bucket classification for today's dose instances.

Precedence (first match wins):
  completed  status is taken / missed / skipped / late
  overdue    scheduled and strictly in the past
  now        scheduled, 0 <= minutes until due <= now window
  due_soon   scheduled, now window < minutes until due <= due-soon window
  morning / noon / evening / bedtime   local time inside the slot [start, end)
  other      none of the slots matched

Pure function of (instances, now, config); callers re-run it on every refresh.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from medsched.schemas.models import (
    BUCKET_ORDER,
    COMPLETED_STATUSES,
    BucketName,
    Buckets,
    DoseInstance,
    TimeSlotConfig,
    TimeWindow,
)
from medsched.utils.time_convert import MINUTES_PER_DAY, get_zone, hhmm_to_minutes, local_minutes

logger = logging.getLogger(__name__)


def _window_bounds(window: TimeWindow):
    start = hhmm_to_minutes(window.start)
    end = hhmm_to_minutes(window.end)
    if window.end == "23:59":
        end = MINUTES_PER_DAY
    return start, end


def in_window(window: TimeWindow, minutes: int) -> bool:
    start, end = _window_bounds(window)
    if start < end:
        return start <= minutes < end
    if start > end:
        # wraps past midnight (night-shift slots)
        return minutes >= start or minutes < end
    return False


def time_slot_for(scheduled_at: datetime, config: TimeSlotConfig) -> BucketName:
    minutes = local_minutes(scheduled_at, config.timezone)
    for name, window in config.windows():
        if in_window(window, minutes):
            return name
    return "other"


def bucket_for(instance: DoseInstance, now: datetime, config: TimeSlotConfig) -> BucketName:
    if instance.status in COMPLETED_STATUSES:
        return "completed"

    delta = instance.scheduled_at - now
    if delta < timedelta(0):
        return "overdue"
    if delta <= timedelta(minutes=config.now_window_minutes):
        return "now"
    if delta <= timedelta(minutes=config.due_soon_window_minutes):
        return "due_soon"
    return time_slot_for(instance.scheduled_at, config)


def _sort_key(d: DoseInstance):
    return (d.scheduled_at, d.medication_id, d.instance_id)


def classify(
    instances: Iterable[DoseInstance],
    now: datetime,
    config: Optional[TimeSlotConfig] = None,
) -> Buckets:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("now must be timezone-aware")

    config = config or TimeSlotConfig()
    tz = get_zone(config.timezone)

    grouped: Dict[str, List[DoseInstance]] = {name: [] for name in BUCKET_ORDER}
    for inst in instances:
        grouped[bucket_for(inst, now, config)].append(inst)

    for name, items in grouped.items():
        items.sort(key=_sort_key, reverse=(name == "completed"))

    if grouped["other"]:
        logger.debug("%d dose(s) outside every time slot window", len(grouped["other"]))

    return Buckets(timezone=config.timezone, generated_at=now.astimezone(tz), **grouped)


def bucket_counts(buckets: Buckets) -> Dict[str, int]:
    return {name: len(buckets.get(name)) for name in BUCKET_ORDER}
