import logging
import threading
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

import pytz
from pydantic import ValidationError

from medsched.core.config import GRACE_PERIOD_MINUTES, LATE_THRESHOLD_MINUTES
from medsched.schemas.models import (
    COMPLETED_STATUSES,
    DoseInstance,
    MedicationSchedule,
    ServiceResult,
    SkipReason,
)
from medsched.services.expander import expand_schedule, is_due_on
from medsched.utils.time_convert import get_zone

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = ("schedule_id", "medication_id", "patient_id")


def _schedule_id() -> str:
    return "sched_" + uuid.uuid4().hex[:10]


def _utcnow() -> datetime:
    return datetime.now(pytz.utc)


def _fail(failure: str, error: str) -> ServiceResult:
    return ServiceResult(ok=False, failure=failure, error=error)


class InMemorySchedulingService:
    """
    Process-local stand-in for the scheduling service, with the same operations
    as SchedulingClient. Instances are materialized from schedules on first
    fetch for a date and then owned here.

    Every read-check-write runs under one lock, so for a given instance only
    one state transition wins. Scheduled doses still pending grace_period_minutes
    after their time are moved to "missed" when the day is fetched.
    """

    def __init__(
        self,
        late_threshold_minutes: int = LATE_THRESHOLD_MINUTES,
        clock: Optional[Callable[[], datetime]] = None,
        grace_period_minutes: int = GRACE_PERIOD_MINUTES,
    ):
        if grace_period_minutes < late_threshold_minutes:
            raise ValueError("grace_period_minutes must be >= late_threshold_minutes")
        self.late_threshold_minutes = late_threshold_minutes
        self.grace_period_minutes = grace_period_minutes
        self.clock = clock or _utcnow
        self.schedules: Dict[str, MedicationSchedule] = {}
        self.instances: Dict[str, DoseInstance] = {}
        self.snooze_log: List[Dict[str, Any]] = []
        self._by_schedule: Dict[Optional[str], Set[str]] = {}
        self._lock = threading.RLock()

    def _store(self, inst: DoseInstance) -> None:
        self.instances[inst.instance_id] = inst
        self._by_schedule.setdefault(inst.schedule_id, set()).add(inst.instance_id)

    # ---- dose instances ----

    def get_today_dose_instances(self, patient_id: str, for_date: date, timezone: str) -> ServiceResult:
        try:
            tz = get_zone(timezone)
        except ValueError as e:
            return _fail("INVALID", str(e))

        with self._lock:
            now = self.clock()
            out: List[DoseInstance] = []
            for schedule in self.schedules.values():
                if schedule.patient_id != patient_id:
                    continue
                for fresh in expand_schedule(schedule, for_date, timezone):
                    if fresh.instance_id not in self.instances:
                        self._store(fresh)

                due_today = is_due_on(schedule, for_date)
                for instance_id in sorted(self._by_schedule.get(schedule.schedule_id, ())):
                    inst = self.instances[instance_id]
                    if inst.scheduled_at.astimezone(tz).date() != for_date:
                        continue
                    # a paused schedule hides its pending doses, not its history
                    if inst.status == "scheduled" and not due_today:
                        continue
                    out.append(self._expire(inst, now))

        out.sort(key=lambda d: (d.scheduled_at, d.medication_id, d.instance_id))
        return ServiceResult(ok=True, data=out)

    def detect_missed(self, now: Optional[datetime] = None) -> List[DoseInstance]:
        """Move every scheduled dose past its grace period to "missed"; returns the ones moved."""
        with self._lock:
            now = now or self.clock()
            moved = []
            for inst in list(self.instances.values()):
                updated = self._expire(inst, now)
                if updated is not inst:
                    moved.append(updated)
            return moved

    def _expire(self, inst: DoseInstance, now: datetime) -> DoseInstance:
        if inst.status != "scheduled":
            return inst
        if now <= inst.scheduled_at + timedelta(minutes=self.grace_period_minutes):
            return inst
        updated = inst.model_copy(update={"status": "missed"})
        self._store(updated)
        logger.info("Dose %s missed (no action within %d min)", inst.instance_id, self.grace_period_minutes)
        return updated

    def mark_dose_taken(self, instance_id: str, taken_at: datetime, notes: Optional[str] = None) -> ServiceResult:
        if taken_at.tzinfo is None or taken_at.utcoffset() is None:
            return _fail("INVALID", "taken_at must be timezone-aware")

        with self._lock:
            inst = self.instances.get(instance_id)
            if inst is None:
                return _fail("NOT_FOUND", f"dose instance {instance_id} not found")
            if inst.status in ("taken", "late"):
                return ServiceResult(ok=True, data=inst)  # already taken: no-op
            if inst.status != "scheduled":
                return _fail("CONFLICT", f"dose instance {instance_id} is already {inst.status}")

            diff_min = (taken_at - inst.scheduled_at).total_seconds() / 60
            minutes_late = max(0, int(diff_min))
            is_late = minutes_late > self.late_threshold_minutes

            updated = inst.model_copy(update={
                "status": "late" if is_late else "taken",
                "taken_at": taken_at,
                "minutes_late": minutes_late or None,
                "is_on_time": abs(diff_min) <= self.late_threshold_minutes,
                "notes": notes if notes is not None else inst.notes,
            })
            self._store(updated)

        logger.info("Dose %s marked %s (%d min late)", instance_id, updated.status, minutes_late)
        return ServiceResult(ok=True, data=updated)

    def skip_dose(self, instance_id: str, reason: SkipReason, notes: Optional[str] = None) -> ServiceResult:
        with self._lock:
            inst = self.instances.get(instance_id)
            if inst is None:
                return _fail("NOT_FOUND", f"dose instance {instance_id} not found")
            if inst.status == "skipped":
                return ServiceResult(ok=True, data=inst)
            if inst.status != "scheduled":
                return _fail("CONFLICT", f"dose instance {instance_id} is already {inst.status}")

            updated = inst.model_copy(update={"status": "skipped", "skip_reason": reason, "notes": notes})
            self._store(updated)

        logger.info("Dose %s skipped (%s)", instance_id, reason)
        return ServiceResult(ok=True, data=updated)

    def snooze_dose(self, instance_id: str, minutes: int, reason: Optional[str] = None) -> ServiceResult:
        if minutes <= 0:
            return _fail("INVALID", "snooze minutes must be positive")

        with self._lock:
            inst = self.instances.get(instance_id)
            if inst is None:
                return _fail("NOT_FOUND", f"dose instance {instance_id} not found")
            if inst.status in COMPLETED_STATUSES:
                return _fail("CONFLICT", f"dose instance {instance_id} is already {inst.status}")

            now = self.clock()
            # scheduled_at is left alone; only the next reminder moves
            updated = inst.model_copy(update={
                "snooze_count": inst.snooze_count + 1,
                "snoozed_until": now + timedelta(minutes=minutes),
            })
            self._store(updated)
            self.snooze_log.append({
                "instance_id": instance_id,
                "snoozed_at": now,
                "minutes": minutes,
                "reason": reason,
            })
        return ServiceResult(ok=True, data=updated)

    # ---- schedules ----

    def list_schedules(self, patient_id: str) -> List[MedicationSchedule]:
        with self._lock:
            return [s for s in self.schedules.values() if s.patient_id == patient_id]

    def create_schedule(self, schedule: MedicationSchedule) -> ServiceResult:
        schedule_id = schedule.schedule_id or _schedule_id()
        with self._lock:
            if schedule_id in self.schedules:
                return _fail("CONFLICT", f"schedule {schedule_id} already exists")
            self.schedules[schedule_id] = schedule.model_copy(update={"schedule_id": schedule_id})
        logger.info("Created schedule %s for medication %s", schedule_id, schedule.medication_id)
        return ServiceResult(ok=True, data=schedule_id)

    def update_schedule(self, schedule_id: str, partial: Dict[str, Any]) -> ServiceResult:
        with self._lock:
            existing = self.schedules.get(schedule_id)
            if existing is None:
                return _fail("NOT_FOUND", f"schedule {schedule_id} not found")

            changed = [k for k in _IMMUTABLE_FIELDS if k in partial and partial[k] != getattr(existing, k)]
            if changed:
                return _fail("INVALID", f"fields cannot be changed after creation: {changed}")

            try:
                updated = MedicationSchedule(**{**existing.model_dump(), **partial})
            except ValidationError as e:
                return _fail("INVALID", str(e))

            self.schedules[schedule_id] = updated
            self._drop_pending(schedule_id)
        return ServiceResult(ok=True, data=updated)

    def pause_schedule(self, schedule_id: str) -> ServiceResult:
        return self._set_paused(schedule_id, True)

    def resume_schedule(self, schedule_id: str) -> ServiceResult:
        return self._set_paused(schedule_id, False)

    def _set_paused(self, schedule_id: str, paused: bool) -> ServiceResult:
        with self._lock:
            existing = self.schedules.get(schedule_id)
            if existing is None:
                return _fail("NOT_FOUND", f"schedule {schedule_id} not found")
            updated = existing.model_copy(update={"is_paused": paused})
            self.schedules[schedule_id] = updated
        return ServiceResult(ok=True, data=updated)

    def _drop_pending(self, schedule_id: str) -> None:
        # pending doses are re-materialized from the edited schedule on next fetch
        ids = self._by_schedule.get(schedule_id, set())
        stale = [k for k in ids if self.instances[k].status == "scheduled"]
        for k in stale:
            del self.instances[k]
            ids.discard(k)
