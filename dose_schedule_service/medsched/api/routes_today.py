from datetime import datetime
from typing import Any, Dict, Optional

import pytz
from fastapi import APIRouter, Depends, HTTPException

from medsched.core.config import DEFAULT_TIMEZONE
from medsched.schemas.models import (
    DoseInstance,
    MedicationSchedule,
    ServiceResult,
    SkipRequest,
    SnoozeRequest,
    TakeRequest,
    TimeSlotConfig,
    TodayResponse,
    WorkSchedule,
)
from medsched.services.adherence import summarize_adherence
from medsched.services.backend import SchedulingService, get_scheduling_service
from medsched.services.classifier import bucket_counts, classify
from medsched.utils.time_convert import get_zone

router = APIRouter(prefix="/today", tags=["today"])

_STATUS_FOR_FAILURE = {
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "INVALID": 400,
    "AUTH_EXPIRED": 401,
    "NETWORK": 503,
    "SERVER": 502,
    "UNKNOWN": 502,
}

def _unwrap(result: ServiceResult) -> Any:
    if result.ok:
        return result.data
    raise HTTPException(
        status_code=_STATUS_FOR_FAILURE.get(result.failure or "UNKNOWN", 502),
        detail={"failure": result.failure, "error": result.error},
    )

@router.get("/buckets", response_model=TodayResponse)
def today_buckets(
    patient_id: str,
    timezone: str = DEFAULT_TIMEZONE,
    work_schedule: WorkSchedule = "standard",
    now: Optional[datetime] = None,
    service: SchedulingService = Depends(get_scheduling_service),
):
    try:
        tz = get_zone(timezone)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    now = now or datetime.now(pytz.utc)
    if now.tzinfo is None:
        raise HTTPException(status_code=400, detail="now must include a UTC offset")

    for_date = now.astimezone(tz).date()
    instances = _unwrap(service.get_today_dose_instances(patient_id, for_date, timezone))

    config = TimeSlotConfig.preset(work_schedule, timezone=timezone)
    buckets = classify(instances, now, config)

    return TodayResponse(
        patient_id=patient_id,
        for_date=for_date,
        buckets=buckets,
        counts=bucket_counts(buckets),
        adherence=summarize_adherence(instances, patient_id),
    )

@router.post("/doses/{instance_id}/take", response_model=DoseInstance)
def take_dose(
    instance_id: str,
    req: TakeRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    taken_at = req.taken_at or datetime.now(pytz.utc)
    return _unwrap(service.mark_dose_taken(instance_id, taken_at, req.notes))

@router.post("/doses/{instance_id}/skip", response_model=DoseInstance)
def skip_dose(
    instance_id: str,
    req: SkipRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _unwrap(service.skip_dose(instance_id, req.reason, req.notes))

@router.post("/doses/{instance_id}/snooze", response_model=DoseInstance)
def snooze_dose(
    instance_id: str,
    req: SnoozeRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _unwrap(service.snooze_dose(instance_id, req.minutes, req.reason))

@router.post("/schedules")
def create_schedule(
    schedule: MedicationSchedule,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return {"schedule_id": _unwrap(service.create_schedule(schedule))}

@router.patch("/schedules/{schedule_id}", response_model=MedicationSchedule)
def update_schedule(
    schedule_id: str,
    partial: Dict[str, Any],
    service: SchedulingService = Depends(get_scheduling_service),
):
    return _unwrap(service.update_schedule(schedule_id, partial))

@router.post("/schedules/{schedule_id}/pause", response_model=MedicationSchedule)
def pause_schedule(schedule_id: str, service: SchedulingService = Depends(get_scheduling_service)):
    return _unwrap(service.pause_schedule(schedule_id))

@router.post("/schedules/{schedule_id}/resume", response_model=MedicationSchedule)
def resume_schedule(schedule_id: str, service: SchedulingService = Depends(get_scheduling_service)):
    return _unwrap(service.resume_schedule(schedule_id))
