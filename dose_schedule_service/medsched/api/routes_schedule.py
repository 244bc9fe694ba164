from fastapi import APIRouter, HTTPException
from typing import List

from medsched.schemas.models import (
    Buckets,
    ClassifyRequest,
    ConvertRequest,
    ConvertResponse,
    DoseInstance,
    ExpandRequest,
    FrequencyRequest,
    FrequencyResponse,
    TimeSlotConfig,
)
from medsched.services.classifier import classify
from medsched.services.expander import expand_schedule
from medsched.services.frequency import (
    expected_dose_count,
    generate_default_times,
    normalize_frequency,
    validate_times,
)
from medsched.utils.time_convert import to_local, to_utc

router = APIRouter(prefix="/schedule", tags=["schedule"])

@router.post("/frequency", response_model=FrequencyResponse)
def frequency(req: FrequencyRequest):
    freq = normalize_frequency(req.raw)
    times = generate_default_times(freq, TimeSlotConfig.preset(req.work_schedule))
    validate_times(req.raw, freq, times)
    return FrequencyResponse(
        raw=req.raw,
        frequency=freq,
        expected_count=expected_dose_count(freq),
        default_times=times,
    )

@router.post("/expand", response_model=List[DoseInstance])
def expand(req: ExpandRequest):
    try:
        return expand_schedule(req.schedule, req.for_date, req.timezone)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/classify", response_model=Buckets)
def classify_instances(req: ClassifyRequest):
    try:
        return classify(req.instances, req.now, req.config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@router.post("/convert", response_model=ConvertResponse)
def convert(req: ConvertRequest):
    fn = to_utc if req.direction == "TO_UTC" else to_local
    try:
        times = fn(req.times, req.reference_date, req.timezone)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ConvertResponse(
        times=times,
        reference_date=req.reference_date,
        timezone=req.timezone,
        direction=req.direction,
    )
