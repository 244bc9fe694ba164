from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from medsched.core.config import DEFAULT_TIMEZONE, DUE_SOON_WINDOW_MINUTES, NOW_WINDOW_MINUTES
from medsched.utils.time_convert import normalize_hhmm

Frequency = Literal[
    "daily",
    "twice_daily",
    "three_times_daily",
    "four_times_daily",
    "weekly",
    "monthly",
    "as_needed",
]
DoseStatus = Literal["scheduled", "taken", "missed", "skipped", "late"]
SkipReason = Literal["forgot", "felt_sick", "ran_out", "side_effects", "other"]
TimeSlotName = Literal["morning", "noon", "evening", "bedtime"]
WorkSchedule = Literal["standard", "night_shift"]
BucketName = Literal[
    "overdue", "now", "due_soon", "morning", "noon", "evening", "bedtime", "other", "completed"
]
FailureKind = Literal["NETWORK", "AUTH_EXPIRED", "SERVER", "NOT_FOUND", "CONFLICT", "INVALID", "UNKNOWN"]
ConvertDirection = Literal["TO_UTC", "TO_LOCAL"]

# terminal for the instance; "late" means taken after the late threshold
COMPLETED_STATUSES = ("taken", "missed", "skipped", "late")

TIME_SLOT_ORDER: Tuple[TimeSlotName, ...] = ("morning", "noon", "evening", "bedtime")
BUCKET_ORDER: Tuple[BucketName, ...] = (
    "overdue", "now", "due_soon", "morning", "noon", "evening", "bedtime", "other", "completed"
)

DEFAULT_TIME_SLOTS: Dict[str, Dict[str, Dict[str, str]]] = {
    "standard": {
        "morning": {"start": "06:00", "end": "10:00", "default_time": "07:00", "label": "Morning"},
        "noon": {"start": "11:00", "end": "14:00", "default_time": "12:00", "label": "Noon"},
        "evening": {"start": "17:00", "end": "20:00", "default_time": "18:00", "label": "Evening"},
        "bedtime": {"start": "21:00", "end": "23:59", "default_time": "22:00", "label": "Bedtime"},
    },
    "night_shift": {
        "morning": {"start": "14:00", "end": "18:00", "default_time": "15:00", "label": "Morning"},
        "noon": {"start": "19:00", "end": "22:00", "default_time": "20:00", "label": "Noon"},
        "evening": {"start": "23:00", "end": "02:00", "default_time": "00:00", "label": "Late Evening"},
        "bedtime": {"start": "06:00", "end": "10:00", "default_time": "08:00", "label": "Morning Sleep"},
    },
}


class MedicationSchedule(BaseModel):
    schedule_id: Optional[str] = None
    medication_id: str
    patient_id: str
    medication_name: Optional[str] = None
    frequency: Frequency = "daily"
    times: List[str] = Field(default_factory=list, description="HH:MM, stored in UTC")
    days_of_week: List[int] = Field(default_factory=list, description="0=Sunday .. 6=Saturday")
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_indefinite: bool = False
    is_active: bool = True
    is_paused: bool = False
    timezone: str = DEFAULT_TIMEZONE

    @field_validator("times")
    @classmethod
    def _normalize_times(cls, v: List[str]) -> List[str]:
        # malformed entries are kept; the expander drops and logs them one by one
        out: List[str] = []
        for t in v:
            key = normalize_hhmm(t) or str(t).strip()
            if key not in out:
                out.append(key)
        return out

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, v: List[int]) -> List[int]:
        bad = [d for d in v if not 0 <= d <= 6]
        if bad:
            raise ValueError(f"days_of_week must be 0-6 (Sunday=0), got {bad}")
        return sorted(set(v))

    @model_validator(mode="after")
    def _check_schedule(self) -> "MedicationSchedule":
        if (
            not self.is_indefinite
            and self.start_date is not None
            and self.end_date is not None
            and self.end_date <= self.start_date
        ):
            raise ValueError("end_date must be after start_date")
        if self.frequency == "weekly" and not self.days_of_week:
            raise ValueError("weekly schedules need at least one day in days_of_week")
        return self


class DoseInstance(BaseModel):
    instance_id: str
    schedule_id: Optional[str] = None
    medication_id: str
    medication_name: Optional[str] = None
    scheduled_at: datetime
    status: DoseStatus = "scheduled"

    # owned by the scheduling service
    taken_at: Optional[datetime] = None
    minutes_late: Optional[int] = None
    is_on_time: Optional[bool] = None
    skip_reason: Optional[SkipReason] = None
    notes: Optional[str] = None
    snooze_count: int = 0
    snoozed_until: Optional[datetime] = None

    @field_validator("scheduled_at")
    @classmethod
    def _require_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("scheduled_at must be timezone-aware")
        return v


class TimeWindow(BaseModel):
    start: str
    end: str
    default_time: str
    label: str = ""

    @field_validator("start", "end", "default_time")
    @classmethod
    def _valid_hhmm(cls, v: str) -> str:
        norm = normalize_hhmm(v)
        if norm is None:
            raise ValueError(f"Invalid time {v!r}, expected HH:MM")
        return norm


class TimeSlotConfig(BaseModel):
    timezone: str = DEFAULT_TIMEZONE
    work_schedule: WorkSchedule = "standard"
    morning: TimeWindow
    noon: TimeWindow
    evening: TimeWindow
    bedtime: TimeWindow
    now_window_minutes: int = Field(default=NOW_WINDOW_MINUTES, ge=0)
    due_soon_window_minutes: int = Field(default=DUE_SOON_WINDOW_MINUTES, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _fill_slots(cls, data: Any) -> Any:
        # slots left out come from the work-schedule preset
        if isinstance(data, dict):
            preset = DEFAULT_TIME_SLOTS.get(data.get("work_schedule") or "standard", DEFAULT_TIME_SLOTS["standard"])
            data = {**data}
            for name in TIME_SLOT_ORDER:
                if data.get(name) is None:
                    data[name] = dict(preset[name])
        return data

    @model_validator(mode="after")
    def _check_windows(self) -> "TimeSlotConfig":
        if self.due_soon_window_minutes < self.now_window_minutes:
            raise ValueError("due_soon_window_minutes must be >= now_window_minutes")
        return self

    @classmethod
    def preset(cls, work_schedule: WorkSchedule = "standard", timezone: str = DEFAULT_TIMEZONE, **overrides: Any):
        return cls(timezone=timezone, work_schedule=work_schedule, **overrides)

    def windows(self) -> List[Tuple[TimeSlotName, TimeWindow]]:
        return [(name, getattr(self, name)) for name in TIME_SLOT_ORDER]


class Buckets(BaseModel):
    overdue: List[DoseInstance] = Field(default_factory=list)
    now: List[DoseInstance] = Field(default_factory=list)
    due_soon: List[DoseInstance] = Field(default_factory=list)
    morning: List[DoseInstance] = Field(default_factory=list)
    noon: List[DoseInstance] = Field(default_factory=list)
    evening: List[DoseInstance] = Field(default_factory=list)
    bedtime: List[DoseInstance] = Field(default_factory=list)
    other: List[DoseInstance] = Field(default_factory=list)
    completed: List[DoseInstance] = Field(default_factory=list)

    timezone: str = DEFAULT_TIMEZONE
    generated_at: datetime

    def get(self, name: BucketName) -> List[DoseInstance]:
        return getattr(self, name)

    def total(self) -> int:
        return sum(len(self.get(name)) for name in BUCKET_ORDER)


class ServiceResult(BaseModel):
    ok: bool
    data: Any = None
    error: Optional[str] = None
    failure: Optional[FailureKind] = None


class AdherenceSummary(BaseModel):
    patient_id: Optional[str] = None
    total: int
    scheduled: int
    taken: int
    late: int
    missed: int
    skipped: int
    adherence_rate: float
    on_time_rate: float
    avg_delay_minutes: Optional[float] = None


# ---- request / response bodies ----

class FrequencyRequest(BaseModel):
    raw: str
    work_schedule: WorkSchedule = "standard"

class FrequencyResponse(BaseModel):
    raw: str
    frequency: Frequency
    expected_count: int
    default_times: List[str]

class ExpandRequest(BaseModel):
    schedule: MedicationSchedule
    for_date: date
    timezone: Optional[str] = None  # falls back to schedule.timezone

class ClassifyRequest(BaseModel):
    instances: List[DoseInstance]
    now: datetime
    config: Optional[TimeSlotConfig] = None

class ConvertRequest(BaseModel):
    times: List[str]
    reference_date: date
    timezone: str
    direction: ConvertDirection = "TO_UTC"

class ConvertResponse(BaseModel):
    times: List[str]
    reference_date: date
    timezone: str
    direction: ConvertDirection

class TakeRequest(BaseModel):
    taken_at: Optional[datetime] = None  # defaults to request time
    notes: Optional[str] = None

    @field_validator("taken_at")
    @classmethod
    def _require_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and (v.tzinfo is None or v.utcoffset() is None):
            raise ValueError("taken_at must include a UTC offset")
        return v

class SkipRequest(BaseModel):
    reason: SkipReason
    notes: Optional[str] = None

class SnoozeRequest(BaseModel):
    minutes: int = Field(..., gt=0, le=24 * 60)
    reason: Optional[str] = None

class TodayResponse(BaseModel):
    patient_id: str
    for_date: date
    buckets: Buckets
    counts: Dict[str, int]
    adherence: AdherenceSummary
