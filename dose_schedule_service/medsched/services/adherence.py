from typing import Iterable, Optional

from medsched.schemas.models import AdherenceSummary, DoseInstance


def summarize_adherence(instances: Iterable[DoseInstance], patient_id: Optional[str] = None) -> AdherenceSummary:
    """adherence = (taken + late) / total; on-time = taken / total"""
    items = list(instances)

    scheduled = sum(1 for d in items if d.status == "scheduled")
    taken = sum(1 for d in items if d.status == "taken")
    late = sum(1 for d in items if d.status == "late")
    missed = sum(1 for d in items if d.status == "missed")
    skipped = sum(1 for d in items if d.status == "skipped")
    total = len(items)

    rate = ((taken + late) / total) if total else 0.0
    on_time = (taken / total) if total else 0.0
    delays = [d.minutes_late for d in items if d.status in ("taken", "late") and d.minutes_late is not None]
    avg_delay = (sum(delays) / len(delays)) if delays else None

    return AdherenceSummary(
        patient_id=patient_id,
        total=total,
        scheduled=scheduled,
        taken=taken,
        late=late,
        missed=missed,
        skipped=skipped,
        adherence_rate=round(rate, 3),
        on_time_rate=round(on_time, 3),
        avg_delay_minutes=round(avg_delay, 1) if avg_delay is not None else None,
    )
