import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from medsched.schemas.models import DEFAULT_TIME_SLOTS, Frequency, TimeSlotConfig, TimeSlotName

logger = logging.getLogger(__name__)

FREQUENCIES: Tuple[Frequency, ...] = (
    "daily",
    "twice_daily",
    "three_times_daily",
    "four_times_daily",
    "weekly",
    "monthly",
    "as_needed",
)

FREQ_MAP: Dict[str, Frequency] = {
    "daily": "daily", "once daily": "daily", "once a day": "daily", "once": "daily",
    "od": "daily", "qd": "daily", "1x": "daily", "every day": "daily", "every 24 hours": "daily",
    "twice daily": "twice_daily", "twice a day": "twice_daily", "twice": "twice_daily",
    "bid": "twice_daily", "bd": "twice_daily", "2x": "twice_daily",
    "three times daily": "three_times_daily", "three times a day": "three_times_daily",
    "thrice daily": "three_times_daily", "thrice": "three_times_daily",
    "tid": "three_times_daily", "tds": "three_times_daily", "3x": "three_times_daily",
    "four times daily": "four_times_daily", "four times a day": "four_times_daily",
    "qid": "four_times_daily", "qds": "four_times_daily", "4x": "four_times_daily",
    "weekly": "weekly", "once weekly": "weekly", "once a week": "weekly", "qw": "weekly",
    "monthly": "monthly", "once monthly": "monthly", "once a month": "monthly",
    "as needed": "as_needed", "as required": "as_needed", "prn": "as_needed",
}

# checked in order; multi-dose and PRN wording must win over a trailing "daily"
_KEYWORD_RULES: List[Tuple[re.Pattern, Frequency]] = [
    (re.compile(r"\b(prn|as needed|as required|when needed|if needed)\b"), "as_needed"),
    (re.compile(r"\b(qid|qds|four times|4 times|4x)\b"), "four_times_daily"),
    (re.compile(r"\b(tid|tds|three times|3 times|thrice|3x)\b"), "three_times_daily"),
    (re.compile(r"\b(bid|bd|twice|two times|2 times|2x)\b"), "twice_daily"),
    (re.compile(r"\b(weekly|week)\b"), "weekly"),
    (re.compile(r"\b(monthly|month)\b"), "monthly"),
    (re.compile(r"\b(daily|once|od|qd|every day|1x)\b"), "daily"),
]

_EVERY_N_HOURS_RE = re.compile(r"\bevery\s+(\d{1,2})\s*(?:hours?|hrs?|h)\b")

_EXPECTED_COUNT: Dict[str, int] = {
    "daily": 1,
    "twice_daily": 2,
    "three_times_daily": 3,
    "four_times_daily": 4,
    "weekly": 1,
    "monthly": 1,
    "as_needed": 0,
}

_DEFAULT_SLOTS: Dict[str, Sequence[TimeSlotName]] = {
    "daily": ("morning",),
    "twice_daily": ("morning", "evening"),
    "three_times_daily": ("morning", "noon", "evening"),
    "four_times_daily": ("morning", "noon", "evening", "bedtime"),
    "weekly": ("morning",),
    "monthly": ("morning",),
    "as_needed": (),
}


def _every_n_hours(freq: str) -> Optional[Frequency]:
    m = _EVERY_N_HOURS_RE.search(freq)
    if not m:
        return None
    hours = int(m.group(1))
    if hours <= 0:
        return None
    if hours >= 24:
        return "daily"
    if hours >= 12:
        return "twice_daily"
    if hours >= 8:
        return "three_times_daily"
    # every 4/6 hours: capped at the largest canonical frequency
    return "four_times_daily"


def normalize_frequency(raw: Optional[str]) -> Frequency:
    """
    Map free-text or enumerated frequency wording to a canonical frequency.
    Unknown input falls back to "daily" with a warning; never raises.
    """
    f = re.sub(r"\s+", " ", (raw or "").lower().strip().replace("_", " ").replace("-", " "))
    f = f.rstrip(".")

    canonical = f.replace(" ", "_")
    if canonical in _EXPECTED_COUNT:
        return canonical  # type: ignore[return-value]

    if f in FREQ_MAP:
        return FREQ_MAP[f]

    every = _every_n_hours(f)
    if every:
        return every

    for pattern, freq in _KEYWORD_RULES:
        if pattern.search(f):
            return freq

    logger.warning("Unknown frequency %r, defaulting to daily", raw)
    return "daily"


def expected_dose_count(frequency: Frequency) -> int:
    return _EXPECTED_COUNT.get(frequency, 1)


def generate_default_times(frequency: Frequency, slots: Optional[TimeSlotConfig] = None) -> List[str]:
    """Default local HH:MM times for a frequency, ascending and without duplicates."""
    names = _DEFAULT_SLOTS.get(frequency, ("morning",))
    if slots is not None:
        times = [getattr(slots, n).default_time for n in names]
    else:
        times = [DEFAULT_TIME_SLOTS["standard"][n]["default_time"] for n in names]
    unique = sorted(set(times))
    if len(unique) < len(times):
        logger.warning(
            "Slots %s share a default time; %s yields %d time(s) instead of %d",
            list(names), frequency, len(unique), len(times),
        )
    return unique


def validate_times(raw: Optional[str], frequency: Frequency, times: Sequence[str]) -> bool:
    expected = expected_dose_count(frequency)
    if len(times) != expected:
        logger.warning(
            "Frequency %r (%s) expects %d time(s), got %d: %s",
            raw, frequency, expected, len(times), list(times),
        )
        return False
    return True
