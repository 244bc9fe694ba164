# medsched/utils/time_convert.py
"""
Local <-> UTC conversion for wall-clock dose times.

Schedules are authored in the patient's local time but stored as UTC "HH:MM".
The reference date decides which offset applies, so the same stored value can
map to different local clock times on either side of a DST change.

DST policy:
  - ambiguous local time (fall-back overlap)  -> earlier occurrence (DST side)
  - nonexistent local time (spring-forward)   -> read with the standard offset,
                                                which lands after the gap
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable, List, Optional, Tuple, Union

import pytz

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

MINUTES_PER_DAY = 24 * 60

Zone = Union[str, tzinfo]


def parse_hhmm(hhmm: str) -> Tuple[int, int]:
    m = _TIME_RE.match(str(hhmm if hhmm is not None else "").strip())
    if not m:
        raise ValueError(f"Invalid time {hhmm!r}, expected HH:MM")
    h, mi = int(m.group(1)), int(m.group(2))
    if not (0 <= h <= 23 and 0 <= mi <= 59):
        raise ValueError(f"Time out of range: {hhmm!r}")
    return h, mi


def normalize_hhmm(hhmm: str) -> Optional[str]:
    """'8:05' -> '08:05'; None when the value is not a valid time."""
    try:
        h, m = parse_hhmm(hhmm)
    except ValueError:
        return None
    return f"{h:02d}:{m:02d}"


def hhmm_to_minutes(hhmm: str) -> int:
    h, m = parse_hhmm(hhmm)
    return h * 60 + m


def format_hhmm(total_minutes: int) -> str:
    total_minutes %= MINUTES_PER_DAY
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def get_zone(timezone: Zone) -> tzinfo:
    if not isinstance(timezone, str):
        return timezone
    try:
        return pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError as e:
        raise ValueError(f"Unknown timezone: {timezone}") from e


def _localize(tz: tzinfo, naive: datetime) -> datetime:
    if not hasattr(tz, "localize"):
        return naive.replace(tzinfo=tz)
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.AmbiguousTimeError:
        return tz.localize(naive, is_dst=True)
    except pytz.NonExistentTimeError:
        return tz.normalize(tz.localize(naive, is_dst=False))


def localize(local_date: date, hhmm: str, timezone: Zone) -> datetime:
    """Aware datetime for a local wall-clock time on local_date."""
    tz = get_zone(timezone)
    h, m = parse_hhmm(hhmm)
    naive = datetime(local_date.year, local_date.month, local_date.day, h, m)
    return _localize(tz, naive)


def utc_instant_for_local_date(utc_hhmm: str, local_date: date, timezone: Zone) -> datetime:
    """
    The UTC instant with clock time utc_hhmm whose local calendar date is
    local_date. On a 25-hour day two instants can qualify; the earlier wins.
    """
    tz = get_zone(timezone)
    h, m = parse_hhmm(utc_hhmm)

    for offset in (-1, 0, 1):
        d = local_date + timedelta(days=offset)
        inst = datetime(d.year, d.month, d.day, h, m, tzinfo=pytz.utc)
        if inst.astimezone(tz).date() == local_date:
            return inst

    # short spring-forward day where no candidate lands on local_date
    return datetime(local_date.year, local_date.month, local_date.day, h, m, tzinfo=pytz.utc)


def to_utc(local_times: Iterable[str], reference_date: date, timezone: Zone) -> List[str]:
    tz = get_zone(timezone)
    out: List[str] = []
    for t in local_times:
        try:
            local_dt = localize(reference_date, t, tz)
        except ValueError:
            logger.warning("Dropping malformed local time %r", t)
            continue
        out.append(local_dt.astimezone(pytz.utc).strftime("%H:%M"))
    return out


def to_local(utc_times: Iterable[str], reference_date: date, timezone: Zone) -> List[str]:
    tz = get_zone(timezone)
    out: List[str] = []
    for t in utc_times:
        try:
            inst = utc_instant_for_local_date(t, reference_date, tz)
        except ValueError:
            logger.warning("Dropping malformed UTC time %r", t)
            continue
        out.append(inst.astimezone(tz).strftime("%H:%M"))
    return out


def local_minutes(dt: datetime, timezone: Zone) -> int:
    """Minutes since local midnight for an aware datetime."""
    local = dt.astimezone(get_zone(timezone))
    return local.hour * 60 + local.minute
