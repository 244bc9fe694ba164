import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from medsched.core.config import REFRESH_INTERVAL_S, REFRESH_MIN_INTERVAL_S
from medsched.schemas.models import Buckets, ServiceResult, TimeSlotConfig
from medsched.services.classifier import classify
from medsched.utils.time_convert import get_zone

logger = logging.getLogger(__name__)


class BucketRefresher:
    """
    Keeps today's buckets for one patient.

    - refresh(now) refetches when the last snapshot is older than
      refresh_interval_s, otherwise returns the cached buckets
    - refresh(now, force=True) after a user action still coalesces calls made
      within min_interval_s of the last fetch
    - a failed fetch keeps the previous buckets and records last_error
    """

    def __init__(
        self,
        source: Any,
        patient_id: str,
        config: Optional[TimeSlotConfig] = None,
        refresh_interval_s: int = REFRESH_INTERVAL_S,
        min_interval_s: int = REFRESH_MIN_INTERVAL_S,
    ):
        self.source = source
        self.patient_id = patient_id
        self.config = config or TimeSlotConfig()
        self.refresh_interval = timedelta(seconds=refresh_interval_s)
        self.min_interval = timedelta(seconds=min_interval_s)

        self.buckets: Optional[Buckets] = None
        self.last_error: Optional[ServiceResult] = None
        self.last_fetch_at: Optional[datetime] = None
        self.fetch_count = 0

    @property
    def needs_reauth(self) -> bool:
        return bool(self.last_error and self.last_error.failure == "AUTH_EXPIRED")

    def _local_date(self, now: datetime) -> date:
        return now.astimezone(get_zone(self.config.timezone)).date()

    def _should_fetch(self, now: datetime, force: bool) -> bool:
        if self.last_fetch_at is None:
            return True
        age = now - self.last_fetch_at
        if age < timedelta(0):
            return True  # clock went backwards
        if self._local_date(now) != self._local_date(self.last_fetch_at):
            return True  # day rolled over
        if force:
            return age >= self.min_interval
        return age >= self.refresh_interval

    def refresh(self, now: datetime, force: bool = False) -> Optional[Buckets]:
        if not self._should_fetch(now, force):
            logger.debug("Refresh for %s coalesced (force=%s)", self.patient_id, force)
            return self.buckets

        self.last_fetch_at = now
        self.fetch_count += 1
        result = self.source.get_today_dose_instances(
            self.patient_id, self._local_date(now), self.config.timezone
        )
        if not result.ok:
            self.last_error = result
            logger.warning(
                "Refresh for %s failed (%s): %s; keeping previous buckets",
                self.patient_id, result.failure, result.error,
            )
            return self.buckets

        self.last_error = None
        self.buckets = classify(result.data or [], now, self.config)
        return self.buckets
