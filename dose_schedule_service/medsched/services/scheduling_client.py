import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

import requests
from pydantic import ValidationError

from medsched.core.config import (
    SCHEDULING_API_BASE_URL,
    SCHEDULING_API_TIMEOUT_S,
    SCHEDULING_API_TOKEN,
)
from medsched.schemas.models import (
    DoseInstance,
    FailureKind,
    MedicationSchedule,
    ServiceResult,
    SkipReason,
)

logger = logging.getLogger(__name__)


class SchedulingServiceError(RuntimeError):
    def __init__(self, failure: FailureKind, message: str):
        super().__init__(message)
        self.failure = failure


def failure_for_status(status_code: int) -> FailureKind:
    if status_code in (401, 403):
        return "AUTH_EXPIRED"
    if status_code == 404:
        return "NOT_FOUND"
    if status_code == 409:
        return "CONFLICT"
    if status_code in (400, 422):
        return "INVALID"
    if status_code >= 500:
        return "SERVER"
    return "UNKNOWN"


def _error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return f"HTTP {r.status_code}: {r.text[:200]}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {r.status_code}"


class SchedulingClient:
    """
    Thin HTTP client for the external scheduling service.
    Every operation returns a ServiceResult; transport and HTTP failures are
    folded into a typed failure instead of raising.
    """

    def __init__(
        self,
        base_url: str = SCHEDULING_API_BASE_URL,
        token: str = SCHEDULING_API_TOKEN,
        timeout_s: int = SCHEDULING_API_TIMEOUT_S,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("SchedulingClient needs a base_url (SCHEDULING_API_BASE_URL).")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, headers=self._headers(), timeout=self.timeout_s, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise SchedulingServiceError("NETWORK", f"Scheduling service unreachable: {e}") from e
        except requests.RequestException as e:
            raise SchedulingServiceError("UNKNOWN", str(e)) from e

        if r.status_code >= 400:
            raise SchedulingServiceError(failure_for_status(r.status_code), _error_message(r))

        try:
            body = r.json()
        except ValueError as e:
            raise SchedulingServiceError("UNKNOWN", f"Invalid JSON from scheduling service: {r.text[:200]}") from e

        if isinstance(body, dict) and body.get("success") is False:
            raise SchedulingServiceError("UNKNOWN", str(body.get("error") or "Request failed"))
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    def _call(self, op: str, fn: Callable[[], Any]) -> ServiceResult:
        try:
            return ServiceResult(ok=True, data=fn())
        except SchedulingServiceError as e:
            log = logger.warning if e.failure in ("NETWORK", "AUTH_EXPIRED") else logger.error
            log("%s failed (%s): %s", op, e.failure, e)
            return ServiceResult(ok=False, error=str(e), failure=e.failure)
        except (ValidationError, TypeError) as e:
            logger.error("%s returned an unexpected payload: %s", op, e)
            return ServiceResult(ok=False, error=f"Unexpected response from scheduling service: {e}", failure="UNKNOWN")

    # ---- dose instances ----

    def get_today_dose_instances(self, patient_id: str, for_date: date, timezone: str) -> ServiceResult:
        def run() -> List[DoseInstance]:
            data = self._request(
                "GET",
                f"/patients/{patient_id}/dose-instances",
                params={"date": for_date.isoformat(), "timezone": timezone},
            )
            return [DoseInstance(**d) for d in (data or [])]

        return self._call("get_today_dose_instances", run)

    def mark_dose_taken(self, instance_id: str, taken_at: datetime, notes: Optional[str] = None) -> ServiceResult:
        payload = {"taken_at": taken_at.isoformat(), "notes": notes}
        return self._call(
            "mark_dose_taken",
            lambda: DoseInstance(**self._request("POST", f"/dose-instances/{instance_id}/take", json=payload)),
        )

    def skip_dose(self, instance_id: str, reason: SkipReason, notes: Optional[str] = None) -> ServiceResult:
        payload = {"reason": reason, "notes": notes}
        return self._call(
            "skip_dose",
            lambda: DoseInstance(**self._request("POST", f"/dose-instances/{instance_id}/skip", json=payload)),
        )

    def snooze_dose(self, instance_id: str, minutes: int, reason: Optional[str] = None) -> ServiceResult:
        payload = {"minutes": minutes, "reason": reason}
        return self._call(
            "snooze_dose",
            lambda: DoseInstance(**self._request("POST", f"/dose-instances/{instance_id}/snooze", json=payload)),
        )

    # ---- schedules ----

    def create_schedule(self, schedule: MedicationSchedule) -> ServiceResult:
        def run() -> str:
            data = self._request("POST", "/schedules", json=schedule.model_dump(mode="json"))
            if isinstance(data, dict):
                return str(data.get("schedule_id") or data.get("id"))
            return str(data)

        return self._call("create_schedule", run)

    def update_schedule(self, schedule_id: str, partial: Dict[str, Any]) -> ServiceResult:
        return self._call(
            "update_schedule",
            lambda: MedicationSchedule(**self._request("PATCH", f"/schedules/{schedule_id}", json=partial)),
        )

    def pause_schedule(self, schedule_id: str) -> ServiceResult:
        return self._call(
            "pause_schedule",
            lambda: MedicationSchedule(**self._request("POST", f"/schedules/{schedule_id}/pause")),
        )

    def resume_schedule(self, schedule_id: str) -> ServiceResult:
        return self._call(
            "resume_schedule",
            lambda: MedicationSchedule(**self._request("POST", f"/schedules/{schedule_id}/resume")),
        )
