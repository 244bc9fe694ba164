from typing import Union

from medsched.core.config import SCHEDULING_API_BASE_URL
from medsched.services.dose_store import InMemorySchedulingService
from medsched.services.scheduling_client import SchedulingClient

SchedulingService = Union[SchedulingClient, InMemorySchedulingService]

_service = None

def get_scheduling_service() -> SchedulingService:
    """HTTP client when a backend URL is configured, else one shared in-memory service."""
    global _service
    if _service is None:
        _service = SchedulingClient() if SCHEDULING_API_BASE_URL else InMemorySchedulingService()
    return _service
