import os

from medsched.core.env import load_env

load_env()

# empty base url => in-process InMemorySchedulingService
SCHEDULING_API_BASE_URL = os.getenv("SCHEDULING_API_BASE_URL", "").rstrip("/")
SCHEDULING_API_TOKEN = os.getenv("SCHEDULING_API_TOKEN", "")
SCHEDULING_API_TIMEOUT_S = int(os.getenv("SCHEDULING_API_TIMEOUT_S", "10"))

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")

NOW_WINDOW_MINUTES = int(os.getenv("NOW_WINDOW_MINUTES", "15"))
DUE_SOON_WINDOW_MINUTES = int(os.getenv("DUE_SOON_WINDOW_MINUTES", "60"))
LATE_THRESHOLD_MINUTES = int(os.getenv("LATE_THRESHOLD_MINUTES", "30"))
# scheduled doses still pending this long after their time become "missed"
GRACE_PERIOD_MINUTES = int(os.getenv("GRACE_PERIOD_MINUTES", "60"))

REFRESH_INTERVAL_S = int(os.getenv("REFRESH_INTERVAL_S", "60"))
REFRESH_MIN_INTERVAL_S = int(os.getenv("REFRESH_MIN_INTERVAL_S", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
