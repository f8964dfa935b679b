import os
from typing import Any

ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
CRON_SECRET = os.getenv("CRON_SECRET", "")
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"

MATCH_TIMEZONE = os.getenv("MATCH_TIMEZONE", "UTC")
GROUP_ACTIVE_DAYS = int(os.getenv("GROUP_ACTIVE_DAYS", "7"))
RUN_HISTORY_LIMIT = int(os.getenv("RUN_HISTORY_LIMIT", "20"))

# Raw values only; validation happens in services.matching_config.load_matching_config.
DEFAULT_MATCHING_CONFIG: dict[str, Any] = {
    "SPECIALTY_W": float(os.getenv("SPECIALTY_W", "0.30")),
    "INTERESTS_W": float(os.getenv("INTERESTS_W", "0.25")),
    "SOCIAL_W": float(os.getenv("SOCIAL_W", "0.15")),
    "AVAILABILITY_W": float(os.getenv("AVAILABILITY_W", "0.10")),
    "LOCALITY_W": float(os.getenv("LOCALITY_W", "0.15")),
    "LIFESTYLE_W": float(os.getenv("LIFESTYLE_W", "0.05")),
    "MIN_GROUP_SIZE": int(os.getenv("MIN_GROUP_SIZE", "3")),
    "MAX_GROUP_SIZE": int(os.getenv("MAX_GROUP_SIZE", "4")),
    "ACCEPTANCE_THRESHOLD": float(os.getenv("ACCEPTANCE_THRESHOLD", "0.35")),
    "COOLDOWN_WEEKS": int(os.getenv("COOLDOWN_WEEKS", "8")),
    "AGE_MAX_GAP": float(os.getenv("AGE_MAX_GAP", "15")),
    "MATCH_RUN_TIMEOUT_SECONDS": float(os.getenv("MATCH_RUN_TIMEOUT_SECONDS", "180")),
    "MATCH_MAX_WORKERS": int(os.getenv("MATCH_MAX_WORKERS", "4")),
    "RESPECT_GENDER_PREFERENCES": os.getenv("RESPECT_GENDER_PREFERENCES", "true").lower() == "true",
}

MATCHING_CONFIG_JSON = os.getenv("MATCHING_CONFIG_JSON", "")
