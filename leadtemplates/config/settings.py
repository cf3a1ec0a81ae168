"""
Configuration settings for leadtemplates.

Values are read from the environment at import time; ``get_all_settings``
re-reads them so that ``load_config`` picks up freshly loaded .env files.
"""

from pathlib import Path
from typing import Any

from leadtemplates.config import get_env, get_int_env

BASE_DIR = Path(__file__).resolve().parent.parent

ENVIRONMENT = get_env("ENVIRONMENT", "development")

# ==================
# Template matching
# ==================
# Optional YAML file overriding the packaged rule catalog
MATCHING_RULES_PATH = get_env("MATCHING_RULES_PATH")
DEFAULT_MIN_SCORE = get_int_env("DEFAULT_MIN_SCORE", 0)
DEFAULT_MAX_RESULTS = get_int_env("DEFAULT_MAX_RESULTS", 5)
FALLBACK_RESULT_LIMIT = get_int_env("FALLBACK_RESULT_LIMIT", 3)
# 0 disables the catalog listing cache
TEMPLATE_CACHE_TTL_SECONDS = get_int_env("TEMPLATE_CACHE_TTL_SECONDS", 300)

# ==================
# Experiments
# ==================
SNAPSHOT_INTERVAL_SECONDS = get_int_env("SNAPSHOT_INTERVAL_SECONDS", 300)
# 288 snapshots is 24 hours at the default interval
SNAPSHOT_HISTORY_LIMIT = get_int_env("SNAPSHOT_HISTORY_LIMIT", 288)
METRIC_RETENTION_DAYS = get_int_env("METRIC_RETENTION_DAYS", 30)
VARIATION_RETENTION_DAYS = get_int_env("VARIATION_RETENTION_DAYS", 90)

# ==================
# Monitoring
# ==================
METRICS_PORT = get_int_env("METRICS_PORT", 9090)


def get_all_settings() -> dict[str, Any]:
    """
    Get all settings as a dictionary.

    Returns:
        Dictionary of all configuration settings
    """
    return {
        "ENVIRONMENT": get_env("ENVIRONMENT", "development"),
        "MATCHING_RULES_PATH": get_env("MATCHING_RULES_PATH"),
        "DEFAULT_MIN_SCORE": get_int_env("DEFAULT_MIN_SCORE", 0),
        "DEFAULT_MAX_RESULTS": get_int_env("DEFAULT_MAX_RESULTS", 5),
        "FALLBACK_RESULT_LIMIT": get_int_env("FALLBACK_RESULT_LIMIT", 3),
        "TEMPLATE_CACHE_TTL_SECONDS": get_int_env("TEMPLATE_CACHE_TTL_SECONDS", 300),
        "SNAPSHOT_INTERVAL_SECONDS": get_int_env("SNAPSHOT_INTERVAL_SECONDS", 300),
        "SNAPSHOT_HISTORY_LIMIT": get_int_env("SNAPSHOT_HISTORY_LIMIT", 288),
        "METRIC_RETENTION_DAYS": get_int_env("METRIC_RETENTION_DAYS", 30),
        "VARIATION_RETENTION_DAYS": get_int_env("VARIATION_RETENTION_DAYS", 90),
        "METRICS_PORT": get_int_env("METRICS_PORT", 9090),
    }
