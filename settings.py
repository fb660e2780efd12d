from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_DATABASE_NAME_ENV = "AQ_DATABASE_NAME"
_DATABASE_PATH_ENV = "AQ_DATABASE_PATH"
_SENSOR_PATH_ENV = "AQ_SENSOR_PATH"
_THRESHOLDS_PATH_ENV = "AQ_THRESHOLDS_PATH"
_MAX_HISTORY_ENV = "AQ_MAX_HISTORY"
_MAX_ALERTS_ENV = "AQ_MAX_ALERTS"
_COOLDOWN_ENV = "AQ_ALERT_COOLDOWN_SECONDS"
_CHANGE_RATIO_ENV = "AQ_CHANGE_RATIO"
_FALLBACK_ENV = "AQ_ANALYSIS_FALLBACK_SECONDS"
_SHUTDOWN_GRACE_ENV = "AQ_SHUTDOWN_GRACE_SECONDS"
_ANALYZER_MODE_ENV = "AQ_ANALYZER_MODE"
_GROQ_API_KEY_ENV = "GROQ_API_KEY"
_GROQ_MODEL_ENV = "AQ_GROQ_MODEL"
_ANALYSIS_TIMEOUT_ENV = "AQ_ANALYSIS_TIMEOUT_SECONDS"
_WEBHOOK_URL_ENV = "AQ_ALERT_WEBHOOK_URL"
_LOG_LEVEL_ENV = "LOG_LEVEL"

ANALYZER_MODES = ("mock", "groq")


@dataclass(frozen=True)
class Settings:
    database_name: str
    database_path: Optional[str]
    sensor_path: str
    thresholds_path: str
    max_history: int
    max_alerts: int
    alert_cooldown_seconds: float
    change_ratio: float
    analysis_fallback_seconds: float
    shutdown_grace_seconds: float
    analyzer_mode: str
    groq_api_key: Optional[str]
    groq_model: str
    analysis_timeout_seconds: float
    alert_webhook_url: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_analyzer_mode(default: str) -> str:
    candidate = _read_str_env(_ANALYZER_MODE_ENV, default).lower()
    return candidate if candidate in ANALYZER_MODES else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_name=_read_str_env(_DATABASE_NAME_ENV, "air-quality"),
        database_path=_read_optional_env(_DATABASE_PATH_ENV, "./tmp/realtime_db.json"),
        sensor_path=_read_str_env(_SENSOR_PATH_ENV, "sensor_readings"),
        thresholds_path=_read_str_env(_THRESHOLDS_PATH_ENV, "user_settings/thresholds"),
        max_history=_read_positive_int(_MAX_HISTORY_ENV, 500),
        max_alerts=_read_positive_int(_MAX_ALERTS_ENV, 10),
        alert_cooldown_seconds=_read_positive_float(_COOLDOWN_ENV, 300.0),
        change_ratio=_read_positive_float(_CHANGE_RATIO_ENV, 0.10),
        analysis_fallback_seconds=_read_positive_float(_FALLBACK_ENV, 1800.0),
        shutdown_grace_seconds=_read_positive_float(_SHUTDOWN_GRACE_ENV, 5.0),
        analyzer_mode=_read_analyzer_mode("mock"),
        groq_api_key=_read_optional_env(_GROQ_API_KEY_ENV, None),
        groq_model=_read_str_env(_GROQ_MODEL_ENV, "llama-3.1-8b-instant"),
        analysis_timeout_seconds=_read_positive_float(_ANALYSIS_TIMEOUT_ENV, 30.0),
        alert_webhook_url=_read_optional_env(_WEBHOOK_URL_ENV, None),
        log_level=_read_log_level("INFO"),
    )
