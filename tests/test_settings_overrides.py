from __future__ import annotations

from datetime import timedelta
from typing import Iterable

from datastore.mock_realtime_db import build_default_database
from services.analysis import MockAnalyzer
from services.coordinator import build_default_coordinator
from services.notifier import WebhookNotifier
from settings import get_settings


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    database_path = tmp_path / "db.json"

    monkeypatch.setenv("AQ_DATABASE_NAME", "custom-db")
    monkeypatch.setenv("AQ_DATABASE_PATH", str(database_path))
    monkeypatch.setenv("AQ_MAX_HISTORY", "25")
    monkeypatch.setenv("AQ_MAX_ALERTS", "3")
    monkeypatch.setenv("AQ_ALERT_COOLDOWN_SECONDS", "60")
    monkeypatch.setenv("AQ_CHANGE_RATIO", "0.25")
    monkeypatch.setenv("AQ_ANALYSIS_FALLBACK_SECONDS", "120")
    monkeypatch.setenv("AQ_ALERT_WEBHOOK_URL", "https://hooks.test/alerts")
    monkeypatch.setenv("AQ_ANALYZER_MODE", "GROQ")
    monkeypatch.delenv("GROQ_API_KEY", raising=False)

    caches = (
        get_settings,
        build_default_database,
        build_default_coordinator,
    )
    _clear_caches(caches)

    database = build_default_database()
    coordinator = build_default_coordinator()

    try:
        settings = get_settings()
        assert settings.analyzer_mode == "groq"
        assert database.name == "custom-db"
        assert database.persistence_path == database_path
        assert coordinator.history.max_entries == 25
        assert coordinator.alerting.max_alerts == 3
        assert coordinator.alerting.cooldown == timedelta(seconds=60)
        assert coordinator.throttle.change_ratio == 0.25
        assert coordinator.throttle.fallback_period == timedelta(seconds=120)
        # No API key, so the groq mode degrades to the offline analyzer.
        assert isinstance(coordinator.throttle.analyzer, MockAnalyzer)
        assert isinstance(coordinator.notifier, WebhookNotifier)
    finally:
        _clear_caches(caches)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("AQ_MAX_HISTORY", "-5")
    monkeypatch.setenv("AQ_ALERT_COOLDOWN_SECONDS", "soon")
    monkeypatch.setenv("AQ_ANALYZER_MODE", "openai")
    monkeypatch.setenv("AQ_SENSOR_PATH", "   ")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert settings.max_history == 500
        assert settings.alert_cooldown_seconds == 300.0
        assert settings.analyzer_mode == "mock"
        assert settings.sensor_path == "sensor_readings"
        assert settings.log_level == "DEBUG"
    finally:
        get_settings.cache_clear()
