"""Unit tests for the mock realtime database."""

from __future__ import annotations

import json

import pytest

from datastore.mock_realtime_db import MockRealtimeDatabase


def test_set_and_get_round_trip_returns_deep_copy() -> None:
    database = MockRealtimeDatabase(name="test")
    payload = {"CO_ppm": 1.0, "nested": {"PM2_5_ug_m3": 3.0}}

    database.set("sensor_readings", payload)
    fetched = database.get("sensor_readings")

    assert fetched == payload
    fetched["nested"]["PM2_5_ug_m3"] = 99.0
    payload["CO_ppm"] = 50.0
    assert database.get("sensor_readings") == {"CO_ppm": 1.0, "nested": {"PM2_5_ug_m3": 3.0}}


def test_get_missing_path_returns_none() -> None:
    database = MockRealtimeDatabase(name="test")

    assert database.get("user_settings/thresholds") is None


def test_nested_paths_share_one_tree() -> None:
    database = MockRealtimeDatabase(name="test")

    database.set("user_settings/thresholds", {"co": 9})

    assert database.get("user_settings") == {"thresholds": {"co": 9}}


def test_set_none_removes_value() -> None:
    database = MockRealtimeDatabase(name="test")
    database.set("sensor_readings", {"CO_ppm": 1.0})

    database.set("sensor_readings", None)

    assert database.get("sensor_readings") is None
    database.set("user_settings/thresholds", {"co": 9})
    database.set("user_settings/thresholds", {})
    assert database.get("user_settings/thresholds") is None


def test_empty_path_is_rejected() -> None:
    database = MockRealtimeDatabase(name="test")

    with pytest.raises(ValueError):
        database.set("/", {})
    with pytest.raises(ValueError):
        database.reference("")


def test_subscribe_delivers_current_value_then_updates() -> None:
    database = MockRealtimeDatabase(name="test")
    database.set("sensor_readings", {"CO_ppm": 1.0})
    received = []

    unsubscribe = database.subscribe("sensor_readings", received.append)
    database.set("sensor_readings", {"CO_ppm": 2.0})
    database.set("sensor_readings", None)
    unsubscribe()
    database.set("sensor_readings", {"CO_ppm": 3.0})

    assert received == [{"CO_ppm": 1.0}, {"CO_ppm": 2.0}, None]
    assert database.subscriber_count() == 0


def test_subscribers_only_see_related_paths() -> None:
    database = MockRealtimeDatabase(name="test")
    sensors, settings, parent = [], [], []
    database.subscribe("sensor_readings", sensors.append)
    database.subscribe("user_settings/thresholds", settings.append)
    database.subscribe("user_settings", parent.append)

    database.set("user_settings/thresholds", {"co": 9})

    assert sensors == [None]
    assert settings == [None, {"co": 9}]
    assert parent == [None, {"thresholds": {"co": 9}}]


def test_failing_subscriber_does_not_block_others() -> None:
    database = MockRealtimeDatabase(name="test")
    received = []

    def broken(_value) -> None:
        raise RuntimeError("boom")

    database.subscribe("sensor_readings", broken)
    database.subscribe("sensor_readings", received.append)
    database.set("sensor_readings", {"CO_ppm": 1.0})

    assert received == [None, {"CO_ppm": 1.0}]


def test_set_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "nested" / "db.json"
    database = MockRealtimeDatabase(name="test", persistence_path=path)

    database.set("user_settings/thresholds", {"pm2_5": 20})

    assert json.loads(path.read_text()) == {"user_settings": {"thresholds": {"pm2_5": 20}}}
    reloaded = MockRealtimeDatabase(name="test", persistence_path=path)
    assert reloaded.get("user_settings/thresholds") == {"pm2_5": 20}


def test_corrupt_file_reports_error_to_subscribers(tmp_path) -> None:
    path = tmp_path / "db.json"
    path.write_text("{not json")
    database = MockRealtimeDatabase(name="test", persistence_path=path)
    values, errors = [], []

    database.subscribe("user_settings/thresholds", values.append, errors.append)

    assert values == []
    assert len(errors) == 1
    assert database.get("user_settings/thresholds") is None


def test_reference_wraps_path_operations() -> None:
    database = MockRealtimeDatabase(name="test")
    reference = database.reference("sensor_readings")
    received = []

    reference.subscribe(received.append)
    reference.set({"CO_ppm": 4.0})

    assert reference.get() == {"CO_ppm": 4.0}
    assert received == [None, {"CO_ppm": 4.0}]
