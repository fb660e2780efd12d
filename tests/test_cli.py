from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest
import typer
from typer.testing import CliRunner

from cli.app import app


class StubClient:
    def __init__(self, config, saved: bool = True) -> None:
        self.config = config
        self.saved = saved
        self.published: List[Optional[Dict[str, Any]]] = []
        self.threshold_calls: List[tuple[str, Optional[float]]] = []
        self.dismissed: List[str] = []
        self.state_payload: Dict[str, Any] = {
            "state": "live",
            "current_reading": {
                "co": 1.2,
                "vocs": 250.0,
                "ch4_lpg": 0.0,
                "pm1_0": 3.0,
                "pm2_5": 8.0,
                "pm10_0": 12.0,
            },
            "history": [{"timestamp": "2024-01-01T00:00:00Z"}],
            "thresholds": {"co": 9.0, "pm2_5": None},
            "alerts": [
                {
                    "id": "co-abc123",
                    "created_at": "2024-01-01T00:00:00Z",
                    "message": "Carbon Monoxide level (12.0 ppm) exceeded threshold (9 ppm).",
                }
            ],
            "derived_insight": {
                "summary": "Carbon Monoxide above WHO guideline levels.",
                "recommendations": ["Ventilate the room."],
                "risk_level": "High",
                "symptoms": ["Headache, dizziness or fatigue."],
                "forecast": "Levels likely to stay elevated.",
                "forecast_confidence": "Low",
            },
            "is_loading_readings": False,
            "is_loading_analysis": False,
            "last_analysis_at": "2024-01-01T00:00:01Z",
        }
        self.closed = False

    def get_state(self) -> Dict[str, Any]:
        return self.state_payload

    def get_alerts(self) -> List[Dict[str, Any]]:
        return self.state_payload["alerts"]

    def publish(self, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        self.published.append(payload)
        return {"accepted": True, "snapshot": self.state_payload}

    def set_threshold(self, pollutant: str, value: Optional[float]) -> Dict[str, Any]:
        if pollutant == "radon":
            raise typer.BadParameter("Unknown pollutant 'radon'.")
        self.threshold_calls.append((pollutant, value))
        return {
            "pollutant": pollutant,
            "value": value,
            "saved": self.saved,
            "warning": None if self.saved else "Threshold applied but not saved: store offline",
        }

    def dismiss_alert(self, alert_id: str) -> None:
        self.dismissed.append(alert_id)

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _install_stub(monkeypatch, stub: StubClient) -> None:
    def factory(config):
        stub.config = config
        return stub

    monkeypatch.setattr("cli.app.ApiClient", factory)


def test_state_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["--base-url", "http://sensor-hub:9000", "state"])

    assert result.exit_code == 0
    assert "state: live" in result.stdout
    assert "vocs: 250.0 ppb" in result.stdout
    assert "pm2_5: off" in result.stdout
    assert "co-abc123" in result.stdout
    assert "Ventilate the room." in result.stdout
    assert "risk_level: High" in result.stdout
    assert "symptom: Headache, dizziness or fatigue." in result.stdout
    assert "forecast_24h: Levels likely to stay elevated. (confidence: Low)" in result.stdout
    assert stub.config.base_url == "http://sensor-hub:9000"
    assert stub.closed is True


def test_alerts_command_without_alerts(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    stub.state_payload["alerts"] = []
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["alerts"])

    assert result.exit_code == 0
    assert "No active alerts." in result.stdout


def test_push_command(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    payload_path = tmp_path / "reading.json"
    payload_path.write_text(json.dumps({"CO_ppm": 1.2}))

    result = runner.invoke(app, ["push", str(payload_path)])

    assert result.exit_code == 0
    assert "Payload accepted." in result.stdout
    assert "Current Reading" in result.stdout
    assert stub.published == [{"CO_ppm": 1.2}]


def test_push_null_payload(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    payload_path = tmp_path / "offline.json"
    payload_path.write_text("null")

    result = runner.invoke(app, ["push", str(payload_path)])

    assert result.exit_code == 0
    assert stub.published == [None]


def test_push_rejects_non_object(monkeypatch, runner: CliRunner, tmp_path) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)
    payload_path = tmp_path / "list.json"
    payload_path.write_text("[1, 2]")

    result = runner.invoke(app, ["push", str(payload_path)])

    assert result.exit_code != 0
    assert stub.published == []


def test_threshold_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["threshold", "pm2_5", "20"])

    assert result.exit_code == 0
    assert "Threshold for pm2_5 set to 20.0." in result.stdout
    assert stub.threshold_calls == [("pm2_5", 20.0)]


def test_threshold_clear(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["threshold", "co", "--clear"])

    assert result.exit_code == 0
    assert "Threshold for co set to off." in result.stdout
    assert stub.threshold_calls == [("co", None)]


def test_threshold_reports_failed_save(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None, saved=False)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["threshold", "co", "4"])

    assert result.exit_code == 0
    assert "not saved: store offline" in result.output


@pytest.mark.parametrize(
    "args",
    [["threshold", "co"], ["threshold", "co", "4", "--clear"], ["threshold", "radon", "4"]],
)
def test_threshold_usage_errors(monkeypatch, runner: CliRunner, args: List[str]) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, args)

    assert result.exit_code != 0
    assert stub.threshold_calls == []


def test_dismiss_command(monkeypatch, runner: CliRunner) -> None:
    stub = StubClient(config=None)
    _install_stub(monkeypatch, stub)

    result = runner.invoke(app, ["dismiss", "co-abc123"])

    assert result.exit_code == 0
    assert "Alert co-abc123 dismissed." in result.stdout
    assert stub.dismissed == ["co-abc123"]
