from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the session coordinator service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def get_state(self) -> Dict[str, Any]:
        return self._request("GET", "/state").json()

    def get_alerts(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/alerts").json()

    def publish(self, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        return self._request("POST", "/telemetry", json={"payload": payload}).json()

    def set_threshold(self, pollutant: str, value: Optional[float]) -> Dict[str, Any]:
        response = self._request(
            "PUT",
            f"/thresholds/{pollutant}",
            json={"value": value},
            not_found=f"Unknown pollutant {pollutant!r}.",
        )
        return response.json()

    def dismiss_alert(self, alert_id: str) -> None:
        self._request("DELETE", f"/alerts/{alert_id}", not_found=f"Alert {alert_id} was not found.")

    def _request(
        self,
        method: str,
        url: str,
        not_found: Optional[str] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
            if not_found is not None and response.status_code == 404:
                raise typer.BadParameter(not_found)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)
        return response

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
