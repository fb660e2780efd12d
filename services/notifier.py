"""Outbound delivery of newly raised alerts."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from models.records import Alert
from settings import Settings

logger = logging.getLogger(__name__)


class AlertNotifier(Protocol):
    async def notify(self, alerts: Sequence[Alert]) -> None:
        ...


def alert_payload(alert: Alert) -> Dict[str, Any]:
    return {
        "id": alert.id,
        "pollutant": alert.pollutant.value,
        "pollutant_name": alert.pollutant_name,
        "value": alert.value,
        "threshold": alert.threshold,
        "created_at": alert.created_at.isoformat(),
        "message": alert.message,
    }


class WebhookNotifier:
    """POSTs new alerts as JSON to a control-room webhook."""

    def __init__(self, url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.url = url
        self._timeout = timeout
        self._transport = transport

    async def notify(self, alerts: Sequence[Alert]) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                self.url,
                json={"alerts": [alert_payload(alert) for alert in alerts]},
            )
            response.raise_for_status()
        logger.info("Delivered alerts to webhook", extra={"alert_count": len(alerts)})


def build_notifier(settings: Settings) -> Optional[AlertNotifier]:
    if not settings.alert_webhook_url:
        return None
    return WebhookNotifier(settings.alert_webhook_url, timeout=settings.analysis_timeout_seconds)
