"""Threshold evaluation with per-pollutant cooldown."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable, List, Mapping, Sequence
from uuid import uuid4

from models.pollutants import POLLUTANTS, Pollutant
from models.records import Alert, Reading

ALERT_COOLDOWN = timedelta(minutes=5)
MAX_ALERTS = 10


def format_alert_message(pollutant: Pollutant, value: float, threshold: float) -> str:
    info = POLLUTANTS[pollutant]
    return (
        f"{info.name} level ({value:.1f} {info.unit}) exceeded threshold "
        f"({threshold:g} {info.unit})."
    )


def _in_cooldown(
    pollutant: Pollutant,
    recent_alerts: Iterable[Alert],
    now: datetime,
    cooldown: timedelta,
) -> bool:
    return any(
        alert.pollutant == pollutant and now - alert.created_at < cooldown
        for alert in recent_alerts
    )


class AlertingEngine:
    """Pure alert evaluation; the coordinator merges the result into state."""

    def __init__(self, cooldown: timedelta = ALERT_COOLDOWN, max_alerts: int = MAX_ALERTS) -> None:
        self.cooldown = cooldown
        self.max_alerts = max_alerts

    def evaluate(
        self,
        reading: Reading,
        thresholds: Mapping[Pollutant, float],
        recent_alerts: Sequence[Alert],
        now: datetime,
    ) -> List[Alert]:
        """Return alerts for every breached, non-cooling-down pollutant."""
        new_alerts: List[Alert] = []
        for pollutant in Pollutant:
            threshold = thresholds.get(pollutant, math.inf)
            if not math.isfinite(threshold):
                continue
            value = reading.value(pollutant)
            if value <= threshold:
                continue
            if _in_cooldown(pollutant, recent_alerts, now, self.cooldown):
                continue
            new_alerts.append(
                Alert(
                    id=f"{pollutant.value}-{uuid4().hex[:12]}",
                    pollutant=pollutant,
                    pollutant_name=POLLUTANTS[pollutant].name,
                    value=value,
                    threshold=threshold,
                    created_at=now,
                    message=format_alert_message(pollutant, value, threshold),
                )
            )
        return new_alerts

    def merge(self, new_alerts: Sequence[Alert], existing: Sequence[Alert]) -> List[Alert]:
        """Prepend new alerts and keep only the most recent ones."""
        return [*new_alerts, *existing][: self.max_alerts]

    @staticmethod
    def dismiss(alerts: Sequence[Alert], alert_id: str) -> List[Alert]:
        return [alert for alert in alerts if alert.id != alert_id]
