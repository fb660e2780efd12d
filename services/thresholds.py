"""Loading and saving of user alert thresholds through the realtime store."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from models.pollutants import Pollutant
from models.records import ThresholdSet, complete_thresholds, default_thresholds

logger = logging.getLogger(__name__)


class ThresholdBackend(Protocol):
    def subscribe(
        self,
        on_value: Callable[[Any], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Callable[[], None]:
        ...

    def set(self, value: Any) -> None:
        ...


@dataclass(frozen=True)
class SaveResult:
    ok: bool
    error: Optional[str] = None


def parse_thresholds(raw: Any) -> ThresholdSet:
    """Decode a stored mapping; unknown keys are ignored, bad values mean unset."""
    if not isinstance(raw, Mapping):
        return default_thresholds()

    parsed: Dict[Pollutant, float] = {}
    for key, value in raw.items():
        try:
            pollutant = Pollutant(str(key))
        except ValueError:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value) and value >= 0:
            parsed[pollutant] = float(value)
    return complete_thresholds(parsed)


def serialize_thresholds(thresholds: Mapping[Pollutant, float]) -> Dict[str, float]:
    """Encode finite limits only; JSON has no infinity."""
    return {
        pollutant.value: float(value)
        for pollutant, value in thresholds.items()
        if math.isfinite(value)
    }


class ThresholdStoreAdapter:
    def __init__(self, backend: ThresholdBackend) -> None:
        self.backend = backend

    def load(
        self,
        on_update: Callable[[ThresholdSet], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Callable[[], None]:
        """Subscribe to the store; every push delivers a complete threshold set.

        A read failure goes to ``on_error`` when one is given; otherwise the
        never-alert defaults are delivered in its place.
        """

        def handle_value(raw: Any) -> None:
            if raw is None:
                logger.info("No stored thresholds; using defaults")
            on_update(parse_thresholds(raw))

        def handle_error(error: BaseException) -> None:
            logger.error(
                "Threshold store read failed; falling back to defaults",
                extra={"reason": str(error)},
            )
            if on_error is not None:
                on_error(error)
            else:
                on_update(default_thresholds())

        return self.backend.subscribe(handle_value, handle_error)

    def save(self, thresholds: Mapping[Pollutant, float]) -> SaveResult:
        try:
            self.backend.set(serialize_thresholds(thresholds))
        except Exception as exc:  # noqa: BLE001 - surfaced to the caller as a result
            logger.warning("Saving thresholds failed", extra={"reason": str(exc)})
            return SaveResult(ok=False, error=str(exc))
        return SaveResult(ok=True)
