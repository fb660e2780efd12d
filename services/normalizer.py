"""Mapping of raw sensor payloads onto canonical readings."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from models.pollutants import Pollutant
from models.records import Reading

# Payloads with fewer recognized pollutant keys than this are treated as absent.
MIN_RECOGNIZED_FIELDS = 1

# (source key, factor to the canonical unit); first key present wins.
FIELD_SOURCES: Dict[Pollutant, Tuple[Tuple[str, float], ...]] = {
    Pollutant.co: (("CO_ppm", 1.0), ("co", 1.0)),
    Pollutant.vocs: (("VOCs_ppm", 1000.0), ("VOCs_ppb", 1.0), ("vocs", 1.0)),
    Pollutant.ch4_lpg: (("CH4_LPG_ppm", 1.0), ("ch4_lpg", 1.0)),
    Pollutant.pm1_0: (("PM1_0_ug_m3", 1.0), ("pm1_0", 1.0)),
    Pollutant.pm2_5: (("PM2_5_ug_m3", 1.0), ("pm2_5", 1.0)),
    Pollutant.pm10_0: (("PM10_ug_m3", 1.0), ("pm10_0", 1.0)),
}

# Epoch values above this are taken to be milliseconds.
_EPOCH_MS_CUTOFF = 10_000_000_000


def _flatten(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Lift keys nested one level under sensor names; top-level keys win."""
    flat: Dict[str, Any] = {}
    for value in payload.values():
        if isinstance(value, Mapping):
            for key, nested in value.items():
                flat.setdefault(str(key), nested)
    for key, value in payload.items():
        if not isinstance(value, Mapping):
            flat[str(key)] = value
    return flat


def _coerce(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def normalize_payload(payload: Any) -> Optional[Reading]:
    """Return the canonical reading for ``payload`` or ``None`` when absent."""
    if not isinstance(payload, Mapping):
        return None

    flat = _flatten(payload)
    values: Dict[str, float] = {}
    recognized = 0
    for pollutant, sources in FIELD_SOURCES.items():
        for key, factor in sources:
            if key in flat:
                recognized += 1
                values[pollutant.value] = _coerce(flat[key]) * factor
                break
        else:
            values[pollutant.value] = 0.0

    if recognized < MIN_RECOGNIZED_FIELDS:
        return None
    return Reading(**values)


def extract_timestamp(payload: Any) -> Optional[datetime]:
    """Read an optional ``timestamp`` field as an aware UTC datetime."""
    if not isinstance(payload, Mapping):
        return None
    raw = payload.get("timestamp")
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        if not math.isfinite(raw) or raw < 0:
            return None
        seconds = raw / 1000 if raw > _EPOCH_MS_CUTOFF else raw
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if not isinstance(raw, str):
        return None
    candidate = raw.strip()
    if not candidate:
        return None
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
