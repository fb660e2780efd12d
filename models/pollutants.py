"""Catalog of the pollutants tracked by the dashboard sensors."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class Pollutant(str, Enum):
    """Canonical pollutant identifiers, matching the ``Reading`` field names."""

    co = "co"
    vocs = "vocs"
    ch4_lpg = "ch4_lpg"
    pm1_0 = "pm1_0"
    pm2_5 = "pm2_5"
    pm10_0 = "pm10_0"


@dataclass(frozen=True)
class PollutantInfo:
    pollutant: Pollutant
    name: str
    unit: str
    description: str
    who_guideline: Optional[float] = None
    who_guideline_note: Optional[str] = None


POLLUTANTS: Dict[Pollutant, PollutantInfo] = {
    Pollutant.co: PollutantInfo(
        Pollutant.co,
        name="Carbon Monoxide",
        unit="ppm",
        description="From incomplete combustion.",
        who_guideline=4.0,
        who_guideline_note="mg/m³ (24-hour mean)",
    ),
    Pollutant.vocs: PollutantInfo(
        Pollutant.vocs,
        name="VOCs",
        unit="ppb",
        description="Volatile Organic Compounds.",
    ),
    Pollutant.ch4_lpg: PollutantInfo(
        Pollutant.ch4_lpg,
        name="Methane/LPG",
        unit="ppm",
        description="Flammable gases.",
    ),
    Pollutant.pm1_0: PollutantInfo(
        Pollutant.pm1_0,
        name="PM1.0",
        unit="µg/m³",
        description="Fine inhalable particles.",
    ),
    Pollutant.pm2_5: PollutantInfo(
        Pollutant.pm2_5,
        name="PM2.5",
        unit="µg/m³",
        description="Fine inhalable particles.",
        who_guideline=5.0,
        who_guideline_note="µg/m³ (annual mean), 15 µg/m³ (24-hour mean)",
    ),
    Pollutant.pm10_0: PollutantInfo(
        Pollutant.pm10_0,
        name="PM10",
        unit="µg/m³",
        description="Inhalable coarse particles.",
        who_guideline=15.0,
        who_guideline_note="µg/m³ (annual mean), 45 µg/m³ (24-hour mean)",
    ),
}


def parse_pollutant(value: str) -> Pollutant:
    """Resolve a pollutant identifier, raising ``KeyError`` when unknown."""
    try:
        return Pollutant(value.strip().lower())
    except ValueError as exc:
        raise KeyError(f"Unknown pollutant {value!r}.") from exc
