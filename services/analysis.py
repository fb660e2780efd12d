"""
Analysis collaborators that turn a reading into a derived insight.

Two implementations are provided:
- ``MockAnalyzer``: deterministic rule-based summary (offline, always available)
- ``GroqAnalyzer``: hosted LLM via the Groq API (requires ``GROQ_API_KEY``)

Both expose ``async analyze(reading) -> DerivedInsight`` and raise on failure;
retry and placeholder handling belong to the coordinator.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Protocol

from groq import AsyncGroq

from models.pollutants import POLLUTANTS, Pollutant
from models.records import DerivedInsight, Reading
from settings import Settings

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Analyzer(Protocol):
    async def analyze(self, reading: Reading) -> DerivedInsight:
        ...

    async def aclose(self) -> None:
        ...


RISK_LEVELS = ("Low", "Moderate", "High", "Very High")


def risk_level(reading: Reading) -> str:
    """Grade a reading by its worst multiple of a WHO guideline."""
    worst = max(
        (
            reading.value(pollutant) / info.who_guideline
            for pollutant, info in POLLUTANTS.items()
            if info.who_guideline
        ),
        default=0.0,
    )
    if worst <= 1:
        level = 0
    elif worst <= 3:
        level = 1
    elif worst <= 9:
        level = 2
    else:
        level = 3
    # Combustion gases are acute hazards regardless of particulates.
    if reading.co > 9 or reading.ch4_lpg > 1000:
        level = max(level, 2)
    return RISK_LEVELS[level]


class MockAnalyzer:
    """
    Rule-based analyzer used when no LLM is configured.

    Flags every pollutant above its WHO guideline and adds the standard
    ventilation and exposure advice for the worst particulate band. The
    forecast assumes current conditions persist, with low confidence.
    """

    def __init__(self, clock: Clock = _utcnow) -> None:
        self._clock = clock

    async def analyze(self, reading: Reading) -> DerivedInsight:
        elevated = [
            info.name
            for pollutant, info in POLLUTANTS.items()
            if info.who_guideline is not None and reading.value(pollutant) > info.who_guideline
        ]
        recommendations: List[str] = []

        # PM2.5 24-hour guideline is 15 µg/m³; 3x that is a clear health risk.
        if reading.pm2_5 > 45:
            recommendations.append("Avoid outdoor activity and run an air purifier.")
        elif reading.pm2_5 > 15:
            recommendations.append("Limit prolonged exertion and keep windows closed.")

        if reading.co > 9:
            recommendations.append("Check combustion appliances and ventilate immediately.")
        if reading.ch4_lpg > 1000:
            recommendations.append("Possible gas leak: avoid open flames and ventilate.")
        if reading.vocs > 500:
            recommendations.append("Reduce use of solvents, paints and cleaning sprays.")

        if elevated:
            summary = (
                f"{', '.join(elevated)} above WHO guideline levels; "
                "sensitive groups may experience respiratory irritation."
            )
        else:
            summary = "All monitored pollutants are within WHO guideline levels."
        if not recommendations:
            recommendations.append("No action needed; keep monitoring.")

        level = risk_level(reading)
        symptoms: List[str] = []
        if reading.pm2_5 > 5 or reading.pm10_0 > 15:
            symptoms.append("Throat irritation or coughing.")
            if level in ("High", "Very High"):
                symptoms.append("Shortness of breath during exertion.")
        if reading.co > 4:
            symptoms.append("Headache, dizziness or fatigue.")
        if reading.vocs > 500:
            symptoms.append("Eye, nose and throat irritation.")
        if reading.ch4_lpg > 1000:
            symptoms.append("Nausea or light-headedness near the source.")
        if not symptoms:
            symptoms.append("No specific symptoms typically expected at these levels.")

        if elevated:
            forecast = (
                "Levels are likely to stay elevated over the next 24 hours unless "
                "sources are removed or ventilation improves."
            )
        else:
            forecast = "Air quality is expected to remain within guideline levels over the next 24 hours."

        return DerivedInsight(
            summary=summary,
            recommendations=recommendations,
            generated_at=self._clock(),
            risk_level=level,
            symptoms=symptoms,
            forecast=forecast,
            forecast_confidence="Low",
        )

    async def aclose(self) -> None:
        return None


class GroqAnalyzer:
    """Analyzer backed by a hosted LLM through the Groq async client."""

    def __init__(
        self,
        client: Any,
        model: str,
        clock: Clock = _utcnow,
    ) -> None:
        self._client = client
        self._model = model
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = _utcnow) -> "GroqAnalyzer":
        if not settings.groq_api_key:
            raise ValueError("GROQ_API_KEY is required for the groq analyzer.")
        client = AsyncGroq(
            api_key=settings.groq_api_key,
            timeout=settings.analysis_timeout_seconds,
        )
        return cls(client=client, model=settings.groq_model, clock=clock)

    @staticmethod
    def build_prompt(reading: Reading) -> str:
        lines = [
            f"{POLLUTANTS[pollutant].name}: {reading.value(pollutant)} {POLLUTANTS[pollutant].unit}"
            for pollutant in Pollutant
        ]
        return (
            "You are an assistant specializing in environmental health and safety. "
            "Analyze these indoor air quality readings:\n"
            + "\n".join(lines)
            + "\n\nRespond with a JSON object with these keys:\n"
            "\"summary\": a concise summary of the potential health impacts focusing "
            "on the most significant risks;\n"
            "\"recommendations\": a list of short actionable steps;\n"
            f"\"risk_level\": the overall health risk, one of {', '.join(RISK_LEVELS)};\n"
            "\"symptoms\": a list of symptoms people might experience;\n"
            "\"forecast\": the expected air quality trend over the next 24 hours;\n"
            "\"forecast_confidence\": Low, Moderate or High."
        )

    async def analyze(self, reading: Reading) -> DerivedInsight:
        completion = await self._client.chat.completions.create(
            messages=[{"role": "user", "content": self.build_prompt(reading)}],
            model=self._model,
            temperature=0.3,
            response_format={"type": "json_object"},
        )
        content = completion.choices[0].message.content or ""
        return self.parse_response(content, generated_at=self._clock())

    async def aclose(self) -> None:
        await self._client.close()

    @staticmethod
    def parse_response(content: str, generated_at: datetime) -> DerivedInsight:
        """Build an insight from the model's JSON reply, raising ``ValueError`` if unusable."""
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ValueError("Analysis response is not valid JSON.") from exc
        if not isinstance(data, dict):
            raise ValueError("Analysis response must be a JSON object.")

        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise ValueError("Analysis response is missing a summary.")

        return DerivedInsight(
            summary=summary.strip(),
            recommendations=_text_list(data.get("recommendations")),
            generated_at=generated_at,
            risk_level=_optional_text(data.get("risk_level")),
            symptoms=_text_list(data.get("symptoms")),
            forecast=_optional_text(data.get("forecast")),
            forecast_confidence=_optional_text(data.get("forecast_confidence")),
        )


def _text_list(raw: Any) -> List[str]:
    """Accept a list or a single string; blank items are dropped."""
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list):
        return []
    return [str(item).strip() for item in raw if str(item).strip()]


def _optional_text(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    return raw.strip() or None


def build_analyzer(settings: Settings, clock: Optional[Clock] = None) -> Analyzer:
    """Select the analyzer for ``settings.analyzer_mode``, falling back to mock."""
    if settings.analyzer_mode == "groq":
        try:
            return GroqAnalyzer.from_settings(settings, clock=clock or _utcnow)
        except ValueError as exc:
            logger.warning(
                "Groq analyzer unavailable, falling back to mock analyzer",
                extra={"reason": str(exc)},
            )
    return MockAnalyzer(clock=clock or _utcnow)
