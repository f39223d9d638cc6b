"""
intel.py — Grounded regional scam intelligence ("Scam Radar").

Gemini resolves the coordinates to a city/state, searches recent local news
and cyber-police warnings through the Google Search tool, and summarises them
into RegionalAlert JSON. Source links are read separately from the response's
grounding metadata (not from the JSON body) and are best-effort: an answer
without provenance is still valid, with sources == [].

Graceful degradation: this is an informational surface, so any failure —
including a location that could not be resolved — returns _FALLBACK_ALERT
so the radar card never renders empty.
"""

import json
import logging

from scamshield.ai.gemini_client import GeminiClient
from scamshield.core.errors import ScamShieldError
from scamshield.models.intel import RegionalAlert, RiskLevel, Source, TopScam

logger = logging.getLogger(__name__)

_SYSTEM_INSTRUCTION = """\
You are a real-time Scam Intelligence Analyst.
You must ALWAYS use Google Search to find real, recent data.
Do not hallucinate incidents. If no specific local news is found, fallback to state-level or \
national trends but clearly mention the location scope."""

_PROMPT = """\
1. Identify the specific City and State in India for the coordinates: {latitude}, {longitude}.
2. Using Google Search, find the latest news, police warnings, and cybercrime alerts specifically for this city/region from the last 3-6 months.
3. Look for terms like "Digital Arrest", "Electricity Bill Scam", "FedEx Scam", "Part-time job scam", "Cyber police warning".
4. Summarize the **actual** found trends into the JSON format.
5. For 'topScams', estimate a 'count' based on the intensity of news reports (e.g. widely reported = high count).
6. For 'recentIncidents', summarize 2-3 specific real news headlines found."""

_ALERT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "location": {"type": "STRING", "description": "The identified City and State."},
        "riskLevel": {"type": "STRING", "enum": ["Low", "Medium", "High", "Critical"]},
        "topScams": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "title": {"type": "STRING"},
                    "count": {"type": "INTEGER", "description": "Estimated intensity/reports"},
                },
            },
        },
        "recentIncidents": {"type": "ARRAY", "items": {"type": "STRING"}},
        "safetyTip": {"type": "STRING"},
    },
    "required": ["location", "riskLevel", "topScams", "recentIncidents", "safetyTip"],
}

_FALLBACK_ALERT = RegionalAlert(
    location="India (Connection Error)",
    risk_level=RiskLevel.HIGH,
    top_scams=[TopScam(title="UPI Fraud", count=0), TopScam(title="Digital Arrest", count=0)],
    recent_incidents=["Could not fetch live news. Please check internet connection."],
    safety_tip="Always verify caller identity before transferring money.",
)


def fallback_alert() -> RegionalAlert:
    return _FALLBACK_ALERT


class ScamIntelClient:
    def __init__(self, gemini: GeminiClient) -> None:
        self._gemini = gemini

    async def regional_alerts(self, latitude: float, longitude: float) -> RegionalAlert:
        try:
            result = await self._gemini.generate(
                _PROMPT.format(latitude=latitude, longitude=longitude),
                system_instruction=_SYSTEM_INSTRUCTION,
                response_schema=_ALERT_SCHEMA,
                search_grounding=True,
                response_key="regional_alert",
            )
            if not result.text:
                raise ValueError("No intelligence data received.")
            alert = RegionalAlert.model_validate(json.loads(result.text))
            if not alert.location.strip():
                raise ValueError("Could not resolve coordinates to a location.")
        except (ScamShieldError, ValueError) as exc:
            logger.error(
                "Intelligence lookup failed for (%.4f, %.4f), using fallback: %s",
                latitude, longitude, exc,
            )
            return fallback_alert()

        sources = [Source(title=c.title, uri=c.uri) for c in result.citations]
        if not sources:
            logger.info("Regional alert for %s has no grounding sources", alert.location)
        return alert.model_copy(update={"sources": sources})
