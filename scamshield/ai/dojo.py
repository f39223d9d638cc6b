"""
dojo.py — Scam Dojo scenario generation.

Asks Gemini for 5 fresh, India-specific messages (3 scams, 2 safe) in the
player's language. This feeds a game, not a safety decision, so any failure —
transport, JSON, schema, or a batch that breaks the 5 / 3-2 contract — is
logged and replaced with _FALLBACK_SCENARIOS instead of raising.
"""

import json
import logging

from pydantic import TypeAdapter

from scamshield.ai.gemini_client import GeminiClient
from scamshield.core.errors import ScamShieldError
from scamshield.models.analysis import Language
from scamshield.models.dojo import Difficulty, DojoScenario

logger = logging.getLogger(__name__)

SCENARIO_COUNT = 5
SCAM_COUNT = 3

_PROMPT = """\
Generate 5 UNIQUE and REALISTIC scam/safe message scenarios for an Indian user in {language}.

Requirements:
1. **Mix**: 3 Scams, 2 Safe messages.
2. **Context**: Use Indian contexts (UPI, HDFC/SBI/ICICI, Electricity Board, Jio/Airtel, WhatsApp "Digital Arrest").
3. **Scam Examples**:
   - "Your electricity will be cut at 9:30 PM"
   - "CBI: Arrest warrant issued against you"
   - "Part-time job: Earn 5000/day"
   - "Credit Card points expiring"
4. **Safe Examples**:
   - Genuine OTP message (e.g. "Your OTP is 123456. Do not share.")
   - Transaction alert (e.g. "Rs 500 debited via UPI")
   - Service update (e.g. "Your recharge was successful")
5. **Difficulty**: Make some tricky (e.g. a safe message that looks slightly scary but is actually genuine, or a scam that looks very professional).

**Output Rules for 'reason'**:
- Do NOT simply say "It is a scam."
- Explain the **manipulation technique** (e.g., "This uses false urgency to make you panic.")
- Tell the user **what to check** (e.g., "Check the sender ID; banks don't use personal numbers.")
- Keep it educational and supportive.

Output a JSON array. For each item: "id", "sender" (name or number, e.g. +91 98..., AD-HDFCBK),
"text" (the message body), "isScam", "reason" (short educational explanation in {language}),
"difficulty" ("Easy" or "Hard")."""

_SCENARIOS_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "sender": {"type": "STRING"},
            "text": {"type": "STRING"},
            "isScam": {"type": "BOOLEAN"},
            "reason": {"type": "STRING"},
            "difficulty": {"type": "STRING", "enum": ["Easy", "Hard"]},
        },
        "required": ["id", "sender", "text", "isScam", "reason", "difficulty"],
    },
}

_FALLBACK_SCENARIOS: tuple[DojoScenario, ...] = (
    DojoScenario(
        id="1",
        sender="+91 98765xxxxx",
        text="Dear customer, your electricity will be disconnected tonight. Call 99xxx immediately.",
        is_scam=True,
        reason="Personal numbers are not used for official utility warnings. This creates false urgency.",
        difficulty=Difficulty.EASY,
    ),
    DojoScenario(
        id="2",
        sender="AX-HDFCBK",
        text="Rs 5,000 debited from a/c **1234 to UPI-Zomato. Bal: 12,000.",
        is_scam=False,
        reason="This uses a correct Sender ID and does not ask you to click a link.",
        difficulty=Difficulty.EASY,
    ),
)

_scenario_list = TypeAdapter(list[DojoScenario])


def fallback_scenarios() -> list[DojoScenario]:
    return list(_FALLBACK_SCENARIOS)


def parse_scenarios(raw: str | None) -> list[DojoScenario]:
    """Parse and check the 5 / 3-2 contract. Raises ValueError on any violation."""
    if not raw:
        raise ValueError("No scenarios generated.")
    scenarios = _scenario_list.validate_python(json.loads(raw))
    if len(scenarios) != SCENARIO_COUNT:
        raise ValueError(f"expected {SCENARIO_COUNT} scenarios, got {len(scenarios)}")
    scams = sum(1 for s in scenarios if s.is_scam)
    if scams != SCAM_COUNT:
        raise ValueError(f"expected {SCAM_COUNT} scams, got {scams}")
    return scenarios


class DojoScenarioGenerator:
    def __init__(self, gemini: GeminiClient) -> None:
        self._gemini = gemini

    async def generate(self, language: Language) -> list[DojoScenario]:
        """Always returns something playable: 5 fresh scenarios or the fallback pair."""
        try:
            result = await self._gemini.generate(
                _PROMPT.format(language=language.display_name),
                response_schema=_SCENARIOS_SCHEMA,
                response_key="dojo_scenarios",
            )
            return parse_scenarios(result.text)
        except (ScamShieldError, ValueError) as exc:
            # JSONDecodeError and pydantic ValidationError are both ValueErrors
            logger.error("Dojo scenario generation failed, using fallback: %s", exc)
            return fallback_scenarios()
