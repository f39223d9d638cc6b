"""
analysis.py — Schema-validated scam analysis (the safety-critical path).

Flow:
  1. request_builder turns (content, type, context, language) into parts.
  2. Gemini is called in JSON mode against _analysis_schema() with the risk
     taxonomy instruction below, naming the output language.
  3. The text is parsed and validated into AnalysisResult; the language is
     stamped from the request, not taken from the model.

FAIL CLOSED
───────────
A guessed "safe" verdict could cost a user their savings, so this module never
fabricates a result. Non-JSON output, missing or mistyped fields, or a scam
verdict without a scam type raise SchemaValidationError. Transport failures
propagate as NetworkError. Both are surfaced to the user with a retry button.

The only repair applied is clamping risk_score into 0..100 (logged), since
the band is still unambiguous at the extremes.
"""

import json
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from scamshield.ai.codec import BinaryHandle
from scamshield.ai.gemini_client import GeminiClient
from scamshield.ai.request_builder import AnalysisRequest, build_audio_request, build_request
from scamshield.core.errors import SchemaValidationError
from scamshield.models.analysis import AnalysisResult, Language

logger = logging.getLogger(__name__)

# ── Risk taxonomy (product judgment policy — keep in sync with the UI bands) ───

_SYSTEM_INSTRUCTION = """\
You are a specialized **AI Safety Assistant** for Indian users.
Your goal is to help users **assess the risk** of content (text, images, URLs) related to digital finance and communication.
You do NOT provide legal judgments or guaranteed protection. You provide **risk assessments** and **educational advice**.

**Differentiation Logic (Safe vs. Suspicious vs. High Risk):**

1. **Safe (Score 0-20):**
   - **Source:** Verified Sender IDs (e.g., AD-HDFCBK, JM-SBIINB) or known contacts.
   - **Content:** Transaction alerts (money debited/credited), requested OTPs, account statements.
   - **Tone:** Informational, neutral. No urgency to click links immediately.

2. **Suspicious (Score 21-50):**
   - **Source:** Unknown personal numbers (+91 98...) sending marketing or vague messages.
   - **Content:** "You won a lottery", "Job offer w/o interview", "Click to claim gift", generic promotional spam.
   - **Tone:** Exciting, promotional, slightly urgent but not threatening.
   - **Link:** Generic short links (bit.ly) but not mimicking banking URLs.

3. **High Risk / Scam (Score 51-100):**
   - **Source:** Personal number posing as "Bank Manager", "Police", "Electricity Officer".
   - **Content:**
     - **"Digital Arrest"**: Threats of CBI/Narco/Customs seizing package or arresting user via video call. (Score: 90-100)
     - **UPI Fraud**: "Scan QR code to RECEIVE money", "Enter PIN to verify refund". (Score: 90-100)
     - **KYC/PAN Blocking**: "Update PAN now or account blocked tonight", "SIM deactivation warning". (Score: 80-95)
     - **Electricity Cut**: "Bill unpaid, power cut at 9:30 PM". (Score: 80-95)
     - **APK Files**: Links ending in .apk or asking to install AnyDesk/TeamViewer/QuickSupport. (Score: 95-100)
     - **Sextortion**: Threats to leak video/photos. (Score: 95-100)
   - **Tone:** Threatening, false urgency ("Immediately", "Within 24 hours"), authoritative.
   - **Link:** Look-alike domains (e.g., sbi-kyc-update.com, hdfc-netbanking.org).

**Critical Indian Context Rules:**
- **Banks/Govt never ask for OTP/PIN over call/WhatsApp.**
- **Banks never threaten immediate account blocking via SMS/WhatsApp.**
- **Police/CBI never conduct interrogations via Skype/WhatsApp video calls.**
- **PIN is ONLY for sending money, never for receiving.**

**Output Rules:**
- **Language**: Provide 'advice' and 'triggers' in **{language}**.
- **Triggers**: Be specific (e.g., "Personal number used for official claim", "Threat of disconnection", "Request for PIN to receive money").
- **Advice**: Frame as suggestions. Use phrases like "Consider verifying...", "It is risky to...", "We recommend...". Do not use authoritative commands like "Arrest them".
- **Risk Score**: Provide a score from 0 to 100 based on the differentiation logic.

You must return a strictly valid JSON object."""

_TRANSCRIBE_INSTRUCTION = "Transcribe the spoken audio exactly. Return only the transcription text."


def _analysis_schema(language: Language) -> dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "is_scam": {"type": "BOOLEAN"},
            "risk_score": {"type": "INTEGER"},
            "scam_type": {"type": "STRING"},
            "advice": {"type": "STRING", "description": f"The advice in {language.display_name}"},
            "triggers": {
                "type": "ARRAY",
                "items": {"type": "STRING"},
                "description": f"List of triggers in {language.display_name}",
            },
        },
        "required": ["is_scam", "risk_score", "scam_type", "advice", "triggers"],
    }


def build_system_instruction(language: Language) -> str:
    return _SYSTEM_INSTRUCTION.replace("{language}", language.display_name)


class _AnalysisPayload(BaseModel):
    """What the model must return, before the language is stamped."""

    is_scam:    bool
    risk_score: int
    scam_type:  str
    advice:     str
    triggers:   list[str]


def parse_analysis(raw: str | None, language: Language) -> AnalysisResult:
    """Validate model JSON into an AnalysisResult or raise SchemaValidationError."""
    if not raw:
        logger.error("Gemini returned an empty analysis response")
        raise SchemaValidationError()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("Analysis response is not JSON: %s (first 200 chars: %r)", exc, raw[:200])
        raise SchemaValidationError() from exc

    try:
        payload = _AnalysisPayload.model_validate(data)
    except ValidationError as exc:
        logger.error("Analysis response failed schema validation: %s", exc)
        raise SchemaValidationError() from exc

    if payload.is_scam and not payload.scam_type.strip():
        logger.error("Analysis flagged a scam without a scam_type")
        raise SchemaValidationError()

    score = payload.risk_score
    if not 0 <= score <= 100:
        logger.warning("risk_score %d outside 0..100 — clamping", score)
        score = max(0, min(100, score))

    return AnalysisResult(
        is_scam=payload.is_scam,
        risk_score=score,
        scam_type=payload.scam_type.strip(),
        advice=payload.advice,
        triggers=payload.triggers,
        language=language,
    )


class ScamAnalyzer:
    def __init__(self, gemini: GeminiClient) -> None:
        self._gemini = gemini

    async def analyze(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Assess one piece of content. Never returns a partial or guessed result.

        Raises:
            SchemaValidationError, NetworkError, ConfigurationError
        """
        payload = await build_request(request)
        result = await self._gemini.generate(
            payload,
            system_instruction=build_system_instruction(request.language),
            response_schema=_analysis_schema(request.language),
            response_key="scam_analysis",
        )
        analysis = parse_analysis(result.text, request.language)
        logger.info(
            "Analysed %s (%s): is_scam=%s score=%d type=%s",
            request.analysis_type.value, request.context.value,
            analysis.is_scam, analysis.risk_score, analysis.scam_type,
        )
        return analysis

    async def transcribe(self, audio: BinaryHandle) -> str:
        """Transcribe a recorded voice note so it can be analysed as text."""
        payload = await build_audio_request(audio, _TRANSCRIBE_INSTRUCTION)
        result = await self._gemini.generate(payload, response_key="transcription")
        text = (result.text or "").strip()
        if not text:
            logger.error("Gemini returned no transcription")
            raise SchemaValidationError("Failed to transcribe audio.")
        return text
