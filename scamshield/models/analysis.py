"""
analysis.py — Pydantic models for content analysis, transcription and speech.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class AnalysisType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    URL = "url"


class ScamContext(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    SOCIAL_MEDIA = "social_media"
    DATING_APP = "dating_app"
    MARKETPLACE = "marketplace"
    BANKING = "banking"
    URL = "url"
    OTHER = "other"


class Language(str, Enum):
    EN = "en"
    HI = "hi"
    OR = "or"

    @property
    def display_name(self) -> str:
        return _LANGUAGE_NAMES[self]


_LANGUAGE_NAMES = {
    Language.EN: "English",
    Language.HI: "Hindi",
    Language.OR: "Odia",
}


# ── Analysis ──────────────────────────────────────────────────────────────────

class AnalyzeRequest(BaseModel):
    """Text or URL submitted for a risk assessment. Images go through the multipart route."""

    content: str = Field(..., min_length=1, max_length=10_000, description="Message text or URL")
    analysis_type: AnalysisType = AnalysisType.TEXT
    context: ScamContext = ScamContext.OTHER
    language: Language = Language.EN


class AnalysisResult(BaseModel):
    """Structured risk assessment returned by the model (language stamped afterwards)."""

    model_config = ConfigDict(frozen=True)

    is_scam:    bool
    risk_score: int = Field(..., ge=0, le=100)  # 0–20 safe, 21–50 suspicious, 51–100 high risk
    scam_type:  str
    advice:     str
    triggers:   list[str]
    language:   Language


# ── Transcription ─────────────────────────────────────────────────────────────

class TranscriptionResponse(BaseModel):
    text: str


# ── Spoken advice ─────────────────────────────────────────────────────────────

class SpeechRequest(BaseModel):
    text:     str = Field(..., min_length=1, max_length=5_000)
    language: Language = Language.EN
    warning:  bool = False  # prefix a "High Risk Detected" line


class SpeechResponse(BaseModel):
    audio_b64:   str    # raw PCM16 little-endian
    sample_rate: int
    channels:    int
    duration:    float  # seconds
