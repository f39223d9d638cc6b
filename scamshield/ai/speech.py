"""
speech.py — Spoken advice ("Voice Warning" / read advice aloud).

Gemini TTS returns raw 24 kHz mono PCM16; it is decoded into an AudioBuffer
with the shared codec so the caller can hand it to a playback pipeline or
ship the PCM to the browser as-is.
"""

import logging
import re

from scamshield.ai.codec import AudioBuffer, pcm16_to_audio_buffer
from scamshield.ai.gemini_client import GeminiClient, GeminiModel
from scamshield.core.errors import SchemaValidationError
from scamshield.models.analysis import Language

logger = logging.getLogger(__name__)

SPEECH_SAMPLE_RATE = 24_000
SPEECH_CHANNELS = 1
SPEECH_VOICE = "Puck"

# Long inputs time out or get cut by the TTS model
_MAX_CHARS = 400
_MARKDOWN = re.compile(r"[*_#`]")

_WARNING_PREFIX = {
    Language.EN: "Warning! High Risk Detected. ",
    Language.HI: "सावधान! उच्च जोखिम का पता चला है. ",
    Language.OR: "ସାବଧାନ! ଏହା ଏକ ବିପଦପୂର୍ଣ୍ଣ ସନ୍ଦେଶ | ",
}


def prepare_speech_text(text: str, language: Language = Language.EN, warning: bool = False) -> str:
    """Strip markdown, add the warning line, cap at 400 chars. Raises ValueError if empty."""
    clean = _MARKDOWN.sub("", text).strip()
    if not clean:
        raise ValueError("Text is empty, cannot generate audio.")
    if warning:
        clean = _WARNING_PREFIX[language] + clean
    if len(clean) > _MAX_CHARS:
        clean = clean[: _MAX_CHARS - 3] + "..."
    return clean


class SpeechSynthesizer:
    def __init__(self, gemini: GeminiClient) -> None:
        self._gemini = gemini

    async def synthesize(self, text: str, language: Language = Language.EN, warning: bool = False) -> AudioBuffer:
        spoken = prepare_speech_text(text, language, warning)
        result = await self._gemini.generate(
            f"Say the following message clearly: {spoken}",
            model=GeminiModel.SPEECH,
            audio_voice=SPEECH_VOICE,
            response_key="speech",
        )
        if not result.audio:
            logger.error("Gemini TTS returned no audio for %d chars", len(spoken))
            raise SchemaValidationError("TTS generation failed.")
        return pcm16_to_audio_buffer(result.audio, SPEECH_SAMPLE_RATE, SPEECH_CHANNELS)
