"""
speech.py — "Read advice aloud" endpoint.

Routes:
  POST /api/v1/speech — text → 24 kHz mono PCM16 (base64) via Gemini TTS (20/minute)

The browser decodes the PCM into an AudioBuffer and plays it; with
warning=true a localized "High Risk Detected" line is spoken first.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from scamshield.ai.codec import audio_buffer_to_pcm16, bytes_to_base64
from scamshield.ai.speech import SpeechSynthesizer
from scamshield.core.errors import ScamShieldError
from scamshield.core.rate_limit import limiter
from scamshield.models.analysis import SpeechRequest, SpeechResponse
from scamshield.routes.deps import get_speech_synthesizer

router = APIRouter(prefix="/api/v1", tags=["speech"])


@router.post("/speech", response_model=SpeechResponse)
@limiter.limit("20/minute")
async def synthesize_speech(
    request: Request,
    payload: SpeechRequest,
    synthesizer: SpeechSynthesizer = Depends(get_speech_synthesizer),
):
    try:
        buffer = await synthesizer.synthesize(payload.text, payload.language, payload.warning)
    except ScamShieldError:
        raise
    except ValueError as exc:
        # markdown-only input leaves nothing to say
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return SpeechResponse(
        audio_b64=bytes_to_base64(audio_buffer_to_pcm16(buffer)),
        sample_rate=buffer.sample_rate,
        channels=buffer.channel_count,
        duration=buffer.duration,
    )
