"""
analysis.py — Content risk assessment endpoints.

Routes:
  POST /api/v1/analyze        — text or URL risk assessment (30/minute)
  POST /api/v1/analyze/image  — screenshot / photo risk assessment, multipart (20/minute)
  POST /api/v1/transcribe     — voice note → text, so it can be analysed (20/minute)

HOW AN ANALYSIS WORKS
─────────────────────
1. The route wraps the input in an AnalysisRequest (content, type, context, language).
2. ScamAnalyzer builds the Gemini payload ("Context: <context>. Analyze this ...").
3. Gemini answers in JSON mode against the analysis schema.
4. The JSON is validated into AnalysisResult and returned as-is.

There is NO fallback verdict here. If Gemini's answer does not validate the
caller gets a 502 {"detail", "code": "validation_error"} and the UI shows a
retry button; a network failure is a 503 "network_error".

TESTING
───────
  pytest tests/test_routes.py -v

  curl -X POST http://localhost:8000/api/v1/analyze \\
    -H 'Content-Type: application/json' \\
    -d '{"content": "Your electricity will be cut tonight at 9:30 PM", "context": "sms"}'

  curl -X POST http://localhost:8000/api/v1/analyze/image \\
    -F file=@screenshot.png -F context=whatsapp -F language=hi
"""

import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from scamshield.ai.analysis import ScamAnalyzer
from scamshield.ai.request_builder import AnalysisRequest
from scamshield.core.config import settings
from scamshield.core.rate_limit import limiter
from scamshield.models.analysis import (
    AnalysisResult,
    AnalysisType,
    AnalyzeRequest,
    Language,
    ScamContext,
    TranscriptionResponse,
)
from scamshield.routes.deps import get_scam_analyzer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["analysis"])


def _check_upload(file: UploadFile, expected_prefix: str) -> None:
    if file.size is not None and file.size > settings.max_upload_bytes:
        logger.warning("Rejected %s upload of %d bytes", expected_prefix, file.size)
        raise HTTPException(status_code=413, detail="The uploaded file is too large.")
    if file.content_type and not file.content_type.startswith(expected_prefix):
        raise HTTPException(
            status_code=415,
            detail=f"Expected an {expected_prefix.rstrip('/')} file, got {file.content_type}.",
        )


# ── POST /api/v1/analyze ───────────────────────────────────────────────────────

@router.post("/analyze", response_model=AnalysisResult)
@limiter.limit("30/minute")
async def analyze_content(
    request: Request,
    payload: AnalyzeRequest,
    analyzer: ScamAnalyzer = Depends(get_scam_analyzer),
):
    """Assess a message or link. Fails loudly rather than guessing a verdict."""
    if payload.analysis_type is AnalysisType.IMAGE:
        raise HTTPException(status_code=422, detail="Use /api/v1/analyze/image to upload images.")

    return await analyzer.analyze(AnalysisRequest(
        content=payload.content,
        analysis_type=payload.analysis_type,
        context=payload.context,
        language=payload.language,
    ))


# ── POST /api/v1/analyze/image ─────────────────────────────────────────────────

@router.post("/analyze/image", response_model=AnalysisResult)
@limiter.limit("20/minute")
async def analyze_image(
    request: Request,
    file: UploadFile = File(...),
    context: ScamContext = Form(ScamContext.OTHER),
    language: Language = Form(Language.EN),
    analyzer: ScamAnalyzer = Depends(get_scam_analyzer),
):
    """Assess a screenshot or photo (SMS screenshot, QR code, letter, payment page)."""
    _check_upload(file, "image/")
    return await analyzer.analyze(AnalysisRequest(
        content=file,
        analysis_type=AnalysisType.IMAGE,
        context=context,
        language=language,
    ))


# ── POST /api/v1/transcribe ────────────────────────────────────────────────────

@router.post("/transcribe", response_model=TranscriptionResponse)
@limiter.limit("20/minute")
async def transcribe_audio(
    request: Request,
    file: UploadFile = File(...),
    analyzer: ScamAnalyzer = Depends(get_scam_analyzer),
):
    """Transcribe a recorded voice note (browser MediaRecorder, usually audio/webm)."""
    _check_upload(file, "audio/")
    text = await analyzer.transcribe(file)
    return TranscriptionResponse(text=text)
