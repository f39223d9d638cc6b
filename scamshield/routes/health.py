"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - Front-end to check API connectivity

Returns status + AI configuration so callers can distinguish between
"API down" and "API up but no Gemini key configured".
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from scamshield.ai.gemini_client import GeminiClient
from scamshield.core.config import settings
from scamshield.routes.deps import get_gemini_client

router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    ai: str  # "configured" | "mock" | "unconfigured"
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(gemini: GeminiClient = Depends(get_gemini_client)) -> HealthResponse:
    """
    Returns the liveness status of the API and whether Gemini is usable.

    The API is considered healthy (HTTP 200) even without a key; analysis
    calls will then fail with a configuration error instead.
    """
    if gemini.mock_mode:
        ai_status = "mock"
    elif gemini.configured:
        ai_status = "configured"
    else:
        ai_status = "unconfigured"

    return HealthResponse(
        status="ok",
        version="0.1.0",
        ai=ai_status,
        environment=settings.environment,
    )
