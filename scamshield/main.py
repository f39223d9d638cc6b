"""
ScamShield API — Application entry point.

Bootstraps FastAPI, wires up middleware and error handlers, registers route
groups, and builds the single GeminiClient every route shares.

Layout:
  - one router per feature (analysis, speech, intel, dojo, live) under scamshield.routes
  - shared objects (GeminiClient, DojoGameStore) live on app.state, read via scamshield.routes.deps
  - ScamShieldError subclasses become {"detail", "code"} JSON through one handler

Run locally:
    uvicorn scamshield.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from scamshield.ai.gemini_client import GeminiClient
from scamshield.core.config import settings
from scamshield.core.errors import ScamShieldError, scamshield_error_handler
from scamshield.core.rate_limit import limiter
from scamshield.routes.analysis import router as analysis_router
from scamshield.routes.dojo import router as dojo_router
from scamshield.routes.health import router as health_router
from scamshield.routes.intel import router as intel_router
from scamshield.routes.live import router as live_router
from scamshield.routes.speech import router as speech_router
from scamshield.services.dojo_game import DojoGameStore

# ─── Logging ───────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ─── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log which AI mode the process came up in; nothing to open or close."""
    logger.info(
        "Starting ScamShield API (env: %s, ai: %s)",
        settings.environment,
        "mock" if app.state.gemini_client.mock_mode else "gemini",
    )
    yield
    logger.info("Shutting down ScamShield API")


# ─── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="ScamShield API",
    description=(
        "Scam risk assessment, regional scam intelligence, Scam Dojo training "
        "and live camera/microphone scanning for Indian users. "
        "All AI results are risk assessments — not guarantees."
    ),
    version="0.1.0",
    lifespan=lifespan,
    # Disable docs in production to reduce attack surface
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
)

# Shared service objects. Built at import (not in lifespan) so test clients
# that skip the lifespan still find them.
app.state.gemini_client = GeminiClient(settings)
app.state.game_store = DojoGameStore()


# ─── Rate limiting ─────────────────────────────────────────────────────────────
# slowapi looks the limiter up on app.state; only Gemini-backed routes are limited.
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ─── Errors ────────────────────────────────────────────────────────────────────
# ScamShieldError → {"detail": <user-facing message>, "code": <tag>}
app.add_exception_handler(ScamShieldError, scamshield_error_handler)

# ─── Middleware ─────────────────────────────────────────────────────────────────
# CORS: allow the web UI to call the API.
# In production, restrict CORS_ORIGINS_STR to your actual domain.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Routes ────────────────────────────────────────────────────────────────────
app.include_router(health_router, prefix="/health", tags=["health"])

# Content analysis + transcription
app.include_router(analysis_router)

# Spoken advice
app.include_router(speech_router)

# Scam Radar
app.include_router(intel_router)

# Scam Dojo
app.include_router(dojo_router)

# Live Scanner
app.include_router(live_router)


@app.get("/", tags=["root"])
async def root():
    """Service name, version and where the docs are."""
    return {
        "name": "ScamShield API",
        "version": "0.1.0",
        "status": "running",
        "environment": settings.environment,
        "docs": "/docs",
    }
