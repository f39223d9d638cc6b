"""
intel.py — Scam Radar endpoint.

Routes:
  GET /api/v1/intel/regional?latitude=..&longitude=.. — grounded local scam trends (10/minute)

Always 200: when search or parsing fails the fallback alert
("India (Connection Error)") is returned so the radar card has content.
Grounding calls are slow and costly, hence the tighter limit.
"""

from fastapi import APIRouter, Depends, Query, Request

from scamshield.ai.intel import ScamIntelClient
from scamshield.core.rate_limit import limiter
from scamshield.models.intel import RegionalAlert
from scamshield.routes.deps import get_intel_client

router = APIRouter(prefix="/api/v1/intel", tags=["intel"])


@router.get("/regional", response_model=RegionalAlert, response_model_by_alias=True)
@limiter.limit("10/minute")
async def regional_alerts(
    request: Request,
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    intel: ScamIntelClient = Depends(get_intel_client),
):
    return await intel.regional_alerts(latitude, longitude)
