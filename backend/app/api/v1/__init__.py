"""
API v1 Router

All autopilot and volatility scoring endpoints.
"""

from fastapi import APIRouter

from app.api.v1.endpoints import autopilot, iv_scoring

router = APIRouter()

# Include all endpoint routers
router.include_router(autopilot.router, prefix="/autopilot", tags=["Autopilot"])
router.include_router(iv_scoring.router, prefix="/iv-score", tags=["IV Score"])
