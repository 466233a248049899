"""
API v1 Router

Aggregates all API v1 endpoints.
"""

from fastapi import APIRouter

from app.api.v1 import (
    ai,
    alerts,
    auth,
    campaigns,
    chat,
    clients,
    google_ads,
    history,
    metrics,
    users,
)

router = APIRouter()

# Include sub-routers
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(clients.router, prefix="/clients", tags=["Clients"])
router.include_router(campaigns.router, prefix="/campaigns", tags=["Campaigns"])
router.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
router.include_router(alerts.router, prefix="/alerts", tags=["Alerts"])
router.include_router(ai.router, prefix="/ai", tags=["AI Recommendations"])
router.include_router(chat.router, prefix="/chat", tags=["Chat"])
router.include_router(history.router, prefix="/history", tags=["Change History"])
router.include_router(google_ads.router, prefix="/google-ads", tags=["Google Ads"])
