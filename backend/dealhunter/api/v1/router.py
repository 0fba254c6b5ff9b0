"""API v1 router -- aggregates all v1 endpoint routers."""

from fastapi import APIRouter

from dealhunter.api.v1 import deals, feeds, health, pending_deals

api_v1_router = APIRouter()

api_v1_router.include_router(health.router, tags=["health"])
api_v1_router.include_router(feeds.router, prefix="/feeds", tags=["feeds"])
api_v1_router.include_router(pending_deals.router, prefix="/pending-deals", tags=["moderation"])
api_v1_router.include_router(deals.router, prefix="/deals", tags=["deals"])
