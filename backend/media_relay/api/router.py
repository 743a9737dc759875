"""API router aggregation."""
from fastapi import APIRouter

from media_relay.api.endpoints import media

# Create API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(media.router, tags=["media"])
