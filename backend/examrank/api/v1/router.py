"""API v1 router - includes all v1 endpoints."""

from fastapi import APIRouter

from examrank.api.v1.endpoints import batch, health

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(health.router, prefix="", tags=["Health"])
api_router.include_router(batch.router, prefix="", tags=["Batch"])
