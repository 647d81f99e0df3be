"""API v1 router combining all route modules."""

from fastapi import APIRouter

from mostrador.api.v1 import conversations, health, unknown_cases

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Customer turns (called by the channel integration)
api_router.include_router(
    conversations.router,
    prefix="/conversations",
    tags=["conversations"],
)

# Unknown case audit ledger
api_router.include_router(
    unknown_cases.router,
    prefix="/unknown-cases",
    tags=["unknown-cases"],
)
