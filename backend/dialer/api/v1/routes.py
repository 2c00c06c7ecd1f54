"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from dialer.api.v1.endpoints import (
    agents,
    dialer,
    webhooks,
)

api_router = APIRouter()

# Agent console / operator tools
api_router.include_router(dialer.router)
api_router.include_router(agents.router)

# Provider callbacks (unauthenticated, always 200)
api_router.include_router(webhooks.router)
