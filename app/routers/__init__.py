"""API routers for the Tradeworks backend."""
from fastapi import APIRouter

from . import contracts, health, me, milestones, payments, psp


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(contracts.router)
    api_router.include_router(milestones.router)
    api_router.include_router(payments.router)
    api_router.include_router(psp.router)
    api_router.include_router(me.router)
    return api_router
