"""API routers for the Helpline backend."""
from fastapi import APIRouter

from . import auth, beacon, emergency, health_profile


def get_api_router() -> APIRouter:
    """Return the ``/api`` router; the service health check is mounted separately."""

    api_router = APIRouter(prefix="/api")
    api_router.include_router(auth.router)
    api_router.include_router(health_profile.router)
    api_router.include_router(beacon.router)
    api_router.include_router(emergency.router)
    return api_router
