"""
API v1 router that aggregates all endpoint routers.
"""

from fastapi import APIRouter

from promobase.api.v1.endpoints import (
    admin,
    contacts,
    duplicates,
    health,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(
    contacts.router,
    prefix="/contacts",
    tags=["contacts"],
)
api_router.include_router(
    duplicates.router,
    prefix="/duplicates",
    tags=["duplicates"],
)
api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
)
