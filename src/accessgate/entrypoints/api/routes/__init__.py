"""API route modules."""

from fastapi import APIRouter

from accessgate.entrypoints.api.routes.access import router as access_router
from accessgate.entrypoints.api.routes.auth import router as auth_router
from accessgate.entrypoints.api.routes.organizations import router as organizations_router
from accessgate.entrypoints.api.routes.permissions import router as permissions_router
from accessgate.entrypoints.api.routes.principals import router as principals_router
from accessgate.entrypoints.api.routes.roles import router as roles_router

# Create main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(auth_router)
api_router.include_router(access_router)
api_router.include_router(organizations_router)
api_router.include_router(principals_router)
api_router.include_router(roles_router)
api_router.include_router(permissions_router)

__all__ = ["api_router"]
