# ================================
# API V1 INITIALIZATION (api/v1/__init__.py)
# ================================

"""
API Version 1

Alle V1 API Routes
"""

from fastapi import APIRouter

from backoffice.api.v1 import auth, users, rbac, admin

# Create V1 router
v1_router = APIRouter(prefix="/v1")

v1_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"],
    responses={
        401: {"description": "Authentication failed"},
        403: {"description": "Invalid CSRF token"},
        429: {"description": "Too many requests"}
    }
)

v1_router.include_router(
    users.router,
    prefix="/users",
    tags=["User Management"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "User not found"}
    }
)

v1_router.include_router(
    rbac.router,
    prefix="/rbac",
    tags=["Role & Permission Management"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"},
        404: {"description": "Role or permission not found"},
        409: {"description": "Permission or role still in use"}
    }
)

v1_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"description": "Authentication required"},
        403: {"description": "Insufficient permissions"}
    }
)

__all__ = ["v1_router"]
