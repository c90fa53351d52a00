# ================================
# API PACKAGE INITIALIZATION (api/__init__.py)
# ================================

"""
API Package

Root package für alle API-Routen
"""

from fastapi import APIRouter

from backoffice.api.v1 import v1_router

# Basis Router für die gesamte API
api_router = APIRouter(prefix="/api")
api_router.include_router(v1_router)

# Version Info
API_VERSION = "1.0.0"
API_TITLE = "Backoffice Admin Console API"
API_DESCRIPTION = """
Authorization and session-security core of the admin console

## Authentication
- Email/password login with opaque, cookie-bound sessions
- Double-submit CSRF tokens on every state-changing request
- Rate limiting (general API and authentication policies)

## Authorization
- Role-based permissions (resource:action)
- Global admin bypass
- Audit trail of every denial
"""

__all__ = ["api_router", "API_VERSION", "API_TITLE", "API_DESCRIPTION"]
