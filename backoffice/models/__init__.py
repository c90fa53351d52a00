# ================================
# DATABASE INITIALIZATION (models/__init__.py)
# ================================

"""
Database Models Package

Importiert alle Models für Alembic Auto-Generation
"""

from backoffice.models.base import Base

# Import all models for Alembic auto-generation
from backoffice.models.user import User, UserSession, PasswordResetToken
from backoffice.models.rbac import Permission, Role, RolePermission, UserRole
from backoffice.models.audit import AuditLog

# Export all models
__all__ = [
    "Base",
    "User", "UserSession", "PasswordResetToken",
    "Permission", "Role", "RolePermission", "UserRole",
    "AuditLog",
]
