# ================================
# SCHEMAS PACKAGE INITIALIZATION (schemas/__init__.py)
# ================================

"""
Pydantic Schemas Package

Zentrale Imports für alle Schemas im System
"""

from backoffice.schemas.base import BaseSchema, SuccessResponse
from backoffice.schemas.rbac import (
    PermissionCreate, PermissionUpdate, PermissionResponse,
    RoleCreate, RoleUpdate, RoleResponse, RoleSummary,
    EffectivePermissionsResponse
)
from backoffice.schemas.user import (
    UserResponse, UserListResponse, UserCreate, UserRoleUpdate, UserStatusUpdate
)
from backoffice.schemas.auth import (
    LoginForm, RegisterForm, ForgotPasswordForm, ResetPasswordForm, ChangePasswordForm,
    CSRFTokenResponse, CurrentUserResponse, MessageResponse
)
