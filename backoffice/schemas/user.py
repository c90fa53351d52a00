# ================================
# USER SCHEMAS (schemas/user.py)
# ================================

from pydantic import EmailStr, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from backoffice.schemas.base import BaseSchema, EmailFieldMixin, PasswordFieldMixin
from backoffice.schemas.rbac import RoleSummary

class UserResponse(BaseSchema):
    """Schema für User-Responses"""
    id: UUID
    name: str
    email: EmailStr
    is_active: bool
    is_admin: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    roles: List[RoleSummary] = Field(default_factory=list)

class UserListResponse(BaseSchema):
    items: List[UserResponse]
    total: int
    page: int
    page_size: int

class UserCreate(EmailFieldMixin, PasswordFieldMixin, BaseSchema):
    """Schema für User-Erstellung durch einen Admin"""
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., max_length=128)
    role_id: UUID
    is_active: bool = True

class UserRoleUpdate(BaseSchema):
    """Replaces every role of the user with this one"""
    role_id: UUID

class UserStatusUpdate(BaseSchema):
    is_active: bool
