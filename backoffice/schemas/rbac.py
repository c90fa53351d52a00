# ================================
# RBAC SCHEMAS (schemas/rbac.py)
# ================================

from pydantic import Field, field_validator
from typing import Optional, List
from uuid import UUID
from backoffice.schemas.base import BaseSchema, TimestampMixin
import re

RESERVED_ROLE_NAMES = {"admin", "superadmin", "root"}
ROLE_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9\s_-]+$')
PERMISSION_PART_PATTERN = re.compile(r'^[a-z0-9_-]+$')

class PermissionBase(BaseSchema):
    """Base Permission Schema"""
    resource: str = Field(..., min_length=2, max_length=100, description="Resource name (e.g., 'products', 'users')")
    action: str = Field(..., min_length=2, max_length=50, description="Action name (e.g., 'create', 'read')")
    description: Optional[str] = Field(None, max_length=500, description="Permission description")

class PermissionCreate(PermissionBase):
    """Schema für Permission-Erstellung"""

    @field_validator('resource', 'action')
    @classmethod
    def normalize_part(cls, v: str) -> str:
        v = v.lower()
        if not PERMISSION_PART_PATTERN.match(v):
            raise ValueError('Only lowercase letters, numbers, hyphens and underscores are allowed')
        return v

class PermissionUpdate(BaseSchema):
    """Schema für Permission-Updates (soft-disable via is_active)"""
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None

class PermissionResponse(PermissionBase, TimestampMixin):
    """Schema für Permission-Responses"""
    id: UUID
    name: str = Field(..., description="Permission name as resource:action")
    is_active: bool

class RoleNameMixin:
    """Mixin für Role-Namen"""

    @field_validator('name')
    @classmethod
    def validate_role_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not ROLE_NAME_PATTERN.match(v):
            raise ValueError('Role name can only contain letters, numbers, spaces, hyphens, and underscores')
        if v.lower() in RESERVED_ROLE_NAMES:
            raise ValueError('This role name is reserved and cannot be used')
        return v

class RoleCreate(RoleNameMixin, BaseSchema):
    """Schema für Role-Erstellung"""
    name: str = Field(..., min_length=2, max_length=50, description="Role name")
    description: Optional[str] = Field(None, max_length=500, description="Role description")
    permission_ids: List[UUID] = Field(..., min_length=1, max_length=100, description="Permission IDs to assign")

class RoleUpdate(RoleNameMixin, BaseSchema):
    """Schema für Role-Updates"""
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    permission_ids: Optional[List[UUID]] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None

class RoleSummary(BaseSchema):
    id: UUID
    name: str

class RoleResponse(TimestampMixin, BaseSchema):
    """Schema für Role-Responses"""
    id: UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    permissions: List[PermissionResponse] = Field(default_factory=list)
    user_count: Optional[int] = Field(None, description="Number of users with this role")

class EffectivePermissionsResponse(BaseSchema):
    """Effective permission set of the calling user"""
    user_id: UUID
    is_admin: bool
    roles: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list, description="resource:action pairs")
