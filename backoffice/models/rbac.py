# ================================
# RBAC MODELS (models/rbac.py)
# ================================

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from backoffice.models.base import Base
from datetime import datetime, timezone

class Permission(Base):
    """Permission Model"""
    __tablename__ = "permissions"

    # Permission Definition
    resource = Column(String(100), nullable=False)  # 'products', 'appointments', 'users'
    action = Column(String(50), nullable=False)     # 'create', 'read', 'update', 'delete', 'manage'
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships (no cascade: a referenced permission must not disappear)
    role_permissions = relationship("RolePermission", back_populates="permission", passive_deletes="all")

    # Constraints
    __table_args__ = (
        UniqueConstraint('resource', 'action', name='uq_permission_resource_action'),
    )

    @property
    def name(self) -> str:
        """Permission name as resource:action"""
        return f"{self.resource}:{self.action}"

    def __repr__(self):
        return f"<Permission(resource='{self.resource}', action='{self.action}')>"

class Role(Base):
    """Role Model"""
    __tablename__ = "roles"

    # Role Definition
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    role_permissions = relationship("RolePermission", back_populates="role", cascade="all, delete-orphan")
    user_roles = relationship("UserRole", back_populates="role", cascade="all, delete-orphan")

    @property
    def permissions(self):
        return [rp.permission for rp in self.role_permissions]

    def __repr__(self):
        return f"<Role(name='{self.name}')>"

class RolePermission(Base):
    """Role-Permission Association"""
    __tablename__ = "role_permissions"

    # Foreign Keys
    role_id = Column(Uuid(as_uuid=True), ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    permission_id = Column(Uuid(as_uuid=True), ForeignKey('permissions.id', ondelete='RESTRICT'), nullable=False)

    # Relationships
    role = relationship("Role", back_populates="role_permissions")
    permission = relationship("Permission", back_populates="role_permissions")

    # Constraints
    __table_args__ = (
        UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )

    def __repr__(self):
        return f"<RolePermission(role='{self.role_id}', permission='{self.permission_id}')>"

class UserRole(Base):
    """User-Role Association"""
    __tablename__ = "user_roles"

    # Foreign Keys
    user_id = Column(Uuid(as_uuid=True), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role_id = Column(Uuid(as_uuid=True), ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)

    # Assignment Information
    assigned_by = Column(Uuid(as_uuid=True), ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("User", foreign_keys=[user_id], back_populates="user_roles")
    role = relationship("Role", back_populates="user_roles")
    assigner = relationship("User", foreign_keys=[assigned_by])

    # Constraints
    __table_args__ = (
        UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )

    def __repr__(self):
        return f"<UserRole(user='{self.user_id}', role='{self.role_id}')>"
