# ================================
# USER MODELS (models/user.py)
# ================================

from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from backoffice.models.base import Base
from datetime import datetime, timezone

class User(Base):
    """User Model"""
    __tablename__ = "users"

    # Basic Information
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)

    # Authentication
    password_hash = Column(String(255), nullable=False)

    # Account Status
    is_active = Column(Boolean, default=True, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)  # Global bypass for every permission check
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user_roles = relationship("UserRole", foreign_keys="UserRole.user_id", back_populates="user", cascade="all, delete-orphan")
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    password_reset_tokens = relationship("PasswordResetToken", back_populates="user", cascade="all, delete-orphan")

    @property
    def roles(self):
        """Currently assigned roles"""
        return [user_role.role for user_role in self.user_roles]

    @property
    def role_names(self) -> list:
        return [role.name for role in self.roles]

    def __repr__(self):
        return f"<User(email='{self.email}', admin={self.is_admin})>"

class UserSession(Base):
    """User Session Management"""
    __tablename__ = "user_sessions"

    # Foreign Keys
    user_id = Column(Uuid(as_uuid=True), ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    # Session Information
    token = Column(String(255), unique=True, nullable=False, index=True)
    issued_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    # Session Context
    ip_address = Column(String(45), nullable=True)  # IPv4/IPv6
    user_agent = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="sessions")

    def __repr__(self):
        return f"<UserSession(user='{self.user_id}', expires='{self.expires_at}')>"

class PasswordResetToken(Base):
    """Password Reset Token Management"""
    __tablename__ = "password_reset_tokens"

    # Foreign Keys
    user_id = Column(Uuid(as_uuid=True), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)

    # Token Information
    token = Column(String(255), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="password_reset_tokens")
