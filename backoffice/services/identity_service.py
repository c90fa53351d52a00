# ================================
# IDENTITY SERVICE (services/identity_service.py)
# ================================

from sqlalchemy.orm import Session, joinedload
from backoffice.models.user import User
from backoffice.models.rbac import UserRole, Role, RolePermission
from backoffice.services.session_service import SessionService
from typing import Optional
import uuid

class IdentityService:
    """Resolves the session cookie into the current user, roles included"""

    @staticmethod
    def load_user_with_roles(db: Session, user_id: uuid.UUID) -> Optional[User]:
        """User, role assignments, roles and their permissions in one query"""
        return db.query(User).options(
            joinedload(User.user_roles)
            .joinedload(UserRole.role)
            .joinedload(Role.role_permissions)
            .joinedload(RolePermission.permission)
        ).filter(User.id == user_id).populate_existing().first()

    @staticmethod
    def get_current_user(db: Session, token: Optional[str]) -> Optional[User]:
        """Current user or None; deactivated accounts count as anonymous.

        Storage faults propagate to the caller.
        """
        session = SessionService.get_valid_session(db, token)
        if session is None:
            return None

        user = IdentityService.load_user_with_roles(db, session.user_id)
        if user is None or not user.is_active:
            return None

        return user
