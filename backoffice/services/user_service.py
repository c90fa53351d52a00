# ================================
# USER SERVICE (services/user_service.py)
# ================================

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import func, or_
from backoffice.models.user import User
from backoffice.models.rbac import Role, UserRole
from backoffice.schemas.user import UserCreate
from backoffice.core.exceptions import AuthorizationDenied, ConflictError, NotFoundError, ValidationError
from backoffice.core.security import get_password_hash
from backoffice.services.session_service import SessionService
from backoffice.utils.audit import audit_logger
from typing import List, Optional, Dict, Any, Tuple
import uuid
import logging

logger = logging.getLogger(__name__)

ADMIN_ROLE_NAME = "admin"

class UserService:
    """Service for user management operations"""

    @staticmethod
    def list_users(
        db: Session,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[User], int]:
        query = db.query(User)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(func.lower(User.name).like(pattern), User.email.like(pattern)))
        if is_active is not None:
            query = query.filter(User.is_active.is_(is_active))

        total = query.count()
        users = query.options(
            selectinload(User.user_roles).selectinload(UserRole.role)
        ).order_by(User.created_at.desc(), User.email).offset((page - 1) * page_size).limit(page_size).all()

        return users, total

    @staticmethod
    def get_user(db: Session, user_id: uuid.UUID) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found", "USER_NOT_FOUND")
        return user

    @staticmethod
    def find_user_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.lower()).first()

    @staticmethod
    def is_admin_role_member(db: Session, user_id: uuid.UUID) -> bool:
        """Whether the user holds the role named 'admin'"""
        return db.query(UserRole.id).join(Role, Role.id == UserRole.role_id).filter(
            UserRole.user_id == user_id,
            func.lower(Role.name) == ADMIN_ROLE_NAME
        ).first() is not None

    @staticmethod
    def create_user(db: Session, user_data: UserCreate, current_user: Optional[User] = None) -> User:
        """Erstellt einen neuen User mit einer Rolle"""
        if UserService.find_user_by_email(db, user_data.email):
            raise ConflictError("A user with this email already exists", "EMAIL_EXISTS")

        role = UserService._get_assignable_role(db, user_data.role_id)

        user = User(
            name=user_data.name,
            email=user_data.email,
            password_hash=get_password_hash(user_data.password),
            is_active=user_data.is_active,
            is_admin=False
        )
        db.add(user)
        db.flush()  # Get user.id without committing

        db.add(UserRole(
            user_id=user.id,
            role_id=role.id,
            assigned_by=current_user.id if current_user else None
        ))
        db.flush()
        db.refresh(user)

        audit_logger.log_auth_event(
            db, "USER_CREATED", current_user.id if current_user else None,
            {"email": user.email, "role": role.name},
            resource_type="user", resource_id=user.id
        )

        return user

    @staticmethod
    def update_user_role(
        db: Session,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        current_user: Optional[User] = None
    ) -> User:
        """Replace all role assignments of a user with exactly one role.

        Runs inside the caller's transaction: the user row is locked, every
        existing assignment is removed and the new one inserted before the
        flush. The caller commits; any failure is rolled back as a whole.
        """
        # Serializes concurrent reassignments of the same user
        user = db.query(User).filter(User.id == user_id).with_for_update().first()
        if not user:
            raise NotFoundError("User not found", "USER_NOT_FOUND")

        role = UserService._get_assignable_role(db, role_id)

        previous_roles = [
            name for (name,) in db.query(Role.name).join(UserRole, UserRole.role_id == Role.id).filter(
                UserRole.user_id == user.id
            ).all()
        ]

        db.query(UserRole).filter(UserRole.user_id == user.id).delete(synchronize_session=False)
        db.add(UserRole(
            user_id=user.id,
            role_id=role.id,
            assigned_by=current_user.id if current_user else None
        ))
        db.flush()
        db.expire(user, ["user_roles"])

        audit_logger.log_auth_event(
            db, "USER_ROLE_CHANGED", current_user.id if current_user else None,
            {"previous_roles": previous_roles, "new_role": role.name},
            resource_type="user", resource_id=user.id
        )

        return user

    @staticmethod
    def update_user_status(
        db: Session,
        user_id: uuid.UUID,
        is_active: bool,
        current_user: User
    ) -> User:
        """Activate or deactivate a user account"""
        user = UserService.get_user(db, user_id)

        if not is_active:
            UserService._guard_deactivation(db, user, current_user)

        old_status = user.is_active
        user.is_active = is_active
        db.flush()

        if not is_active:
            SessionService.destroy_user_sessions(db, user.id)

        audit_logger.log_auth_event(
            db, "USER_STATUS_CHANGED", current_user.id,
            {"old_is_active": old_status, "is_active": is_active},
            resource_type="user", resource_id=user.id
        )

        return user

    @staticmethod
    def delete_user(db: Session, user_id: uuid.UUID, current_user: User) -> Dict[str, Any]:
        """Soft delete: the account is deactivated and its sessions destroyed"""
        user = UserService.get_user(db, user_id)

        UserService._guard_deactivation(db, user, current_user, action="delete")

        user.is_active = False
        db.flush()
        sessions_destroyed = SessionService.destroy_user_sessions(db, user.id)

        audit_logger.log_auth_event(
            db, "USER_DEACTIVATED", current_user.id,
            {"email": user.email, "sessions_destroyed": sessions_destroyed},
            resource_type="user", resource_id=user.id
        )

        return {"message": "User deactivated successfully", "user_id": str(user.id)}

    # ================================
    # HELPERS
    # ================================

    @staticmethod
    def _guard_deactivation(db: Session, target: User, current_user: User, action: str = "deactivate"):
        """Nobody deactivates themselves or a member of the admin role.

        Refusals are audited in their own commit; nothing has been written yet.
        """
        reason = None
        if current_user is not None and target.id == current_user.id:
            reason, message = "SELF_DEACTIVATION", "You cannot deactivate your own account"
        elif UserService.is_admin_role_member(db, target.id):
            reason, message = "ADMIN_PROTECTED", "Admin users cannot be deactivated"

        if reason:
            audit_logger.log_denial(
                db, "ACCESS_DENIED", current_user.id if current_user else None,
                {"resource": "users", "action": action, "target_user_id": target.id, "reason": reason}
            )
            raise AuthorizationDenied(message, reason)

    @staticmethod
    def _get_assignable_role(db: Session, role_id: uuid.UUID) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise NotFoundError("Role not found", "ROLE_NOT_FOUND")
        if not role.is_active:
            raise ValidationError("Role is inactive and cannot be assigned", "ROLE_INACTIVE")
        return role
