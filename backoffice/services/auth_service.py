# ================================
# AUTH SERVICE (services/auth_service.py)
# ================================

from sqlalchemy.orm import Session
from fastapi import Response
from backoffice.config import settings
from backoffice.models.user import User, PasswordResetToken
from backoffice.core.security import verify_password, get_password_hash, generate_reset_token, utcnow, ensure_utc
from backoffice.core.exceptions import AppException, ConflictError, ValidationError
from backoffice.schemas.auth import LoginForm, RegisterForm
from backoffice.services.session_service import SessionService
from backoffice.utils.audit import audit_logger
from datetime import timedelta
from typing import Optional
import logging

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Invalid email or password"
PASSWORD_RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent."

class AuthService:

    @staticmethod
    def authenticate_user(
        db: Session,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> User:
        """Authentifiziert einen User - Einheitliche Fehlermeldung für Security"""
        logger.debug(f"Attempting login for email: {email}")

        user = db.query(User).filter(User.email == email.lower()).first()

        reason = None
        if not user:
            reason = "user_not_found"
        elif not user.is_active:
            reason = "account_deactivated"
        elif not verify_password(password, user.password_hash):
            reason = "invalid_password"

        if reason:
            audit_logger.log_denial(
                db, "LOGIN_FAILED", user.id if user else None,
                {"reason": reason, "email": email},
                ip_address=ip_address,
                user_agent=user_agent
            )
            raise AppException(GENERIC_ERROR_MESSAGE, 401, "INVALID_CREDENTIALS")

        return user

    @staticmethod
    def login(
        db: Session,
        form: LoginForm,
        response: Response,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        previous_token: Optional[str] = None
    ) -> User:
        """Check credentials and open a session bound to the response cookie.

        A session the browser still carries is destroyed first, so one login
        never leaves two live tokens behind.
        """
        user = AuthService.authenticate_user(db, form.email, form.password, ip_address, user_agent)

        if previous_token:
            SessionService.destroy_session(db, previous_token)

        user.last_login_at = utcnow()
        SessionService.create_session(db, user.id, response, ip_address=ip_address, user_agent=user_agent)

        audit_logger.log_auth_event(
            db, "LOGIN_SUCCESS", user.id, {"email": user.email},
            ip_address=ip_address, user_agent=user_agent
        )
        logger.info(f"User logged in: {user.email}")

        return user

    @staticmethod
    def register(db: Session, form: RegisterForm, ip_address: Optional[str] = None) -> User:
        """Self-registration; new accounts start without roles"""
        if db.query(User).filter(User.email == form.email).first():
            raise ConflictError("A user with this email already exists", "EMAIL_EXISTS")

        user = User(
            name=form.name,
            email=form.email,
            password_hash=get_password_hash(form.password),
            is_active=True,
            is_admin=False
        )
        db.add(user)
        db.flush()

        audit_logger.log_auth_event(
            db, "USER_REGISTERED", user.id, {"email": user.email},
            ip_address=ip_address, resource_type="user", resource_id=user.id
        )

        return user

    @staticmethod
    def logout(db: Session, token: Optional[str], response: Response, user: Optional[User] = None) -> None:
        """Destroy the session; logging out twice is not an error"""
        SessionService.destroy_session(db, token, response)
        if user is not None:
            audit_logger.log_auth_event(db, "LOGOUT", user.id, {"email": user.email})

    @staticmethod
    def request_password_reset(db: Session, email: str, ip_address: Optional[str] = None) -> Optional[str]:
        """Issue a reset token for an active account.

        Returns the token for the delivery collaborator, or None when no
        active account matches. Callers must answer both cases identically.
        """
        user = db.query(User).filter(User.email == email.lower()).first()
        if not user or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return None

        # Earlier unused tokens stop working once a new one is issued
        db.query(PasswordResetToken).filter(
            PasswordResetToken.user_id == user.id,
            PasswordResetToken.used_at.is_(None)
        ).update({PasswordResetToken.used_at: utcnow()}, synchronize_session=False)

        token = generate_reset_token()
        db.add(PasswordResetToken(
            user_id=user.id,
            token=token,
            expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        ))
        db.flush()

        audit_logger.log_auth_event(
            db, "PASSWORD_RESET_REQUESTED", user.id, {"email": user.email},
            ip_address=ip_address
        )
        # Delivery (email) is handled outside this service
        logger.info(f"Password reset token issued for user {user.id}")

        return token

    @staticmethod
    def reset_password(db: Session, token: str, new_password: str, ip_address: Optional[str] = None) -> User:
        """Set a new password with a valid reset token and end all sessions"""
        reset_token = db.query(PasswordResetToken).filter(PasswordResetToken.token == token).first()

        if (
            reset_token is None
            or reset_token.used_at is not None
            or utcnow() >= ensure_utc(reset_token.expires_at)
        ):
            raise ValidationError("Invalid or expired reset token", "INVALID_RESET_TOKEN")

        user = db.query(User).filter(User.id == reset_token.user_id).first()
        if not user or not user.is_active:
            raise ValidationError("Invalid or expired reset token", "INVALID_RESET_TOKEN")

        user.password_hash = get_password_hash(new_password)
        reset_token.used_at = utcnow()
        db.flush()

        SessionService.destroy_user_sessions(db, user.id)

        audit_logger.log_auth_event(
            db, "PASSWORD_RESET_COMPLETED", user.id, {"email": user.email},
            ip_address=ip_address
        )

        return user

    @staticmethod
    def change_password(
        db: Session,
        user: User,
        current_password: str,
        new_password: str,
        current_token: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> int:
        """Change the password of a logged-in user.

        The current password must match. Every other session of the user is
        destroyed; the session making the change stays valid. Returns the
        number of sessions ended.
        """
        if not verify_password(current_password, user.password_hash):
            audit_logger.log_denial(
                db, "PASSWORD_CHANGE_FAILED", user.id,
                {"reason": "invalid_current_password", "email": user.email},
                ip_address=ip_address,
                user_agent=user_agent
            )
            raise AppException("Current password is incorrect", 400, "INVALID_PASSWORD")

        user.password_hash = get_password_hash(new_password)
        db.flush()

        sessions_ended = SessionService.destroy_user_sessions(db, user.id, keep_token=current_token)

        audit_logger.log_auth_event(
            db, "PASSWORD_CHANGED", user.id,
            {"email": user.email, "sessions_ended": sessions_ended},
            ip_address=ip_address, user_agent=user_agent,
            resource_type="user", resource_id=user.id
        )
        logger.info(f"Password changed for user {user.id}")

        return sessions_ended
