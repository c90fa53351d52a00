# ================================
# SESSION SERVICE (services/session_service.py)
# ================================

from sqlalchemy.orm import Session
from fastapi import Response
from backoffice.config import settings
from backoffice.models.user import User, UserSession
from backoffice.core.security import generate_session_token, utcnow, ensure_utc
from typing import Optional
from datetime import timedelta
import uuid
import logging

logger = logging.getLogger(__name__)

class SessionService:
    """Opaque, database-backed login sessions.

    The token is the only authentication factor. An unknown, destroyed or
    expired token resolves to ``None``; callers treat that as anonymous.
    """

    @staticmethod
    def session_lifetime() -> timedelta:
        return timedelta(days=settings.SESSION_EXPIRE_DAYS)

    @staticmethod
    def create_session(
        db: Session,
        user_id: uuid.UUID,
        response: Optional[Response] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> str:
        """Persist a new session and bind it to the session cookie"""
        token = generate_session_token()
        lifetime = SessionService.session_lifetime()
        now = utcnow()

        db.add(UserSession(
            user_id=user_id,
            token=token,
            issued_at=now,
            expires_at=now + lifetime,
            ip_address=ip_address[:45] if ip_address else None,
            user_agent=user_agent[:500] if user_agent else None
        ))
        db.flush()

        if response is not None:
            SessionService.set_session_cookie(response, token, int(lifetime.total_seconds()))

        return token

    @staticmethod
    def set_session_cookie(response: Response, token: str, max_age: int):
        response.set_cookie(
            key=settings.SESSION_COOKIE_NAME,
            value=token,
            max_age=max_age,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="lax"
        )

    @staticmethod
    def clear_session_cookie(response: Response):
        response.delete_cookie(
            key=settings.SESSION_COOKIE_NAME,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="lax"
        )

    @staticmethod
    def get_valid_session(db: Session, token: Optional[str]) -> Optional[UserSession]:
        """Look up a live session row; expired rows are deleted on sight"""
        if not token:
            return None

        session = db.query(UserSession).filter(UserSession.token == token).first()
        if session is None:
            return None

        if utcnow() >= ensure_utc(session.expires_at):
            logger.info(f"Session for user {session.user_id} expired, removing")
            db.delete(session)
            db.flush()
            return None

        return session

    @staticmethod
    def validate_session(db: Session, token: Optional[str]) -> Optional[User]:
        """Resolve a token to its user, or None"""
        session = SessionService.get_valid_session(db, token)
        if session is None:
            return None
        return db.query(User).filter(User.id == session.user_id).first()

    @staticmethod
    def destroy_session(db: Session, token: Optional[str], response: Optional[Response] = None) -> bool:
        """Delete the session and clear the cookie. Returns whether a row existed."""
        deleted = 0
        if token:
            deleted = db.query(UserSession).filter(UserSession.token == token).delete(synchronize_session=False)
            db.flush()

        if response is not None:
            SessionService.clear_session_cookie(response)

        return deleted > 0

    @staticmethod
    def destroy_user_sessions(db: Session, user_id: uuid.UUID, keep_token: Optional[str] = None) -> int:
        """Terminate every session of a user (deactivation, password reset).

        ``keep_token`` spares the caller's own session on password change.
        """
        query = db.query(UserSession).filter(UserSession.user_id == user_id)
        if keep_token:
            query = query.filter(UserSession.token != keep_token)
        deleted = query.delete(synchronize_session=False)
        db.flush()
        if deleted:
            logger.info(f"Destroyed {deleted} session(s) for user {user_id}")
        return deleted

    @staticmethod
    def purge_expired_sessions(db: Session) -> int:
        deleted = db.query(UserSession).filter(UserSession.expires_at <= utcnow()).delete(synchronize_session=False)
        db.flush()
        return deleted
