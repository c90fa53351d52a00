# ================================
# SECURITY CORE (core/security.py)
# ================================

from passlib.context import CryptContext
from datetime import datetime, timezone
from typing import Optional
import secrets
import hmac

# pbkdf2_sha256 is pure python, no bcrypt backend required
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verifiziert ein Passwort gegen einen Hash"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Erstellt einen Password-Hash"""
    return pwd_context.hash(password)

def generate_session_token() -> str:
    """Opaque session credential (256 bits)"""
    return secrets.token_urlsafe(32)

def generate_reset_token() -> str:
    """Generiert einen sicheren Reset-Token"""
    return secrets.token_urlsafe(32)

def generate_csrf_token(num_bytes: int = 32) -> str:
    return secrets.token_hex(num_bytes)

def constant_time_equals(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two secrets without leaking the position of the first mismatch.

    Empty or missing values never compare equal.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
