# ================================
# AUTH SCHEMAS (schemas/auth.py)
# ================================

from pydantic import EmailStr, Field, model_validator
from typing import Optional, List
from backoffice.schemas.base import BaseSchema, EmailFieldMixin, PasswordFieldMixin
from backoffice.schemas.user import UserResponse

# Form submissions carry the anti-forgery token as a regular field; the CSRF
# dependency validates it before the handler runs.

class LoginForm(EmailFieldMixin, BaseSchema):
    """Schema für Login-Formular"""
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    csrf_token: Optional[str] = None

class RegisterForm(EmailFieldMixin, PasswordFieldMixin, BaseSchema):
    """Schema für Registrierung"""
    name: str = Field(..., min_length=2, max_length=255)
    email: EmailStr
    password: str = Field(..., max_length=128)
    csrf_token: Optional[str] = None

class ForgotPasswordForm(EmailFieldMixin, BaseSchema):
    email: EmailStr
    csrf_token: Optional[str] = None

class ResetPasswordForm(PasswordFieldMixin, BaseSchema):
    token: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., max_length=128)
    csrf_token: Optional[str] = None

class ChangePasswordForm(PasswordFieldMixin, BaseSchema):
    """Schema für Passwort-Änderung durch den eingeloggten User"""
    current_password: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., max_length=128, description="New password")
    confirm_password: str = Field(..., min_length=1, max_length=128)
    csrf_token: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordForm":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self

class CSRFTokenResponse(BaseSchema):
    csrf_token: str

class CurrentUserResponse(BaseSchema):
    """Who-am-I: anonymous callers get authenticated=False"""
    authenticated: bool
    user: Optional[UserResponse] = None
    permissions: List[str] = Field(default_factory=list)

class MessageResponse(BaseSchema):
    message: str
