# ================================
# AUTH API ROUTES (api/v1/auth.py)
# ================================

from fastapi import APIRouter, Depends, Form, Query, Request, Response, status
from sqlalchemy.orm import Session
from typing import Annotated
from backoffice.config import settings
from backoffice.dependencies import (
    get_db, get_auth_context, get_current_active_user, api_rate_limit, auth_rate_limit, validate_csrf
)
from backoffice.schemas.auth import (
    LoginForm, RegisterForm, ForgotPasswordForm, ResetPasswordForm, ChangePasswordForm,
    CSRFTokenResponse, CurrentUserResponse, MessageResponse
)
from backoffice.schemas.user import UserResponse
from backoffice.models.user import User
from backoffice.services.auth_service import AuthService, PASSWORD_RESET_MESSAGE
from backoffice.services.authorization_service import AuthorizationContext
from backoffice.services.csrf_service import CSRFService
from backoffice.services.rbac_service import RBACService
from backoffice.services.rate_limiter import get_client_ip
from backoffice.core.exceptions import AppException
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

def _effective_permission_names(db: Session, context: AuthorizationContext) -> list:
    if context.permissions.universal:
        return [p.name for p in RBACService.list_permissions(db)]
    return context.permissions.names()

# ================================
# CSRF TOKEN
# ================================

@router.get("/csrf", response_model=CSRFTokenResponse)
async def get_csrf_token(
    request: Request,
    response: Response,
    rotate: bool = Query(False, description="Issue a fresh token even if one exists")
):
    """Issue the anti-forgery token (idempotent unless rotate=true)"""
    if rotate:
        token = CSRFService.issue_token(response)
    else:
        token = CSRFService.get_or_issue_token(request, response)
    return CSRFTokenResponse(csrf_token=token)

# ================================
# LOCAL AUTHENTICATION
# ================================

@router.post(
    "/login",
    response_model=CurrentUserResponse,
    dependencies=[Depends(auth_rate_limit), Depends(validate_csrf)]
)
async def login(
    form: Annotated[LoginForm, Form()],
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """Local user login - opens a session cookie"""
    try:
        user = AuthService.login(
            db, form, response,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            previous_token=request.cookies.get(settings.SESSION_COOKIE_NAME)
        )
        db.commit()

        context = AuthorizationContext(user)
        return CurrentUserResponse(
            authenticated=True,
            user=UserResponse.model_validate(user),
            permissions=_effective_permission_names(db, context)
        )

    except AppException:
        db.rollback()
        raise

@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit), Depends(validate_csrf)]
)
async def register(
    form: Annotated[RegisterForm, Form()],
    request: Request,
    db: Session = Depends(get_db)
):
    """Self-registration without roles"""
    try:
        user = AuthService.register(db, form, ip_address=get_client_ip(request))
        db.commit()
        db.refresh(user)
        return UserResponse.model_validate(user)

    except AppException:
        db.rollback()
        raise

@router.post("/logout", response_model=MessageResponse, dependencies=[Depends(validate_csrf)])
async def logout(
    request: Request,
    response: Response,
    context: AuthorizationContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Destroy the current session (idempotent)"""
    AuthService.logout(db, request.cookies.get(settings.SESSION_COOKIE_NAME), response, context.user)
    db.commit()
    return MessageResponse(message="Logged out successfully")

@router.get("/me", response_model=CurrentUserResponse)
async def who_am_i(
    context: AuthorizationContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
):
    """Current user, or authenticated=false for anonymous callers"""
    if context.user is None:
        return CurrentUserResponse(authenticated=False)

    return CurrentUserResponse(
        authenticated=True,
        user=UserResponse.model_validate(context.user),
        permissions=_effective_permission_names(db, context)
    )

# ================================
# PASSWORD RESET
# ================================

@router.post(
    "/password/forgot",
    response_model=MessageResponse,
    dependencies=[Depends(auth_rate_limit), Depends(validate_csrf)]
)
async def forgot_password(
    form: Annotated[ForgotPasswordForm, Form()],
    request: Request,
    db: Session = Depends(get_db)
):
    """Always answers the same way, whether or not the account exists"""
    try:
        AuthService.request_password_reset(db, form.email, ip_address=get_client_ip(request))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Password reset request failed: {e}", exc_info=True)

    return MessageResponse(message=PASSWORD_RESET_MESSAGE)

@router.post(
    "/password/reset",
    response_model=MessageResponse,
    dependencies=[Depends(auth_rate_limit), Depends(validate_csrf)]
)
async def reset_password(
    form: Annotated[ResetPasswordForm, Form()],
    request: Request,
    db: Session = Depends(get_db)
):
    try:
        AuthService.reset_password(db, form.token, form.password, ip_address=get_client_ip(request))
        db.commit()
        return MessageResponse(message="Password has been reset successfully. Please sign in again.")

    except AppException:
        db.rollback()
        raise

@router.post(
    "/password/change",
    response_model=MessageResponse,
    dependencies=[Depends(api_rate_limit), Depends(validate_csrf)]
)
async def change_password(
    form: Annotated[ChangePasswordForm, Form()],
    request: Request,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
):
    """Change password for logged in users; other sessions are signed out"""
    try:
        AuthService.change_password(
            db, current_user, form.current_password, form.password,
            current_token=request.cookies.get(settings.SESSION_COOKIE_NAME),
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent")
        )
        db.commit()
        return MessageResponse(message="Password changed successfully")

    except AppException:
        db.rollback()
        raise
