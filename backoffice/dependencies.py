# ================================
# DEPENDENCIES (dependencies.py)
# ================================

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from backoffice.models.user import User
from backoffice.core.exceptions import AuthenticationRequired, AuthorizationDenied, CSRFError, RateLimitError
from backoffice.services.authorization_service import (
    AuthorizationContext, AuthorizationGate, Allowed, DeniedAuthentication, DeniedAuthorization
)
from backoffice.services.csrf_service import CSRFService
from backoffice.services.rate_limiter import RateLimiter, get_rate_limiter, get_client_identifier, get_client_ip
from backoffice.utils.audit import audit_logger
from typing import Optional, Tuple

# ================================
# BASIC DEPENDENCIES
# ================================

def get_db(request: Request) -> Session:
    """Dependency für Database Session aus Middleware"""
    return request.state.db

def get_auth_context(request: Request, db: Session = Depends(get_db)) -> AuthorizationContext:
    """Identity and permissions of the caller, cached on the request"""
    return AuthorizationContext.for_request(request, db)

def _request_meta(request: Request) -> dict:
    return {
        "ip_address": get_client_ip(request),
        "user_agent": request.headers.get("User-Agent")
    }

# ================================
# USER AUTHENTICATION DEPENDENCIES
# ================================

async def get_current_user(
    context: AuthorizationContext = Depends(get_auth_context)
) -> Optional[User]:
    """Current user or None; never raises for anonymous callers"""
    return context.user

async def get_current_active_user(
    request: Request,
    context: AuthorizationContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
) -> User:
    """Dependency für eingeloggten, aktiven User"""
    if context.user is None:
        audit_logger.log_denial(
            db, "AUTHENTICATION_REQUIRED", None,
            {"path": request.url.path}, **_request_meta(request)
        )
        raise AuthenticationRequired()
    return context.user

# ================================
# SECURITY CHECKS
# ================================

def enforce_permission(
    request: Request,
    db: Session,
    context: AuthorizationContext,
    resource: str,
    action: str
) -> User:
    """Map the gate verdict to exceptions, auditing every denial"""
    result = AuthorizationGate.check(context, resource, action)

    if isinstance(result, Allowed):
        return result.user

    details = {"resource": resource, "action": action, "path": request.url.path}
    if isinstance(result, DeniedAuthentication):
        audit_logger.log_denial(db, "AUTHENTICATION_REQUIRED", None, details, **_request_meta(request))
        raise AuthenticationRequired()

    if isinstance(result, DeniedAuthorization):
        audit_logger.log_denial(db, "ACCESS_DENIED", result.user.id, details, **_request_meta(request))
        raise AuthorizationDenied(
            f"Permission denied: {action} on {resource}",
            resource=resource,
            action=action
        )

    raise TypeError(f"Unknown authorization result: {result!r}")

def enforce_rate_limit(
    request: Request,
    db: Session,
    limiter: RateLimiter,
    identifier: str,
    auth_policy: bool = False
) -> None:
    try:
        if auth_policy:
            limiter.auth_rate_limit(identifier)
        else:
            limiter.api_rate_limit(identifier)
    except RateLimitError as e:
        audit_logger.log_denial(
            db, "RATE_LIMITED", None,
            {
                "identifier": identifier,
                "policy": "auth" if auth_policy else "api",
                "retry_after": e.retry_after,
                "path": request.url.path
            },
            **_request_meta(request)
        )
        raise

async def enforce_csrf(request: Request, db: Session, context: Optional[AuthorizationContext] = None) -> None:
    try:
        await CSRFService.validate_request(request)
    except CSRFError as e:
        user_id = context.user.id if context is not None and context.user is not None else None
        audit_logger.log_denial(
            db, "CSRF_REJECTED", user_id,
            {"reason": e.error_code, "path": request.url.path},
            **_request_meta(request)
        )
        raise

# ================================
# RATE LIMIT & CSRF DEPENDENCIES
# ================================

def api_rate_limit(
    request: Request,
    context: AuthorizationContext = Depends(get_auth_context),
    limiter: RateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db)
) -> None:
    """General policy, keyed by user id when logged in"""
    enforce_rate_limit(request, db, limiter, get_client_identifier(request, context.user))

def auth_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    db: Session = Depends(get_db)
) -> None:
    """Strict policy for login and password flows, keyed by client address"""
    enforce_rate_limit(request, db, limiter, get_client_identifier(request), auth_policy=True)

async def validate_csrf(
    request: Request,
    context: AuthorizationContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
) -> None:
    await enforce_csrf(request, db, context)

# ================================
# PERMISSION-BASED DEPENDENCIES
# ================================

def require_permission(resource: str, action: str):
    """Factory für Permission-basierte Dependencies"""

    def permission_dependency(
        request: Request,
        context: AuthorizationContext = Depends(get_auth_context),
        db: Session = Depends(get_db)
    ) -> User:
        return enforce_permission(request, db, context, resource, action)

    return permission_dependency

def require_any_permission(*required: Tuple[str, str]):
    """At least one of the given resource:action pairs"""

    def any_permission_dependency(
        request: Request,
        user: User = Depends(get_current_active_user),
        context: AuthorizationContext = Depends(get_auth_context),
        db: Session = Depends(get_db)
    ) -> User:
        if not context.has_any_permission(required):
            names = ", ".join(f"{r}:{a}" for r, a in required)
            audit_logger.log_denial(
                db, "ACCESS_DENIED", user.id,
                {"required_any": names, "path": request.url.path}, **_request_meta(request)
            )
            raise AuthorizationDenied(f"One of these permissions is required: {names}")
        return user

    return any_permission_dependency

def require_all_permissions(*required: Tuple[str, str]):
    """Every one of the given resource:action pairs"""

    def all_permissions_dependency(
        request: Request,
        user: User = Depends(get_current_active_user),
        context: AuthorizationContext = Depends(get_auth_context),
        db: Session = Depends(get_db)
    ) -> User:
        if not context.has_all_permissions(required):
            names = ", ".join(f"{r}:{a}" for r, a in required)
            audit_logger.log_denial(
                db, "ACCESS_DENIED", user.id,
                {"required_all": names, "path": request.url.path}, **_request_meta(request)
            )
            raise AuthorizationDenied(f"All of these permissions are required: {names}")
        return user

    return all_permissions_dependency

def require_admin(
    request: Request,
    user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db)
) -> User:
    """Global administrators only (is_admin flag)"""
    if not user.is_admin:
        audit_logger.log_denial(
            db, "ACCESS_DENIED", user.id,
            {"required": "admin", "path": request.url.path}, **_request_meta(request)
        )
        raise AuthorizationDenied("Administrator access required")
    return user

def require_resource_access(resource: str):
    """Any action on the resource"""

    def resource_access_dependency(
        request: Request,
        user: User = Depends(get_current_active_user),
        context: AuthorizationContext = Depends(get_auth_context),
        db: Session = Depends(get_db)
    ) -> User:
        if not context.can_access_resource(resource):
            audit_logger.log_denial(
                db, "ACCESS_DENIED", user.id,
                {"resource": resource, "path": request.url.path}, **_request_meta(request)
            )
            raise AuthorizationDenied(f"Access to {resource} denied", resource=resource)
        return user

    return resource_access_dependency

def protected_action(resource: str, action: str):
    """Composite guard for mutating actions.

    Order: API rate limit, CSRF token, permission. Business logic runs
    only when all three pass.
    """

    async def protected_action_dependency(
        request: Request,
        context: AuthorizationContext = Depends(get_auth_context),
        limiter: RateLimiter = Depends(get_rate_limiter),
        db: Session = Depends(get_db)
    ) -> User:
        enforce_rate_limit(request, db, limiter, get_client_identifier(request, context.user))
        await enforce_csrf(request, db, context)
        return enforce_permission(request, db, context, resource, action)

    return protected_action_dependency
