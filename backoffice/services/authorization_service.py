# ================================
# AUTHORIZATION SERVICE (services/authorization_service.py)
# ================================

"""
Authorization gate.

``AuthorizationGate.check`` returns one of three results instead of raising:

- ``Allowed``: the user holds the permission (or is a global admin)
- ``DeniedAuthentication``: no current user
- ``DeniedAuthorization``: a user, but without the resource:action pair

Each caller decides how to surface a denial. The FastAPI dependencies in
``backoffice.dependencies`` turn them into exceptions, which the exception
handlers turn into status codes or redirects.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union
from fastapi import Request
from sqlalchemy.orm import Session
from backoffice.config import settings
from backoffice.models.user import User
from backoffice.services.identity_service import IdentityService
from backoffice.services.rbac_service import RBACService, PermissionSet, PermissionKey

@dataclass(frozen=True)
class Allowed:
    user: User

@dataclass(frozen=True)
class DeniedAuthentication:
    reason: str = "not_authenticated"

@dataclass(frozen=True)
class DeniedAuthorization:
    user: User
    resource: str
    action: str

AuthorizationResult = Union[Allowed, DeniedAuthentication, DeniedAuthorization]

class AuthorizationContext:
    """Current user and effective permissions, resolved once per request"""

    STATE_KEY = "auth_context"

    def __init__(self, user: Optional[User]):
        self.user = user
        self._permissions: Optional[PermissionSet] = None

    @classmethod
    def for_request(cls, request: Request, db: Session) -> "AuthorizationContext":
        context = getattr(request.state, cls.STATE_KEY, None)
        if context is None:
            token = request.cookies.get(settings.SESSION_COOKIE_NAME)
            context = cls(IdentityService.get_current_user(db, token))
            setattr(request.state, cls.STATE_KEY, context)
        return context

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def permissions(self) -> PermissionSet:
        if self._permissions is None:
            self._permissions = RBACService.compute_effective_permissions(self.user)
        return self._permissions

    def has_permission(self, resource: str, action: str) -> bool:
        if self.user is None:
            return False
        return RBACService.has_permission(self.user, resource, action, self.permissions)

    def has_any_permission(self, required: Iterable[PermissionKey]) -> bool:
        if self.user is None:
            return False
        return RBACService.has_any_permission(self.user, required, self.permissions)

    def has_all_permissions(self, required: Iterable[PermissionKey]) -> bool:
        if self.user is None:
            return False
        return RBACService.has_all_permissions(self.user, required, self.permissions)

    def can_access_resource(self, resource: str) -> bool:
        if self.user is None:
            return False
        return RBACService.can_access_resource(self.user, resource, self.permissions)

class AuthorizationGate:
    """Single decision point in front of every protected action"""

    @staticmethod
    def check(context: AuthorizationContext, resource: str, action: str) -> AuthorizationResult:
        if context.user is None:
            return DeniedAuthentication()
        if not context.has_permission(resource, action):
            return DeniedAuthorization(context.user, resource, action)
        return Allowed(context.user)
