# ================================
# CUSTOM EXCEPTIONS (core/exceptions.py)
# ================================

from typing import List, Optional

class AppException(Exception):
    """Base Exception für Application-spezifische Fehler"""

    def __init__(self, detail: str, status_code: int = 400, error_code: str = None):
        self.detail = detail
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(detail)

class AuthenticationRequired(AppException):
    """No session, or an invalid/expired one"""

    def __init__(self, detail: str = "Authentication required", error_code: str = "AUTH_REQUIRED"):
        super().__init__(detail, 401, error_code)

class AuthorizationDenied(AppException):
    """Authenticated, but the resource:action permission is missing"""

    def __init__(
        self,
        detail: str = "Access denied",
        error_code: str = "ACCESS_DENIED",
        resource: Optional[str] = None,
        action: Optional[str] = None
    ):
        self.resource = resource
        self.action = action
        super().__init__(detail, 403, error_code)

class CSRFError(AppException):
    """Missing or mismatched anti-forgery token"""

    def __init__(self, detail: str = "Invalid CSRF token", error_code: str = "CSRF_INVALID"):
        super().__init__(detail, 403, error_code)

class RateLimitError(AppException):
    """Policy ceiling exceeded for the caller"""

    def __init__(self, retry_after: int, error_code: str = "RATE_LIMITED"):
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded. Try again in {retry_after} seconds.", 429, error_code
        )

class ConflictError(AppException):
    """Write refused because of existing references or duplicates"""

    def __init__(self, detail: str, error_code: str = "CONFLICT", blocking_roles: Optional[List[str]] = None):
        self.blocking_roles = blocking_roles or []
        super().__init__(detail, 409, error_code)

class ValidationError(AppException):
    """Validation-spezifische Fehler"""

    def __init__(self, detail: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(detail, 422, error_code)

class NotFoundError(AppException):

    def __init__(self, detail: str = "Not found", error_code: str = "NOT_FOUND"):
        super().__init__(detail, 404, error_code)
