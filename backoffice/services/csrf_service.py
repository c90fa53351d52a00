# ================================
# CSRF SERVICE (services/csrf_service.py)
# ================================

from fastapi import Request, Response
from typing import Optional
from backoffice.config import settings
from backoffice.core.exceptions import CSRFError
from backoffice.core.security import generate_csrf_token, constant_time_equals
import logging

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

class CSRFService:
    """Double-submit cookie protection.

    The token lives only in a script-readable cookie; every state-changing
    request must echo it back in the ``X-CSRF-Token`` header or the
    ``csrf_token`` form field. No server-side storage is involved.
    """

    @staticmethod
    def issue_token(response: Response) -> str:
        """Mint a fresh token and bind it to the CSRF cookie"""
        token = generate_csrf_token(settings.CSRF_TOKEN_BYTES)
        response.set_cookie(
            key=settings.CSRF_COOKIE_NAME,
            value=token,
            max_age=settings.CSRF_MAX_AGE_SECONDS,
            path="/",
            httponly=False,  # The page script reads it to fill the form field
            secure=settings.is_production,
            samesite="strict"
        )
        return token

    @staticmethod
    def get_or_issue_token(request: Request, response: Response) -> str:
        """Return the caller's current token, minting one when absent"""
        existing = request.cookies.get(settings.CSRF_COOKIE_NAME)
        if existing:
            return existing
        return CSRFService.issue_token(response)

    @staticmethod
    def validate(cookie_value: Optional[str], submitted_value: Optional[str]) -> None:
        """Raise CSRFError unless both values are present and identical"""
        if not cookie_value:
            raise CSRFError("CSRF cookie missing", "CSRF_COOKIE_MISSING")
        if not submitted_value:
            raise CSRFError("CSRF token missing from submission", "CSRF_TOKEN_MISSING")
        if not constant_time_equals(cookie_value, submitted_value):
            raise CSRFError("CSRF token mismatch", "CSRF_TOKEN_MISMATCH")

    @staticmethod
    async def extract_submitted_token(request: Request) -> Optional[str]:
        """Header first, then the form field for form submissions"""
        header_value = request.headers.get(settings.CSRF_HEADER_NAME)
        if header_value:
            return header_value

        content_type = request.headers.get("content-type", "")
        if content_type.startswith(FORM_CONTENT_TYPES):
            form = await request.form()
            value = form.get(settings.CSRF_FIELD_NAME)
            if isinstance(value, str):
                return value
        return None

    @staticmethod
    async def validate_request(request: Request) -> None:
        """Validate the anti-forgery token of an incoming request"""
        submitted = await CSRFService.extract_submitted_token(request)
        CSRFService.validate(request.cookies.get(settings.CSRF_COOKIE_NAME), submitted)
