# ================================
# MIDDLEWARE (core/middleware.py)
# ================================

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from backoffice.core.database import SessionLocal
import time
import uuid
import logging

logger = logging.getLogger(__name__)

class DatabaseSessionMiddleware(BaseHTTPMiddleware):
    """One database session and request id per request"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        # Request ID für Logging
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        # Database Session
        db = SessionLocal()
        request.state.db = db

        try:
            response = await call_next(request)

            # Response Headers
            process_time = time.time() - start_time
            response.headers["X-Process-Time"] = str(process_time)
            response.headers["X-Request-ID"] = request_id

            return response

        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware für Request-Logging"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        self._log_request(request, response, time.time() - start_time)
        return response

    def _log_request(self, request: Request, response: Response, duration: float):
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({duration * 1000:.1f}ms)",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "ip_address": request.client.host if request.client else None
            }
        )

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware für Security Headers"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Security Headers hinzufügen
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"

        # Session and CSRF cookies must not end up in shared caches
        if "set-cookie" in response.headers:
            response.headers["Cache-Control"] = "no-store"

        # HSTS für HTTPS
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
