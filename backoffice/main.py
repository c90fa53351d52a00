# ================================
# MAIN APPLICATION (main.py)
# ================================

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from contextlib import asynccontextmanager
from urllib.parse import urlencode

# Core imports
from backoffice.config import settings
from backoffice.core.exceptions import (
    AppException, AuthenticationRequired, AuthorizationDenied,
    CSRFError, RateLimitError, ConflictError
)
from backoffice.core.middleware import (
    DatabaseSessionMiddleware,
    AuditMiddleware,
    SecurityHeadersMiddleware
)

# API Routes
from backoffice.api import api_router, API_VERSION, API_DESCRIPTION

import logging
import uvicorn

# ================================
# LOGGING CONFIGURATION
# ================================

logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

CSRF_USER_MESSAGE = "Invalid or missing security token. Please refresh the page and try again."
RATE_LIMIT_USER_MESSAGE = "Too many requests. Please wait before retrying."

# ================================
# APPLICATION LIFECYCLE
# ================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""

    # Startup
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
    await startup_tasks()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}")
    from backoffice.core.database import engine
    engine.dispose()

async def startup_tasks():
    """Tasks to run on application startup"""
    await initialize_database()
    await create_initial_super_admin()
    await purge_expired_sessions()

async def initialize_database():
    """Initialize database connection and run migrations"""
    try:
        from backoffice.core.database import engine
        from sqlalchemy import text

        # Test database connection
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        logger.info("Database connection established")

        if settings.RUN_MIGRATIONS_ON_STARTUP:
            await run_database_migrations()

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

async def run_database_migrations():
    """Run Alembic database migrations"""
    from alembic.config import Config
    from alembic import command

    alembic_cfg = Config("alembic.ini")
    command.upgrade(alembic_cfg, "head")

    logger.info("Database migrations completed")

async def create_initial_super_admin():
    """Create initial admin user if configured"""

    if not settings.SUPER_ADMIN_EMAIL or not settings.SUPER_ADMIN_PASSWORD:
        logger.info("No super admin configuration found, skipping creation")
        return

    try:
        from backoffice.core.database import SessionLocal
        from backoffice.models.user import User
        from backoffice.core.security import get_password_hash

        with SessionLocal() as db:
            existing_admin = db.query(User).filter(
                User.email == settings.SUPER_ADMIN_EMAIL.lower()
            ).first()

            if existing_admin:
                logger.info("Super admin already exists")
                return

            db.add(User(
                name=settings.SUPER_ADMIN_NAME,
                email=settings.SUPER_ADMIN_EMAIL.lower(),
                password_hash=get_password_hash(settings.SUPER_ADMIN_PASSWORD),
                is_admin=True,
                is_active=True
            ))
            db.commit()

            logger.info(f"Super admin created: {settings.SUPER_ADMIN_EMAIL}")

    except Exception as e:
        logger.error(f"Super admin creation failed: {e}")
        # Don't raise - application should continue even if super admin creation fails

async def purge_expired_sessions():
    try:
        from backoffice.core.database import SessionLocal
        from backoffice.services.session_service import SessionService

        with SessionLocal() as db:
            purged = SessionService.purge_expired_sessions(db)
            db.commit()
        if purged:
            logger.info(f"Purged {purged} expired session(s)")
    except Exception as e:
        logger.warning(f"Expired session cleanup failed: {e}")

# ================================
# FASTAPI APPLICATION
# ================================

app = FastAPI(
    title=settings.APP_NAME,
    version=API_VERSION,
    description=API_DESCRIPTION,
    docs_url="/docs" if settings.DEBUG else None,  # Disable docs in production
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan
)

# ================================
# MIDDLEWARE CONFIGURATION
# ================================

# Security Headers
app.add_middleware(SecurityHeadersMiddleware)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time", "Retry-After"]
)

# Request Logging
app.add_middleware(AuditMiddleware)

# Database Session (last middleware)
app.add_middleware(DatabaseSessionMiddleware)

# ================================
# EXCEPTION HANDLERS
# ================================

def _wants_html(request: Request) -> bool:
    """Browser navigation, as opposed to fetch/XHR calls"""
    accept = request.headers.get("accept", "")
    return "text/html" in accept and "application/json" not in accept

def _error_content(request: Request, exc: AppException, detail: str = None) -> dict:
    return {
        "detail": detail or exc.detail,
        "error_code": exc.error_code,
        "request_id": getattr(request.state, "request_id", None)
    }

@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """Handler für Application-spezifische Exceptions"""
    return JSONResponse(status_code=exc.status_code, content=_error_content(request, exc))

@app.exception_handler(AuthenticationRequired)
async def authentication_required_handler(request: Request, exc: AuthenticationRequired):
    """Browsers go to the sign-in page, API clients get 401"""
    if _wants_html(request):
        query = urlencode({"next": request.url.path})
        return RedirectResponse(f"{settings.LOGIN_PATH}?{query}", status_code=303)
    return JSONResponse(status_code=401, content=_error_content(request, exc))

@app.exception_handler(AuthorizationDenied)
async def authorization_denied_handler(request: Request, exc: AuthorizationDenied):
    """Browsers go to the access-denied view, API clients get 403"""
    if _wants_html(request):
        target = settings.ACCESS_DENIED_PATH
        if exc.resource and exc.action:
            target += "?" + urlencode({"resource": exc.resource, "action": exc.action})
        return RedirectResponse(target, status_code=303)
    return JSONResponse(status_code=403, content=_error_content(request, exc))

@app.exception_handler(CSRFError)
async def csrf_exception_handler(request: Request, exc: CSRFError):
    content = _error_content(request, exc, CSRF_USER_MESSAGE)
    content["error_code"] = "CSRF_INVALID"  # mismatch and missing look the same
    return JSONResponse(status_code=403, content=content)

@app.exception_handler(RateLimitError)
async def rate_limit_exception_handler(request: Request, exc: RateLimitError):
    content = _error_content(request, exc)
    content["message"] = RATE_LIMIT_USER_MESSAGE
    content["retry_after"] = exc.retry_after
    return JSONResponse(
        status_code=429,
        content=content,
        headers={"Retry-After": str(exc.retry_after)}
    )

@app.exception_handler(ConflictError)
async def conflict_exception_handler(request: Request, exc: ConflictError):
    content = _error_content(request, exc)
    if exc.blocking_roles:
        content["blocking_roles"] = exc.blocking_roles
    return JSONResponse(status_code=409, content=content)

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handler für Standard HTTP Exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "request_id": getattr(request.state, "request_id", None)
        },
        headers=getattr(exc, "headers", None)
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handler für unbehandelte Exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_code": "INTERNAL_ERROR",
            "request_id": getattr(request.state, "request_id", None)
        }
    )

# ================================
# HEALTH CHECK ENDPOINTS
# ================================

@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": API_VERSION
    }

# ================================
# API ROUTES
# ================================

app.include_router(api_router)

if __name__ == "__main__":
    uvicorn.run(
        "backoffice.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
