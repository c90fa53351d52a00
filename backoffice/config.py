# ================================
# CONFIGURATION (config.py)
# ================================

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"  # Ignore extra fields from .env
    )

    # Database
    DATABASE_URL: str = "sqlite:///./backoffice.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # App Settings
    APP_NAME: str = "Backoffice Admin Console"
    ENVIRONMENT: str = "development"  # 'development', 'staging', 'production'
    DEBUG: bool = False
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    RUN_MIGRATIONS_ON_STARTUP: bool = False

    # Super Admin Settings
    SUPER_ADMIN_EMAIL: Optional[str] = None
    SUPER_ADMIN_PASSWORD: Optional[str] = None
    SUPER_ADMIN_NAME: str = "Administrator"

    # Sessions
    SESSION_COOKIE_NAME: str = "session_token"
    SESSION_EXPIRE_DAYS: int = 7

    # CSRF (double-submit cookie)
    CSRF_COOKIE_NAME: str = "csrf_token"
    CSRF_FIELD_NAME: str = "csrf_token"
    CSRF_HEADER_NAME: str = "X-CSRF-Token"
    CSRF_TOKEN_BYTES: int = 32
    CSRF_MAX_AGE_SECONDS: int = 60 * 60 * 24

    # Rate Limiting
    RATE_LIMIT_BACKEND: str = "memory"  # 'memory' or 'redis'
    REDIS_URL: str = "redis://localhost:6379/0"
    API_RATE_LIMIT_MAX: int = 60
    API_RATE_LIMIT_WINDOW_SECONDS: int = 60
    # Fewer attempts over a longer window than the API policy (5 per 15 min)
    AUTH_RATE_LIMIT_MAX: int = 5
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    TRUST_PROXY_HEADERS: bool = False

    # Password Reset
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # Redirect targets for browser requests
    LOGIN_PATH: str = "/auth/login"
    ACCESS_DENIED_PATH: str = "/api/v1/admin/unauthorized"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

settings = Settings()
