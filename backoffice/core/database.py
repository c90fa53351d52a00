# ================================
# DATABASE CONNECTION (core/database.py)
# ================================

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from backoffice.config import settings

def _engine_options(url: str) -> dict:
    """Pool options depending on the database backend"""
    if url.startswith("sqlite"):
        # SQLite: one file, shared between threads of the dev server
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,  # Verify connections before use
    }

# Database Engine
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

@event.listens_for(engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if settings.DATABASE_URL.startswith("sqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
