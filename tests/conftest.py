# ================================
# TEST FIXTURES (tests/conftest.py)
# ================================

import os

# The app module builds its engine at import time; keep it off the dev database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backoffice.main import app
from backoffice.dependencies import get_db
from backoffice.core.security import get_password_hash
from backoffice.models import Base
from backoffice.models.user import User
from backoffice.models.rbac import Permission, Role, RolePermission, UserRole
from backoffice.services.rate_limiter import (
    InMemoryCounterStore, RateLimiter, RateLimitPolicy, get_rate_limiter
)

from config import DEFAULT_PASSWORD

# ================================
# DATABASE
# ================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()

@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

# ================================
# FACTORIES
# ================================

@pytest.fixture
def make_permission(db):
    def _make(resource: str, action: str, is_active: bool = True) -> Permission:
        permission = Permission(
            resource=resource,
            action=action,
            description=f"{action} {resource}",
            is_active=is_active
        )
        db.add(permission)
        db.commit()
        return permission

    return _make

@pytest.fixture
def make_role(db):
    def _make(name: str, permissions=(), is_active: bool = True) -> Role:
        role = Role(name=name, description=f"{name} role", is_active=is_active)
        db.add(role)
        db.flush()
        for permission in permissions:
            db.add(RolePermission(role_id=role.id, permission_id=permission.id))
        db.commit()
        db.refresh(role)
        return role

    return _make

@pytest.fixture
def make_user(db):
    def _make(
        email: str,
        roles=(),
        is_admin: bool = False,
        is_active: bool = True,
        password: str = DEFAULT_PASSWORD,
        name: str = None
    ) -> User:
        user = User(
            name=name or email.split("@")[0].title(),
            email=email,
            password_hash=get_password_hash(password),
            is_admin=is_admin,
            is_active=is_active
        )
        db.add(user)
        db.flush()
        for role in roles:
            db.add(UserRole(user_id=user.id, role_id=role.id))
        db.commit()
        db.refresh(user)
        return user

    return _make

# ================================
# HTTP CLIENT
# ================================

@pytest.fixture
def rate_limiter():
    """Generous API budget; auth budget as in the login scenarios (5 per minute)"""
    return RateLimiter(
        InMemoryCounterStore(),
        api_policy=RateLimitPolicy("api", 1000, 60),
        auth_policy=RateLimitPolicy("auth", 5, 60)
    )

@pytest.fixture
def client(db, rate_limiter):
    """TestClient bound to the test session (lifespan startup is not run)"""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

