import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("SMTP_HOST", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetcommand.db import Base, get_db
from fleetcommand.main import app
from fleetcommand.models.models import Profile, UserRole, Region
from fleetcommand.auth.security import get_password_hash, create_access_token
from fleetcommand.routes.regions import seed_default_regions


PASSWORD = "Str0ng!pass"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    def _get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def regions(db):
    seed_default_regions(db)
    return {r.code: r for r in db.query(Region).all()}


@pytest.fixture
def make_user(db):
    """Factory: make_user(role, tenant) -> (profile, auth headers)."""
    counter = {"n": 0}

    def _make(role="viewer", tenant="internal", email=None):
        counter["n"] += 1
        profile = Profile(
            email=email or f"{role}.{tenant}.{counter['n']}@example.com",
            full_name=f"{role.title()} User",
            password_hash=get_password_hash(PASSWORD),
            tenant_type=tenant,
            is_active=True,
        )
        profile.role_entry = UserRole(role=role)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        token = create_access_token(str(profile.id), role=role, tenant_type=tenant)
        return profile, {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin", "internal")


@pytest.fixture
def supervisor(make_user):
    return make_user("supervisor", "internal")


@pytest.fixture
def technician(make_user):
    return make_user("technician", "internal")


@pytest.fixture
def viewer(make_user):
    return make_user("viewer", "internal")


@pytest.fixture
def demo_user(make_user):
    return make_user("supervisor", "demo")
