"""
Shared pytest fixtures.

Provides:
- an in-memory SQLite database shared by the test and the app under test
- a LocalObjectStore rooted in tmp_path
- a TestClient with get_db / get_store overridden
- user factories and bearer headers
"""

import os
import tempfile

# must be set before keeper reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_DIR", tempfile.mkdtemp(prefix="keeper-test-"))
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PASSWORD_HASH_METHOD", "pbkdf2:sha256:1000")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_FILE_TYPES", "txt,pdf,png,csv")
os.environ.setdefault("MAX_FILE_SIZE", "1024")
os.environ.setdefault("MAX_FILES_PER_UPLOAD", "3")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from keeper.core.security import create_access_token, hash_password
from keeper.main import create_app
from keeper.models.database import Base, init_db
from keeper.models.user import Role, User
from keeper.routers.deps import get_db, get_store
from keeper.storage import LocalObjectStore

DEFAULT_PASSWORD = "Secret123"


# ============================================================================
# Database / storage
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(tmp_path):
    store = LocalObjectStore(tmp_path / "objects")
    store.ensure_bucket()
    return store


# ============================================================================
# App / client
# ============================================================================

@pytest.fixture
def app(session_factory, store):
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_store] = lambda: store
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def make_user(db_session):
    def _make(username: str, role: Role = Role.USER, password: str = DEFAULT_PASSWORD, is_active: bool = True) -> User:
        user = User(
            email=f"{username}@example.com",
            username=username,
            first_name=username.title(),
            last_name="Tester",
            password=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


def auth_headers(user: User) -> dict:
    token = create_access_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def admin(make_user):
    return make_user("root", role=Role.ADMIN)


@pytest.fixture
def headers():
    return auth_headers
