import os
import tempfile

os.environ.setdefault("DOMPETKU_DATA_DIR", tempfile.mkdtemp(prefix="dompetku-tests-"))
os.environ.setdefault("DOMPETKU_DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

import models  # noqa: F401
from database import Base, build_engine, make_sessionmaker
from schemas import RegisterIn
from services import AuthService


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    db = make_sessionmaker(engine)()
    yield db
    db.close()


@pytest.fixture
def make_user(session):
    def _make(username: str = "alice", email: str = "alice@dompet.id"):
        return AuthService(session).register(
            RegisterIn(
                username=username,
                email=email,
                password="rahasia123",
                confirm_password="rahasia123",
                full_name=username.title(),
            )
        )

    return _make


@pytest.fixture
def client(engine):
    from main import app, get_db

    TestingSession = make_sessionmaker(engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
