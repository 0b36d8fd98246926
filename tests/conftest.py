"""Pytest fixtures for the audit service tests."""

import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SQLALCHEMY_ECHO", "false")
os.environ.setdefault("JWT_SECRET", "testsecret")
os.environ.setdefault("CSRF_SECRET", "test-csrf-secret")

from src.audit.pipeline import build_pipeline  # noqa: E402
from src.auth.guards import CSRF_HEADER  # noqa: E402
from src.auth.jwt_handler import ADMIN_ROLE, encode_jwt  # noqa: E402
from src.config import get_config  # noqa: E402
from src.db.session import Base, get_engine, reset_engine  # noqa: E402
from src.main import create_app  # noqa: E402
from src.services.csrf import CSRFProtection  # noqa: E402

START = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Manually advanced clock shared by every component under test."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session", autouse=True)
def _engine():
    reset_engine()
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    reset_engine()


@pytest.fixture(autouse=True)
def _db_cleanup(_engine):
    Base.metadata.drop_all(bind=_engine)
    Base.metadata.create_all(bind=_engine)
    yield


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def pipeline(clock):
    return build_pipeline(get_config(), clock=clock)


@pytest.fixture()
def app(clock):
    application = create_app(clock=clock)
    application.config.update({"TESTING": True})
    yield application


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture()
def service_headers():
    return {"Authorization": f"Bearer {encode_jwt('billing-service')}"}


@pytest.fixture()
def operator_headers():
    token = encode_jwt("operator-1", role=ADMIN_ROLE)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def csrf_headers(app, operator_headers):
    protection: CSRFProtection = app.extensions["csrf"]
    return {
        **operator_headers,
        CSRF_HEADER: protection.generate_token("operator-1"),
    }
