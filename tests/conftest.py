# tests/conftest.py

import os

# Settings are read at import time; keep the app away from real infrastructure.
os.environ.setdefault("ENV", "local")
os.environ.setdefault("DATABASE_URL_LOCAL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RESEND_API_KEY", "")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from starlette.testclient import TestClient  # noqa: E402

import seminar_registration.models  # noqa: E402,F401
from seminar_registration.api import deps  # noqa: E402
from seminar_registration.core.config import Settings  # noqa: E402
from seminar_registration.db.base_class import Base  # noqa: E402
from seminar_registration.services.container import build_services  # noqa: E402
from tests.utils.clock import FakeClock  # noqa: E402
from tests.utils.transport import FakeTransport  # noqa: E402


# --- Database Setup ---
# A file database (not :memory:) so several threads can share it.
@pytest.fixture(scope="function")
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'seminar_registration_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


# --- Service Setup ---
@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def test_settings():
    return Settings(RESEND_API_KEY=None, PUBLIC_BASE_URL="https://seminars.example.edu")


@pytest.fixture
def services(test_settings, transport, clock):
    return build_services(settings=test_settings, transport=transport, clock=clock)


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def client(session_factory, services):
    """
    Provides a TestClient bound to the test database and the test service set.
    """
    from seminar_registration.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_services] = lambda: services

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
