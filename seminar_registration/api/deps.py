# seminar_registration/api/deps.py
from typing import Generator

from seminar_registration.db.session import SessionLocal
from seminar_registration.services.container import Services, get_services as _get_services


def get_db() -> Generator:
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_services() -> Services:
    """Dependency to get the wired service set. Tests override this."""
    return _get_services()
