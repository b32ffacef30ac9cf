from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from seminar_registration.core.config import settings


def _connect_args(url: str) -> dict:
    # The scheduler runs jobs on worker threads.
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


# The engine is the entry point to the database and owns the connection pool.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        # Always close the session, even if the request failed.
        db.close()
