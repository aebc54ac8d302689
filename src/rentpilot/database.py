"""SQLAlchemy engine and session setup."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from rentpilot.config import get_database_url


class Base(DeclarativeBase):
    pass


def _connect_args(url: str) -> dict:
    # SQLite needs this for multi-thread access from the scheduler
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


_url = get_database_url()
engine = create_engine(_url, echo=False, connect_args=_connect_args(_url))

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def get_session() -> Session:
    """Create a new database session."""
    return SessionLocal()


def init_db() -> None:
    """Create all tables. Import models first so they register with Base."""
    import rentpilot.models.product  # noqa: F401
    import rentpilot.models.reservation  # noqa: F401
    import rentpilot.models.store  # noqa: F401

    Base.metadata.create_all(bind=engine)
