"""
Database connection management.

Provides the SQLAlchemy engine, the session factory and the FastAPI
dependency that hands a session to each request.

Environment variables:
    - DATABASE_URL: SQLAlchemy connection URL (see config.py)

SQLite note:
    SQLite serializes writers at the database level, so the conditional
    UPDATE statements used by the capacity ledger stay atomic there as well.
    ``check_same_thread`` is disabled because FastAPI runs sync endpoints on
    a thread pool.
"""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from .config import DATABASE_URL
from .models import Base


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": 30}
    return {}


engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    echo=False,
    connect_args=_connect_args(DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a SQLAlchemy Session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables on the current engine."""
    Base.metadata.create_all(bind=engine)
