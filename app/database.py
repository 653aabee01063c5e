"""
SQLAlchemy engine and session factory for the account/checkpoint table.

PostgreSQL in deployment; SQLite URLs are accepted for local runs and tests.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from app.config import get_settings

DATABASE_URL = get_settings().database_url


def _connect_args(url: str) -> dict:
    # Store calls may run outside the thread that opened the connection
    if make_url(url).get_backend_name() == "sqlite":
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    DATABASE_URL,
    echo=False,  # Set True for SQL debugging
    pool_pre_ping=True,
    connect_args=_connect_args(DATABASE_URL),
)

# One short-lived session per CheckpointStore call
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def init_db() -> None:
    """Create the accounts table if it does not exist yet."""
    import app.models  # noqa: F401 - registers the tables on Base.metadata

    Base.metadata.create_all(bind=engine)
