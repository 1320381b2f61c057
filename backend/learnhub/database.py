"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine and provides small
helpers used by the application, the summary worker and tests. Without a
`DATABASE_URL` the database is a local SQLite file `app.db` next to the
package directory.
"""

from sqlmodel import SQLModel, create_engine, Session
from pathlib import Path
from .config import settings

BASE = Path(__file__).resolve().parent.parent
DB_URL = settings.DATABASE_URL or f"sqlite:///{BASE / 'app.db'}"
_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(DB_URL, echo=False, connect_args=_connect_args)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    Intended for local development and tests; the schema is small and
    has no migrations of its own yet.
    """
    # registers the table classes on SQLModel.metadata
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
