"""Database configuration and session management."""

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the document store.

    SQLite files get their parent directory created; in-memory SQLite uses a
    single shared connection so every session sees the same database.
    """
    url = make_url(database_url)
    kwargs = {}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}  # SQLite specific
        if not url.database or url.database == ":memory:":
            kwargs["poolclass"] = StaticPool
        else:
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize database tables."""
    from feedback_agent.storage.models import DocumentRecord  # noqa: F401
    Base.metadata.create_all(bind=engine)
