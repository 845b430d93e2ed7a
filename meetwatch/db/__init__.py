"""Database package: engine, session factory, init_db(), configure_db(), get_session()."""

import threading
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from meetwatch.config import DATABASE_URL
from meetwatch.db.base import Base

# Registers every table on Base.metadata
from meetwatch.db.models import (  # noqa: F401
    Conversation,
    Mailbox,
    MeetingSuggestion,
    Message,
    NotificationRecord,
    OutboundSend,
    SyncState,
)

_init_lock = threading.Lock()
_engine = None
_SessionLocal: sessionmaker | None = None


def _get_engine(url: str):
    """Create engine; sqlite gets check_same_thread=False for use from executor threads."""
    if url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") == "sqlite:"):
        # One shared connection, otherwise every session sees its own empty database
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        if "?" in url:
            url += "&check_same_thread=False"
        else:
            url += "?check_same_thread=False"
    return create_engine(url, echo=False)


def init_db() -> None:
    """Create engine and tables on first call; later calls do nothing."""
    global _engine, _SessionLocal
    with _init_lock:
        if _SessionLocal is not None:
            return
        _engine = _get_engine(DATABASE_URL)
        Base.metadata.create_all(bind=_engine)
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False)


def configure_db(database_url: str) -> None:
    """Point the session factory at a different database (fresh schema). Used by tests and the CLI."""
    global _engine, _SessionLocal
    with _init_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = _get_engine(database_url)
        Base.metadata.create_all(bind=_engine)
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False)


def reset_db() -> None:
    """Drop and recreate every table on the current engine."""
    init_db()
    Base.metadata.drop_all(bind=_engine)
    Base.metadata.create_all(bind=_engine)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session scope: commit on success, roll back and re-raise on error."""
    init_db()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
