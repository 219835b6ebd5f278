"""
Database session management for pongleague.

Provides the SQLAlchemy engine and session factory, configured from
config.py. The engine is created lazily on first use so importing the
models never requires a database driver.

Usage:
    from pongleague.db import get_session

    with get_session() as session:
        players = session.query(Player).all()
        session.add(new_player)
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from pongleague.config import settings


def get_engine() -> Engine:
    """
    Create SQLAlchemy engine with connection pooling.

    The engine is configured with:
    - Connection pool sized from settings (ignored by SQLite memory URLs)
    - Echo mode only when LOG_LEVEL=DEBUG
    - Pre-ping to verify connections before use (handles stale connections)
    """
    kwargs = {
        "pool_pre_ping": True,
        "echo": settings.log_level == "DEBUG",
    }
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
    return create_engine(settings.database_url, **kwargs)


_engine: Optional[Engine] = None


def _get_engine() -> Engine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


# Session factory; bound to the engine when a session is opened
SessionLocal = sessionmaker(autoflush=False)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    One unit of work: commit when the block exits cleanly, roll back if it raises.

    Rating mutations must run inside one of these so a match's rating
    writes land (or fail) together.

    Raises:
        Any exception from the database operation (after rollback)
    """
    session = SessionLocal(bind=_get_engine())
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
