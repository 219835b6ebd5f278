"""
Single-writer lock helpers for rating mutations.

The rating lock belongs to the caller's transaction, not to the ``with``
block that takes it: it is released only when that transaction commits or
rolls back. A second writer therefore never starts from state the first has
not yet committed.
"""

from __future__ import annotations

import hashlib
import threading
import time
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.orm import Session, SessionTransaction

RATING_LOCK_NAME = "pongleague:ratings"

# Key in Session.info marking the transaction that holds the rating lock
_HELD_KEY = "pongleague.rating_lock"

# Fallback for databases without advisory locks (SQLite in tests and dev)
_process_rating_lock = threading.Lock()


def advisory_lock_key(name: str) -> int:
    """Return a deterministic signed 64-bit lock key from a lock name."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def postgres_advisory_xact_lock(
    connection: Connection,
    *,
    key: int,
    timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 1.0,
) -> None:
    """
    Take a transaction-scoped PostgreSQL advisory lock on ``connection``.

    PostgreSQL releases the lock itself when the surrounding transaction
    ends, so there is nothing to unlock.

    Raises:
        TimeoutError: if the lock cannot be acquired before timeout.
    """
    deadline = time.monotonic() + max(timeout_seconds, 0.0)
    while True:
        acquired = bool(
            connection.execute(
                text("SELECT pg_try_advisory_xact_lock(:key)"),
                {"key": key},
            ).scalar()
        )
        if acquired:
            return
        if timeout_seconds <= 0 or time.monotonic() >= deadline:
            raise TimeoutError(f"Could not acquire advisory lock key={key}")
        time.sleep(max(poll_interval_seconds, 0.05))


def _holds_rating_lock(session: Session, transaction: SessionTransaction) -> bool:
    held = session.info.get(_HELD_KEY)
    return held is not None and held[0] is transaction and held[1] == threading.get_ident()


@event.listens_for(Session, "after_transaction_end")
def _release_rating_lock(session: Session, transaction: SessionTransaction) -> None:
    held = session.info.get(_HELD_KEY)
    if held is None or held[0] is not transaction:
        return
    session.info.pop(_HELD_KEY)
    if held[2]:
        _process_rating_lock.release()


@contextmanager
def rating_write_lock(
    session: Session,
    *,
    timeout_seconds: float | None = None,
) -> Generator[bool, None, None]:
    """
    Exclusive access to the rating tables until ``session``'s transaction ends.

    On PostgreSQL this is a transaction-level advisory lock on the session's
    own connection, so every writer in the cluster serialises on it.
    Elsewhere a process-wide lock is taken and released from the session's
    after_transaction_end event. Re-entering inside the same transaction is
    a no-op.

    Raises:
        TimeoutError: if the lock cannot be acquired before timeout.
    """
    if timeout_seconds is None:
        from pongleague.config import settings

        timeout_seconds = settings.rating_lock_timeout_seconds

    connection = session.connection()
    transaction = session.get_transaction()
    if _holds_rating_lock(session, transaction):
        yield True
        return

    if connection.dialect.name == "postgresql":
        postgres_advisory_xact_lock(
            connection,
            key=advisory_lock_key(RATING_LOCK_NAME),
            timeout_seconds=timeout_seconds,
        )
        session.info[_HELD_KEY] = (transaction, threading.get_ident(), False)
    else:
        if timeout_seconds > 0:
            acquired = _process_rating_lock.acquire(timeout=timeout_seconds)
        else:
            acquired = _process_rating_lock.acquire(blocking=False)
        if not acquired:
            raise TimeoutError(f"Could not acquire rating lock within {timeout_seconds}s")
        session.info[_HELD_KEY] = (transaction, threading.get_ident(), True)

    yield True
