"""Concurrency helpers for rating writers."""

from pongleague.tasks.locks import advisory_lock_key, postgres_advisory_xact_lock, rating_write_lock

__all__ = [
    "advisory_lock_key",
    "postgres_advisory_xact_lock",
    "rating_write_lock",
]
