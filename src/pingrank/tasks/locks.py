"""Lock helpers that keep rating recalculation passes exclusive.

On PostgreSQL a session-level advisory lock serialises passes across every
process sharing the database. An in-process lock is always taken as well,
so threads of one process are serialised even on engines without advisory
locks (SQLite in tests and local tools).
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from contextlib import ExitStack, contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Engine

from pingrank.rating.errors import RecalculationInProgressError

logger = logging.getLogger(__name__)

_process_locks: dict[str, threading.Lock] = {}
_process_locks_guard = threading.Lock()


def advisory_lock_key(name: str) -> int:
    """Return a deterministic signed 64-bit lock key from a lock name."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


@contextmanager
def postgres_advisory_lock(
    engine: Engine,
    *,
    key: int,
    timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 1.0,
) -> Generator[bool, None, None]:
    """
    Acquire a PostgreSQL advisory lock for the life of this context.

    Yields:
        True if lock acquired.

    Raises:
        TimeoutError: if lock cannot be acquired before timeout.
    """
    connection = engine.connect()
    acquired = False
    try:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while True:
            acquired = bool(
                connection.execute(
                    text("SELECT pg_try_advisory_lock(:key)"),
                    {"key": key},
                ).scalar()
            )
            if acquired:
                break
            if timeout_seconds <= 0:
                break
            if time.monotonic() >= deadline:
                break
            time.sleep(max(poll_interval_seconds, 0.05))

        if not acquired:
            raise TimeoutError(f"Could not acquire advisory lock key={key}")

        yield True
    finally:
        if acquired:
            connection.execute(
                text("SELECT pg_advisory_unlock(:key)"),
                {"key": key},
            )
        connection.close()


def _get_process_lock(name: str) -> threading.Lock:
    with _process_locks_guard:
        lock = _process_locks.get(name)
        if lock is None:
            lock = threading.Lock()
            _process_locks[name] = lock
        return lock


@contextmanager
def process_lock(name: str, *, timeout_seconds: float = 0.0) -> Generator[bool, None, None]:
    """
    Acquire a named in-process lock for the life of this context.

    The lock is not re-entrant: a second acquisition from the same thread
    is treated like any other concurrent request.

    Raises:
        TimeoutError: if the lock cannot be acquired before timeout.
    """
    lock = _get_process_lock(name)
    if timeout_seconds > 0:
        acquired = lock.acquire(timeout=timeout_seconds)
    else:
        acquired = lock.acquire(blocking=False)
    if not acquired:
        raise TimeoutError(f"Could not acquire process lock name={name}")
    try:
        yield True
    finally:
        lock.release()


@contextmanager
def exclusive_recalculation(
    engine: Engine,
    *,
    name: str,
    timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 1.0,
) -> Generator[None, None, None]:
    """
    Hold the recalculation lock for the duration of one pass.

    Both locks are released on every exit path, including errors raised
    inside the pass.

    Raises:
        RecalculationInProgressError: if another pass holds the lock past
            timeout_seconds.
    """
    stack = ExitStack()
    try:
        stack.enter_context(process_lock(name, timeout_seconds=timeout_seconds))
        if engine.dialect.name == "postgresql":
            stack.enter_context(
                postgres_advisory_lock(
                    engine,
                    key=advisory_lock_key(name),
                    timeout_seconds=timeout_seconds,
                    poll_interval_seconds=poll_interval_seconds,
                )
            )
    except TimeoutError as exc:
        stack.close()
        raise RecalculationInProgressError(
            f"A rating recalculation is already in progress ({exc})"
        ) from exc

    with stack:
        logger.debug("Acquired recalculation lock %s on %s", name, engine.dialect.name)
        yield
