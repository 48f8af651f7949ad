"""
Explicit storage handle for the scheduling context.

Why:
    Repositories must not reach for module-level connections. The web app
    constructs one ``Database`` at startup (``open``), passes it by reference
    into the repository, and closes it at shutdown.

Design:
    - Minimal psycopg3 usage; each logical operation opens a short-lived
      connection and runs inside exactly one ``conn.transaction()`` block.
    - Any exit that does not reach the end of the block (exceptions,
      cancellation) rolls the transaction back.
    - Driver errors surface as ``StorageError`` after rollback; domain errors
      raised inside the block propagate unchanged.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional
import logging
import os

import psycopg

from .errors import StorageError

logger = logging.getLogger("lessons.scheduling")


def _default_dev_dsn() -> str:
    host = os.getenv("TEST_DB_HOST", "127.0.0.1")
    port = os.getenv("TEST_DB_PORT", "5432")
    user = os.getenv("APP_DB_USER", "lessons_app")
    password = os.getenv("APP_DB_PASSWORD", "CHANGE_ME_DEV")
    return f"postgresql://{user}:{password}@{host}:{port}/lessons"


def resolve_dsn() -> str:
    """Resolve the DSN with test-friendly precedence.

    Order (first non-empty wins):
      1) LESSONS_DATABASE_URL (context-specific override)
      2) DATABASE_URL (app-wide default)
      3) Local development DSN, only outside prod
    """
    env = (os.getenv("LESSONS_ENV", "dev") or "dev").lower()
    candidates = [
        os.getenv("LESSONS_DATABASE_URL"),
        os.getenv("DATABASE_URL"),
    ]
    if env != "prod":
        candidates.append(_default_dev_dsn())
    for candidate in candidates:
        if candidate:
            return candidate
    raise RuntimeError("Database DSN unavailable for lessons storage")


class Database:
    """Storage handle with an explicit open/close lifecycle.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Defaults to ``resolve_dsn()``.
    connect_timeout:
        Seconds before a connection attempt fails (bounded hangs).
    """

    def __init__(self, dsn: Optional[str] = None, *, connect_timeout: int = 5) -> None:
        self._dsn = dsn or resolve_dsn()
        self._connect_timeout = connect_timeout
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self, *, probe: bool = False) -> "Database":
        """Mark the handle usable; optionally verify connectivity once."""
        if probe:
            try:
                with psycopg.connect(self._dsn, connect_timeout=self._connect_timeout) as conn:
                    conn.execute("select 1")
            except psycopg.Error as exc:
                logger.warning("Lessons database probe failed: %s", exc.__class__.__name__)
                raise StorageError("storage_unavailable") from exc
        self._open = True
        return self

    def close(self) -> None:
        self._open = False

    @contextmanager
    def transaction(self, *, snapshot: bool = False) -> Iterator[Any]:
        """Yield a cursor bound to one transaction.

        ``snapshot=True`` runs at REPEATABLE READ so multi-table reads observe a
        single consistent snapshot.
        """
        if not self._open:
            raise StorageError("storage_closed")
        try:
            with psycopg.connect(self._dsn, connect_timeout=self._connect_timeout) as conn:
                if snapshot:
                    conn.isolation_level = psycopg.IsolationLevel.REPEATABLE_READ
                with conn.transaction():
                    with conn.cursor() as cur:
                        yield cur
        except psycopg.Error as exc:
            logger.warning("Lessons transaction rolled back: %s", exc.__class__.__name__)
            raise StorageError("storage_unavailable") from exc


__all__ = ["Database", "resolve_dsn"]
