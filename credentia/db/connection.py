"""
Pooled PostgreSQL connections shared by the definition store and the audit log.

Usage:
    from credentia.db import get_connection

    with get_connection() as conn:      # commits on exit, rolls back on error
        conn.cursor().execute("SELECT 1")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

import psycopg2
import psycopg2.pool

from credentia.config import DatabaseConfig, get_config

logger = logging.getLogger(__name__)

_pool: psycopg2.pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def _describe(cfg: DatabaseConfig) -> str:
    return f"{cfg.user}@{cfg.host or '<socket>'}:{cfg.port}/{cfg.name}"


def _open_pool(cfg: DatabaseConfig) -> psycopg2.pool.ThreadedConnectionPool:
    logger.info(
        "Opening PostgreSQL pool for %s (%d-%d connections)",
        _describe(cfg),
        cfg.pool_min,
        cfg.pool_max,
    )
    try:
        return psycopg2.pool.ThreadedConnectionPool(cfg.pool_min, cfg.pool_max, **cfg.dict)
    except psycopg2.OperationalError as e:
        raise ConnectionError(
            f"PostgreSQL unavailable at {_describe(cfg)}: {e}. "
            "Check the CREDENTIA_DB_* environment variables."
        ) from e


def get_pool() -> psycopg2.pool.ThreadedConnectionPool:
    """Return the shared pool, opening it on first use or after ``close_pool``.

    Raises:
        ConnectionError: the database cannot be reached.
    """
    global _pool
    with _pool_lock:
        if _pool is None or _pool.closed:
            _pool = _open_pool(get_config().db)
        return _pool


@contextmanager
def get_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """One transaction on a pooled connection."""
    pool = get_pool()
    conn = pool.getconn()
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
    finally:
        pool.putconn(conn)


def close_pool() -> None:
    global _pool
    with _pool_lock:
        if _pool is not None and not _pool.closed:
            _pool.closeall()
            logger.info("Closed PostgreSQL pool")
        _pool = None
