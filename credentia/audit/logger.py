"""
Credentia Audit Log: one row per attempted definition mutation.

Event types:
  - credentials.create, credentials.update, credentials.save, credentials.delete
  - credentials.denied (a mutation refused for lack of permission)

Writes go through the shared pool unless a connection factory is installed.
Audit failures are logged and reported as ``None`` / ``[]``; they never
propagate into the mutation being audited.

Usage:
    from credentia.audit.logger import log_credentials_mutation, query_log
    log_credentials_mutation("update", "prod-aws", actor="alice", details={"type": "aws"})
    query_log(target="prod-aws")
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager

from psycopg2.extras import Json

logger = logging.getLogger(__name__)

AUDIT_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS audit_log (
    id          BIGSERIAL PRIMARY KEY,
    timestamp   TIMESTAMPTZ NOT NULL DEFAULT now(),
    event_type  VARCHAR(100) NOT NULL,
    category    VARCHAR(50),
    actor       VARCHAR(255) NOT NULL,
    action      TEXT NOT NULL,
    details     JSONB,
    target      VARCHAR(255),
    status      VARCHAR(20) NOT NULL DEFAULT 'ok'
);
CREATE INDEX IF NOT EXISTS audit_log_target_idx ON audit_log (target);
"""

_COLUMNS = ("id", "timestamp", "event_type", "category", "actor", "action", "details", "target", "status")

# Set by tests (or embedders with their own connection handling)
_conn_factory = None


def set_connection_factory(factory):
    """Route audit writes through ``factory()`` instead of the shared pool."""
    global _conn_factory
    _conn_factory = factory


def reset_connection_factory():
    global _conn_factory
    _conn_factory = None


@contextmanager
def _connection() -> Generator:
    if _conn_factory is None:
        from credentia.db.connection import get_connection

        with get_connection() as conn:
            yield conn
        return
    conn = _conn_factory()
    yield conn
    conn.commit()


def ensure_audit_schema() -> bool:
    """Create the audit table if missing. Returns False when the database is unavailable."""
    try:
        with _connection() as conn:
            conn.cursor().execute(AUDIT_SCHEMA_SQL)
        return True
    except Exception as e:
        logger.warning("Audit schema setup failed: %s", e)
        return False


def log_event(
    event_type: str,
    action: str,
    *,
    category: str | None = None,
    actor: str = "credentia",
    details: dict | None = None,
    target: str | None = None,
    status: str = "ok",
) -> dict | None:
    """Record one audit event. Returns {"id", "timestamp"}, or None if it could not be written."""
    row = (
        event_type,
        category,
        actor,
        action,
        Json(details) if details else None,
        target,
        status,
    )
    try:
        with _connection() as conn:
            cur = conn.cursor()
            cur.execute(
                "INSERT INTO audit_log"
                " (event_type, category, actor, action, details, target, status)"
                " VALUES (%s, %s, %s, %s, %s, %s, %s)"
                " RETURNING id, timestamp",
                row,
            )
            event_id, timestamp = cur.fetchone()
    except Exception as e:
        logger.warning("Audit write for %s failed: %s", event_type, e)
        return None
    return {"id": event_id, "timestamp": timestamp.isoformat()}


def log_credentials_mutation(
    operation: str,
    name: str,
    *,
    actor: str = "credentia",
    details: dict | None = None,
    status: str = "ok",
) -> dict | None:
    """Audit a create/update/save/delete (or a denied attempt) on account ``name``."""
    return log_event(
        f"credentials.{operation}",
        f"{operation} credentials {name}",
        category="credentials",
        actor=actor,
        target=f"account:{name}",
        details=details,
        status=status,
    )


def query_log(
    limit: int = 50,
    event_type: str | None = None,
    actor: str | None = None,
    target: str | None = None,
    since: str | None = None,
) -> list[dict]:
    """Newest-first audit events matching every given filter."""
    filters = [
        ("event_type = %s", event_type),
        ("actor = %s", actor),
        ("target LIKE %s", f"%{target}%" if target else None),
        ("timestamp >= %s", since),
    ]
    active = [(clause, value) for clause, value in filters if value]
    where = " AND ".join(clause for clause, _ in active) or "TRUE"
    params = [value for _, value in active] + [limit]

    try:
        with _connection() as conn:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM audit_log"
                f" WHERE {where} ORDER BY timestamp DESC LIMIT %s",
                params,
            )
            rows = cur.fetchall()
    except Exception as e:
        logger.warning("Audit query failed: %s", e)
        return []

    events = []
    for row in rows:
        event = dict(zip(_COLUMNS, row, strict=True))
        event["timestamp"] = event["timestamp"].isoformat()
        events.append(event)
    return events
