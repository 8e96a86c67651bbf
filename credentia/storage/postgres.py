"""
PostgreSQL definition store.

Two tables: ``credentials_accounts`` holds the current body of each account,
``credentials_account_history`` the revision ledger. Each mutation runs in a
single transaction and takes a per-name advisory lock, so version numbers are
assigned without gaps or reuse.

Usage:
    from credentia.storage.postgres import PostgresDefinitionRepository, ensure_schema

    with get_connection() as conn:
        ensure_schema(conn)
    repo = PostgresDefinitionRepository(mapper)
    meta = repo.create(definition, user="alice")
    repo.update_if_match(changed, [meta.etag], user="alice")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Generator
from contextlib import AbstractContextManager, contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor

from credentia.db.connection import get_connection
from credentia.definitions import CredentialsDefinition
from credentia.errors import (
    CredentialsRepositoryError,
    DuplicateCredentialsDefinitionError,
    InvalidCredentialsTypeError,
    NoMatchingCredentialsError,
    NoSuchCredentialsDefinitionError,
)
from credentia.metrics import MetricsRegistry
from credentia.secrets.mapper import CredentialsDefinitionMapper
from credentia.storage.base import (
    DefinitionRepository,
    Revision,
    compute_etag,
    now_millis,
    read_definition,
)
from credentia.views import CredentialsSource, CredentialsView, Metadata

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS credentials_accounts (
    id                VARCHAR(255) PRIMARY KEY,
    type              VARCHAR(50)  NOT NULL,
    body              TEXT         NOT NULL,
    etag              VARCHAR(32)  NOT NULL,
    created_at        BIGINT       NOT NULL,
    last_modified_at  BIGINT       NOT NULL,
    last_modified_by  VARCHAR(255)
);
CREATE INDEX IF NOT EXISTS credentials_accounts_type_idx ON credentials_accounts (type);

CREATE TABLE IF NOT EXISTS credentials_account_history (
    id           VARCHAR(255) NOT NULL,
    version      INTEGER      NOT NULL,
    type         VARCHAR(50),
    body         TEXT,
    deleted      BOOLEAN      NOT NULL DEFAULT FALSE,
    modified_at  BIGINT       NOT NULL,
    modified_by  VARCHAR(255),
    PRIMARY KEY (id, version)
);
"""

ConnectionFactory = Callable[[], AbstractContextManager[Any]]


def ensure_schema(conn: Any) -> None:
    """Create the account tables if they do not exist."""
    cur = conn.cursor()
    cur.execute(SCHEMA_SQL)


def _metadata(row: dict[str, Any]) -> Metadata:
    return Metadata(
        name=row["id"],
        type=row["type"],
        etag=row["etag"],
        last_modified=row["last_modified_at"],
        source=CredentialsSource.STORAGE,
    )


class PostgresDefinitionRepository(DefinitionRepository):
    def __init__(
        self,
        mapper: CredentialsDefinitionMapper,
        connection_factory: ConnectionFactory = get_connection,
        *,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._mapper = mapper
        self._connection_factory = connection_factory
        self._metrics = metrics

    @contextmanager
    def _transaction(self, names: str | Collection[str], action: str) -> Generator[Any, None, None]:
        """Cursor inside one transaction; driver errors become CredentialsRepositoryError."""
        try:
            with self._connection_factory() as conn:
                yield conn.cursor(cursor_factory=RealDictCursor)
        except psycopg2.Error as e:
            logger.error("Credentials store error while trying to %s: %s", action, e)
            raise CredentialsRepositoryError(
                names, f"Error while trying to {action} credentials: {e}"
            ) from e

    # ─── Reads ───────────────────────────────────────────────────────────

    def find_by_name(self, name: str) -> CredentialsDefinition | None:
        with self._transaction(name, "find") as cur:
            cur.execute("SELECT id, type, body FROM credentials_accounts WHERE id = %s", (name,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._resolve(row)

    def find_metadata_by_name(self, name: str) -> Metadata | None:
        with self._transaction(name, "find") as cur:
            cur.execute(
                """
                SELECT id, type, etag, last_modified_at
                FROM credentials_accounts WHERE id = %s
            """,
                (name,),
            )
            row = cur.fetchone()
        return _metadata(row) if row is not None else None

    def list_by_type(self, type_name: str) -> list[CredentialsDefinition]:
        with self._transaction(type_name, "list") as cur:
            cur.execute(
                "SELECT id, type, body FROM credentials_accounts WHERE type = %s ORDER BY id",
                (type_name,),
            )
            rows = cur.fetchall()
        resolved = (self._resolve(row) for row in rows)
        return [definition for definition in resolved if definition is not None]

    def list_credentials_views(self, type_name: str) -> list[CredentialsView]:
        with self._transaction(type_name, "list") as cur:
            cur.execute(
                """
                SELECT id, type, body, etag, last_modified_at
                FROM credentials_accounts WHERE type = %s ORDER BY id
            """,
                (type_name,),
            )
            rows = cur.fetchall()
        views = []
        for row in rows:
            view = self._mapper.deserialize_with_errors(row["body"])
            view.metadata = _metadata(row)
            views.append(view)
        return views

    def get_unknown_names(self, names: Collection[str]) -> set[str]:
        wanted = set(names)
        if not wanted:
            return set()
        with self._transaction(wanted, "look up") as cur:
            cur.execute("SELECT id FROM credentials_accounts WHERE id = ANY(%s)", (sorted(wanted),))
            found = {row["id"] for row in cur.fetchall()}
        return wanted - found

    def revision_history(self, name: str) -> list[Revision]:
        with self._transaction(name, "list history of") as cur:
            cur.execute(
                """
                SELECT version, body, deleted, modified_at, modified_by
                FROM credentials_account_history
                WHERE id = %s
                ORDER BY version DESC
            """,
                (name,),
            )
            rows = cur.fetchall()
        return [
            Revision(
                version=row["version"],
                timestamp=row["modified_at"],
                account=None if row["deleted"] else self._mapper.deserialize(row["body"]),
                user=row["modified_by"],
            )
            for row in rows
        ]

    # ─── Writes ──────────────────────────────────────────────────────────

    def create(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        type_name, body, etag, now = self._prepare(definition)
        name = definition.name
        with self._transaction(name, "create") as cur:
            self._lock_name(cur, name)
            cur.execute(
                """
                INSERT INTO credentials_accounts
                    (id, type, body, etag, created_at, last_modified_at, last_modified_by)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
                RETURNING id, type, etag, last_modified_at
            """,
                (name, type_name, body, etag, now, now, user),
            )
            row = cur.fetchone()
            if row is None:
                cur.execute("SELECT * FROM credentials_accounts WHERE id = %s", (name,))
                existing = cur.fetchone()
                raise DuplicateCredentialsDefinitionError(
                    self._mapper.deserialize(existing["body"]),
                    name,
                    existing["etag"],
                    existing["last_modified_at"],
                )
            self._append_history(cur, name, type_name, body, now, user)
        return _metadata(row)

    def save(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        prepared = self._prepare(definition)
        with self._transaction(definition.name, "save") as cur:
            row = self._upsert(cur, definition.name, *prepared, user)
        return _metadata(row)

    def save_all(
        self, definitions: Collection[CredentialsDefinition], *, user: str | None = None
    ) -> list[CredentialsView]:
        prepared = [(d, self._prepare(d)) for d in definitions]
        names = [d.name for d, _ in prepared]
        metadata: dict[str, Metadata] = {}
        with self._transaction(names, "save batch of") as cur:
            for name in sorted(set(names)):
                self._lock_name(cur, name)
            for definition, values in prepared:
                row = self._upsert(cur, definition.name, *values, user, lock=False)
                metadata[definition.name] = _metadata(row)
        return [CredentialsView(metadata=metadata[d.name], spec=d) for d, _ in prepared]

    def update(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        type_name, body, etag, now = self._prepare(definition)
        name = definition.name
        with self._transaction(name, "update") as cur:
            self._lock_name(cur, name)
            self._select_for_update(cur, name, type_name)
            row = self._update(cur, name, type_name, body, etag, now, user)
        return _metadata(row)

    def update_if_match(
        self,
        definition: CredentialsDefinition,
        if_matches: Collection[str],
        *,
        user: str | None = None,
    ) -> Metadata:
        type_name, body, etag, now = self._prepare(definition)
        name = definition.name
        with self._transaction(name, "conditionally update") as cur:
            self._lock_name(cur, name)
            existing = self._select_for_update(cur, name, type_name)
            if existing["etag"] not in if_matches:
                logger.warning(
                    "Unable to conditionally update credentials for %s as its etag %s is not in %s",
                    name,
                    existing["etag"],
                    sorted(if_matches),
                )
                raise NoMatchingCredentialsError(
                    self._mapper.deserialize(existing["body"]),
                    name,
                    existing["etag"],
                    existing["last_modified_at"],
                )
            row = self._update(cur, name, type_name, body, etag, now, user)
        return _metadata(row)

    def delete(self, name: str, *, user: str | None = None) -> None:
        with self._transaction(name, "delete") as cur:
            self._lock_name(cur, name)
            cur.execute("SELECT id FROM credentials_accounts WHERE id = %s FOR UPDATE", (name,))
            if cur.fetchone() is None:
                raise NoSuchCredentialsDefinitionError(
                    name, "Cannot delete credentials that do not exist"
                )
            cur.execute("DELETE FROM credentials_accounts WHERE id = %s", (name,))
            self._append_history(cur, name, None, None, now_millis(), user)

    def delete_all(self, names: Collection[str], *, user: str | None = None) -> None:
        unique = sorted(set(names))
        if not unique:
            return
        with self._transaction(unique, "delete batch of") as cur:
            for name in unique:
                self._lock_name(cur, name)
            cur.execute(
                "SELECT id FROM credentials_accounts WHERE id = ANY(%s) FOR UPDATE", (unique,)
            )
            missing = set(unique) - {row["id"] for row in cur.fetchall()}
            if missing:
                raise NoSuchCredentialsDefinitionError(
                    missing, "Unable to delete non-existent credentials"
                )
            cur.execute("DELETE FROM credentials_accounts WHERE id = ANY(%s)", (unique,))
            now = now_millis()
            for name in unique:
                self._append_history(cur, name, None, None, now, user)

    # ─── Internals ───────────────────────────────────────────────────────

    def _resolve(self, row: dict[str, Any]) -> CredentialsDefinition | None:
        return read_definition(self._mapper, row["id"], row["type"], row["body"], self._metrics)

    def _prepare(self, definition: CredentialsDefinition) -> tuple[str, str, str, int]:
        body = self._mapper.serialize(definition)
        return self._mapper.type_name_of(definition), body, compute_etag(body), now_millis()

    @staticmethod
    def _lock_name(cur: Any, name: str) -> None:
        cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (name,))

    @staticmethod
    def _select_for_update(cur: Any, name: str, type_name: str) -> dict[str, Any]:
        cur.execute(
            """
            SELECT id, type, body, etag, last_modified_at
            FROM credentials_accounts WHERE id = %s
            FOR UPDATE
        """,
            (name,),
        )
        existing = cur.fetchone()
        if existing is None:
            raise NoSuchCredentialsDefinitionError(
                name, "Cannot update credentials that do not exist"
            )
        if existing["type"] != type_name:
            logger.warning(
                "Unable to update credentials for %s as the existing type %s does not match %s",
                name,
                existing["type"],
                type_name,
            )
            raise InvalidCredentialsTypeError(
                name,
                f"Existing credentials type {existing['type']} does not match proposed type {type_name}",
            )
        return existing

    def _upsert(
        self,
        cur: Any,
        name: str,
        type_name: str,
        body: str,
        etag: str,
        now: int,
        user: str | None,
        *,
        lock: bool = True,
    ) -> dict[str, Any]:
        if lock:
            self._lock_name(cur, name)
        cur.execute(
            """
            INSERT INTO credentials_accounts
                (id, type, body, etag, created_at, last_modified_at, last_modified_by)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                type = EXCLUDED.type,
                body = EXCLUDED.body,
                etag = EXCLUDED.etag,
                last_modified_at = EXCLUDED.last_modified_at,
                last_modified_by = EXCLUDED.last_modified_by
            RETURNING id, type, etag, last_modified_at
        """,
            (name, type_name, body, etag, now, now, user),
        )
        row = cur.fetchone()
        self._append_history(cur, name, type_name, body, now, user)
        return row

    def _update(
        self,
        cur: Any,
        name: str,
        type_name: str,
        body: str,
        etag: str,
        now: int,
        user: str | None,
    ) -> dict[str, Any]:
        cur.execute(
            """
            UPDATE credentials_accounts
            SET body = %s, etag = %s, last_modified_at = %s, last_modified_by = %s
            WHERE id = %s
            RETURNING id, type, etag, last_modified_at
        """,
            (body, etag, now, user, name),
        )
        row = cur.fetchone()
        self._append_history(cur, name, type_name, body, now, user)
        return row

    @staticmethod
    def _append_history(
        cur: Any, name: str, type_name: str | None, body: str | None, now: int, user: str | None
    ) -> None:
        cur.execute(
            """
            INSERT INTO credentials_account_history
                (id, version, type, body, deleted, modified_at, modified_by)
            SELECT %s, COALESCE(MAX(version), 0) + 1, %s, %s, %s, %s, %s
            FROM credentials_account_history WHERE id = %s
        """,
            (name, type_name, body, body is None, now, user, name),
        )
