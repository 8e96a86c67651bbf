"""
In-process definition store.

Keeps the same serialized bodies, ETags, and revision ledger as the
PostgreSQL store, behind one lock. Used by tests and single-process
embeddings.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Collection
from dataclasses import dataclass

from credentia.definitions import CredentialsDefinition
from credentia.errors import (
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


@dataclass(frozen=True)
class _Record:
    name: str
    type: str
    body: str
    etag: str
    last_modified: int
    last_modified_by: str | None

    def metadata(self) -> Metadata:
        return Metadata(
            name=self.name,
            type=self.type,
            etag=self.etag,
            last_modified=self.last_modified,
            source=CredentialsSource.STORAGE,
        )


@dataclass(frozen=True)
class _HistoryRow:
    version: int
    body: str | None
    timestamp: int
    user: str | None


class InMemoryDefinitionRepository(DefinitionRepository):
    def __init__(
        self, mapper: CredentialsDefinitionMapper, *, metrics: MetricsRegistry | None = None
    ) -> None:
        self._mapper = mapper
        self._metrics = metrics
        self._records: dict[str, _Record] = {}
        self._history: dict[str, list[_HistoryRow]] = {}
        self._lock = threading.RLock()

    # ─── Reads ───────────────────────────────────────────────────────────

    def find_by_name(self, name: str) -> CredentialsDefinition | None:
        with self._lock:
            record = self._records.get(name)
        if record is None:
            return None
        return self._resolve(record)

    def find_metadata_by_name(self, name: str) -> Metadata | None:
        with self._lock:
            record = self._records.get(name)
        return record.metadata() if record is not None else None

    def list_by_type(self, type_name: str) -> list[CredentialsDefinition]:
        resolved = (self._resolve(record) for record in self._by_type(type_name))
        return [definition for definition in resolved if definition is not None]

    def list_credentials_views(self, type_name: str) -> list[CredentialsView]:
        views = []
        for record in self._by_type(type_name):
            view = self._mapper.deserialize_with_errors(record.body)
            view.metadata = record.metadata()
            views.append(view)
        return views

    def get_unknown_names(self, names: Collection[str]) -> set[str]:
        with self._lock:
            return {name for name in names if name not in self._records}

    def revision_history(self, name: str) -> list[Revision]:
        with self._lock:
            rows = list(self._history.get(name, ()))
        return [
            Revision(
                version=row.version,
                timestamp=row.timestamp,
                account=self._mapper.deserialize(row.body) if row.body is not None else None,
                user=row.user,
            )
            for row in reversed(rows)
        ]

    # ─── Writes ──────────────────────────────────────────────────────────

    def create(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        record = self._new_record(definition, user)
        with self._lock:
            existing = self._records.get(record.name)
            if existing is not None:
                raise DuplicateCredentialsDefinitionError(
                    self._mapper.deserialize(existing.body),
                    existing.name,
                    existing.etag,
                    existing.last_modified,
                )
            self._put(record)
        return record.metadata()

    def save(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        record = self._new_record(definition, user)
        with self._lock:
            self._put(record)
        return record.metadata()

    def save_all(
        self, definitions: Collection[CredentialsDefinition], *, user: str | None = None
    ) -> list[CredentialsView]:
        # Serialize everything first so a bad definition leaves the store untouched
        pairs = [(definition, self._new_record(definition, user)) for definition in definitions]
        with self._lock:
            for _, record in pairs:
                self._put(record)
        return [CredentialsView(metadata=record.metadata(), spec=d) for d, record in pairs]

    def update(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        record = self._new_record(definition, user)
        with self._lock:
            self._existing_of_same_type(record)
            self._put(record)
        return record.metadata()

    def update_if_match(
        self,
        definition: CredentialsDefinition,
        if_matches: Collection[str],
        *,
        user: str | None = None,
    ) -> Metadata:
        record = self._new_record(definition, user)
        with self._lock:
            existing = self._existing_of_same_type(record)
            if existing.etag not in if_matches:
                logger.warning(
                    "Unable to conditionally update credentials for %s as its etag %s is not in %s",
                    record.name,
                    existing.etag,
                    sorted(if_matches),
                )
                raise NoMatchingCredentialsError(
                    self._mapper.deserialize(existing.body),
                    existing.name,
                    existing.etag,
                    existing.last_modified,
                )
            self._put(record)
        return record.metadata()

    def delete(self, name: str, *, user: str | None = None) -> None:
        with self._lock:
            if name not in self._records:
                raise NoSuchCredentialsDefinitionError(
                    name, "Cannot delete credentials that do not exist"
                )
            self._remove(name, user)

    def delete_all(self, names: Collection[str], *, user: str | None = None) -> None:
        with self._lock:
            missing = {name for name in names if name not in self._records}
            if missing:
                raise NoSuchCredentialsDefinitionError(
                    missing, "Unable to delete non-existent credentials"
                )
            for name in dict.fromkeys(names):
                self._remove(name, user)

    # ─── Internals ───────────────────────────────────────────────────────

    def _by_type(self, type_name: str) -> list[_Record]:
        with self._lock:
            return [r for r in self._records.values() if r.type == type_name]

    def _resolve(self, record: _Record) -> CredentialsDefinition | None:
        return read_definition(self._mapper, record.name, record.type, record.body, self._metrics)

    def _new_record(self, definition: CredentialsDefinition, user: str | None) -> _Record:
        body = self._mapper.serialize(definition)
        return _Record(
            name=definition.name,
            type=self._mapper.type_name_of(definition),
            body=body,
            etag=compute_etag(body),
            last_modified=now_millis(),
            last_modified_by=user,
        )

    def _existing_of_same_type(self, record: _Record) -> _Record:
        existing = self._records.get(record.name)
        if existing is None:
            raise NoSuchCredentialsDefinitionError(
                record.name, "Cannot update credentials that do not exist"
            )
        if existing.type != record.type:
            logger.warning(
                "Unable to update credentials for %s as the existing type %s does not match %s",
                record.name,
                existing.type,
                record.type,
            )
            raise InvalidCredentialsTypeError(
                record.name,
                f"Existing credentials type {existing.type} does not match proposed type {record.type}",
            )
        return existing

    def _next_version(self, name: str) -> int:
        return len(self._history.get(name, ())) + 1

    def _put(self, record: _Record) -> None:
        self._records[record.name] = record
        self._history.setdefault(record.name, []).append(
            _HistoryRow(
                version=self._next_version(record.name),
                body=record.body,
                timestamp=record.last_modified,
                user=record.last_modified_by,
            )
        )

    def _remove(self, name: str, user: str | None) -> None:
        del self._records[name]
        self._history.setdefault(name, []).append(
            _HistoryRow(version=self._next_version(name), body=None, timestamp=now_millis(), user=user)
        )
