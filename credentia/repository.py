"""
Live credentials cache.

Each credentials type has one ``MapBackedCredentialsRepository``. The loader is
its only writer; the rest of the platform reads from it. Lifecycle events go
to a single optional handler and run synchronously on the writing thread.

Usage:
    repo = MapBackedCredentialsRepository("aws", handler=my_handler)
    repo.save(creds)          # handler.credentials_added(creds)
    repo.save(creds)          # handler.credentials_updated(creds)
    repo.delete(creds.name)   # handler.credentials_deleted(creds)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class CredentialsLifecycleHandler(Protocol):
    def credentials_added(self, credentials: Any) -> None: ...

    def credentials_updated(self, credentials: Any) -> None: ...

    def credentials_deleted(self, credentials: Any) -> None: ...


class MapBackedCredentialsRepository:
    """Name-keyed, lock-guarded map of live credentials for one type."""

    def __init__(self, type_name: str, handler: CredentialsLifecycleHandler | None = None) -> None:
        self.type_name = type_name
        self._handler = handler
        self._credentials: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get_one(self, name: str) -> Any | None:
        with self._lock:
            return self._credentials.get(name)

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._credentials

    def get_all(self) -> list[Any]:
        with self._lock:
            return list(self._credentials.values())

    def save(self, credentials: Any) -> Any | None:
        """Insert or replace by name. Returns the replaced entry, if any."""
        with self._lock:
            previous = self._credentials.get(credentials.name)
            self._credentials[credentials.name] = credentials
        if self._handler is not None:
            if previous is not None:
                self._handler.credentials_updated(credentials)
            else:
                self._handler.credentials_added(credentials)
        return previous

    def delete(self, name: str) -> None:
        with self._lock:
            removed = self._credentials.pop(name, None)
        if removed is not None:
            logger.debug("Removed %s credentials '%s'", self.type_name, name)
            if self._handler is not None:
                self._handler.credentials_deleted(removed)


class CompositeCredentialsRepository:
    """Lookups across the repositories of every registered type."""

    def __init__(self, repositories: Iterable[MapBackedCredentialsRepository] = ()) -> None:
        self._repositories: dict[str, MapBackedCredentialsRepository] = {}
        for repository in repositories:
            self.register_repository(repository)

    def register_repository(self, repository: MapBackedCredentialsRepository) -> None:
        self._repositories[repository.type_name] = repository

    def repositories(self) -> list[MapBackedCredentialsRepository]:
        return list(self._repositories.values())

    def get_credentials(self, name: str, type_name: str) -> Any:
        """Return the named credentials of one type.

        Raises:
            ValueError: blank name, unknown type, or no such credentials.
        """
        if not name:
            raise ValueError("An account name must be supplied")
        repository = self._repositories.get(type_name)
        if repository is None:
            raise ValueError(f"No credentials of type '{type_name}' found")
        credentials = repository.get_one(name)
        if credentials is None:
            raise ValueError(f"Credentials '{name}' of type '{type_name}' cannot be found")
        return credentials

    def get_first_credentials_with_name(self, name: str) -> Any | None:
        if not name:
            raise ValueError("An account name must be supplied")
        for repository in self._repositories.values():
            credentials = repository.get_one(name)
            if credentials is not None:
                return credentials
        return None

    def get_all_credentials(self) -> list[Any]:
        return [c for repository in self._repositories.values() for c in repository.get_all()]

    def has(self, name: str) -> bool:
        return any(repository.has(name) for repository in self._repositories.values())
