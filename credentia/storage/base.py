"""
Definition store contract.

Every mutation appends to a per-name revision ledger: versions start at 1,
grow by exactly one per mutation, and survive delete/recreate cycles. A
deletion is recorded as a revision whose ``account`` is None.

Conditional updates compare the stored ETag (MD5 of the canonical body) with
the caller's ``if_matches``; a mismatch raises ``NoMatchingCredentialsError``
carrying the current stored value.
"""

from __future__ import annotations

import hashlib
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Collection
from dataclasses import dataclass
from typing import TYPE_CHECKING

from credentia.definitions import CredentialsDefinition
from credentia.errors import CredentialsDefinitionError, SecretError
from credentia.metrics import MetricsRegistry
from credentia.views import CredentialsView, Metadata

if TYPE_CHECKING:
    from credentia.secrets.mapper import CredentialsDefinitionMapper

logger = logging.getLogger(__name__)

SECRET_ERROR_METRIC = "credentials.secret.decryption.error"
DESERIALIZATION_ERROR_METRIC = "credentials.deserialization.error"


def compute_etag(body: str) -> str:
    return hashlib.md5(body.encode("utf-8")).hexdigest()


def now_millis() -> int:
    return int(time.time() * 1000)


def read_definition(
    mapper: CredentialsDefinitionMapper,
    name: str,
    type_name: str,
    body: str,
    metrics: MetricsRegistry | None = None,
) -> CredentialsDefinition | None:
    """Resolve a stored body for use, or None when it cannot be.

    A body whose secrets cannot be resolved, or that no longer binds to its
    type, is logged and counted so it does not hide the rest of the store.
    """
    try:
        return mapper.deserialize_with_secrets(body)
    except SecretError as e:
        logger.warning("Skipping stored credentials '%s': cannot resolve secrets: %s", name, e)
        metric = SECRET_ERROR_METRIC
    except CredentialsDefinitionError as e:
        logger.warning("Skipping stored credentials '%s': %s", name, e)
        metric = DESERIALIZATION_ERROR_METRIC
    if metrics is not None:
        metrics.increment(metric, type=type_name)
    return None


@dataclass(frozen=True)
class Revision:
    """One ledger entry. ``account is None`` records a deletion."""

    version: int
    timestamp: int  # epoch millis
    account: CredentialsDefinition | None
    user: str | None = None

    @property
    def deleted(self) -> bool:
        return self.account is None


class DefinitionRepository(ABC):
    """Persistent definition store with optimistic concurrency."""

    @abstractmethod
    def find_by_name(self, name: str) -> CredentialsDefinition | None:
        """Stored definition with secret references resolved, or None."""

    @abstractmethod
    def find_metadata_by_name(self, name: str) -> Metadata | None: ...

    @abstractmethod
    def list_by_type(self, type_name: str) -> list[CredentialsDefinition]:
        """All stored definitions of a type, secrets resolved."""

    @abstractmethod
    def list_credentials_views(self, type_name: str) -> list[CredentialsView]:
        """Display views of a type. Secrets stay as references; bad bodies become invalid views."""

    @abstractmethod
    def create(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        """Store a new definition.

        Raises:
            DuplicateCredentialsDefinitionError: the name is taken; carries the stored value.
        """

    @abstractmethod
    def save(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        """Create or replace."""

    @abstractmethod
    def save_all(
        self, definitions: Collection[CredentialsDefinition], *, user: str | None = None
    ) -> list[CredentialsView]:
        """Create or replace several definitions in one all-or-nothing batch."""

    @abstractmethod
    def update(self, definition: CredentialsDefinition, *, user: str | None = None) -> Metadata:
        """Replace an existing definition.

        Raises:
            NoSuchCredentialsDefinitionError: nothing stored under the name.
            InvalidCredentialsTypeError: the stored definition has another type.
        """

    @abstractmethod
    def update_if_match(
        self,
        definition: CredentialsDefinition,
        if_matches: Collection[str],
        *,
        user: str | None = None,
    ) -> Metadata:
        """Replace an existing definition only if its current ETag is in ``if_matches``.

        Raises:
            NoSuchCredentialsDefinitionError: nothing stored under the name.
            InvalidCredentialsTypeError: the stored definition has another type.
            NoMatchingCredentialsError: ETag mismatch; carries the stored value.
        """

    @abstractmethod
    def get_unknown_names(self, names: Collection[str]) -> set[str]: ...

    @abstractmethod
    def delete(self, name: str, *, user: str | None = None) -> None:
        """Raises NoSuchCredentialsDefinitionError when nothing is stored under the name."""

    @abstractmethod
    def delete_all(self, names: Collection[str], *, user: str | None = None) -> None:
        """Delete several definitions, or none if any name is unknown."""

    @abstractmethod
    def revision_history(self, name: str) -> list[Revision]:
        """Revisions newest first."""
