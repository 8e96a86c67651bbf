"""
Secret engines and the values they return.

An engine resolves references for one engine identifier. Engines are
registered explicitly at startup:

    registry = SecretEngineRegistry()
    registry.register(LocalSecretEngine(cfg.secrets_dir))
    registry.get_engine("local")
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import BaseModel

from credentia.errors import MissingSecretDataKeyError
from credentia.secrets.references import EncryptedSecret, UserSecretReference
from credentia.security import Authorization, Principal

logger = logging.getLogger(__name__)

DEFAULT_DATA_KEY = "value"


class UserSecretMetadata(BaseModel):
    type: str = "json"
    encoding: str = "utf-8"
    roles: list[str] = []


@dataclass(frozen=True)
class UserSecret:
    """A decrypted user secret: its access metadata plus key/value data."""

    metadata: UserSecretMetadata
    data: dict[str, str] = field(default_factory=dict)

    @property
    def roles(self) -> list[str]:
        return self.metadata.roles

    def get_secret_string(self, key: str | None = None) -> str:
        """Return one value of the secret. An empty key selects ``value``."""
        key = key or DEFAULT_DATA_KEY
        try:
            return self.data[key]
        except KeyError:
            raise MissingSecretDataKeyError(f"User secret has no data for key '{key}'") from None

    def is_authorized(self, principal: Principal, authorization: Authorization) -> bool:
        """Readable by admins and by principals holding one of the secret's roles."""
        if principal.admin:
            return True
        return principal.has_any_role(self.metadata.roles)


class SecretEngine(Protocol):
    identifier: str

    def validate_user_secret(self, reference: UserSecretReference) -> None: ...

    def decrypt_user_secret(self, reference: UserSecretReference) -> UserSecret: ...

    def validate_external_secret(self, secret: EncryptedSecret) -> None: ...

    def decrypt_external_secret(self, secret: EncryptedSecret) -> bytes: ...


class SecretEngineRegistry:
    def __init__(self) -> None:
        self._engines: dict[str, SecretEngine] = {}
        self._lock = threading.Lock()

    def register(self, engine: SecretEngine) -> None:
        with self._lock:
            if engine.identifier in self._engines:
                logger.warning("Replacing secret engine '%s'", engine.identifier)
            self._engines[engine.identifier] = engine

    def get_engine(self, identifier: str) -> SecretEngine | None:
        with self._lock:
            return self._engines.get(identifier)

    def identifiers(self) -> list[str]:
        with self._lock:
            return sorted(self._engines)
