"""
File-backed secret engine.

Each secret is a JSON envelope ``{"metadata": {...}, "data": {...}}`` encrypted
with AES-256-GCM and stored as <directory>/<name>.secret. References select
a secret with ``n`` and a value within it with ``k``:

    secret://local?n=prod-aws&k=secret_key
    encrypted:local!n:prod-aws!k:secret_key

Usage:
    engine = LocalSecretEngine(tmp_path)
    engine.put_secret("prod-aws", {"secret_key": "..."}, roles=["ops"])
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from pathlib import Path

from cryptography.exceptions import InvalidTag

from credentia.errors import InvalidSecretFormatError, SecretDecryptionError
from credentia.secrets import crypto
from credentia.secrets.engines import DEFAULT_DATA_KEY, UserSecret, UserSecretMetadata
from credentia.secrets.references import KEY_PARAMETER, EncryptedSecret, UserSecretReference

logger = logging.getLogger(__name__)

ENGINE_IDENTIFIER = "local"
NAME_PARAMETER = "n"
_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.-]*")


class LocalSecretEngine:
    identifier = ENGINE_IDENTIFIER

    def __init__(self, directory: Path | str, *, identifier: str = ENGINE_IDENTIFIER) -> None:
        self.identifier = identifier
        self._directory = Path(directory)
        crypto.init_master_key(self._directory)

    # ─── Writing ─────────────────────────────────────────────────────────

    def put_secret(
        self,
        name: str,
        data: dict[str, str],
        *,
        roles: Iterable[str] = (),
        secret_type: str = "json",
    ) -> Path:
        """Encrypt and store a secret, replacing any existing one with the same name."""
        self._check_name(name)
        metadata = UserSecretMetadata(type=secret_type, roles=list(roles))
        envelope = json.dumps({"metadata": metadata.model_dump(), "data": dict(data)})
        path = self._path(name)
        path.write_bytes(crypto.encrypt(envelope, crypto.get_master_key(self._directory)))
        logger.info("Stored secret '%s' (%d keys)", name, len(data))
        return path

    def delete_secret(self, name: str) -> bool:
        self._check_name(name)
        path = self._path(name)
        if not path.exists():
            return False
        path.unlink()
        return True

    # ─── SecretEngine ────────────────────────────────────────────────────

    def validate_user_secret(self, reference: UserSecretReference) -> None:
        self._check_name(reference.params.get(NAME_PARAMETER))

    def decrypt_user_secret(self, reference: UserSecretReference) -> UserSecret:
        return self._read(reference.params[NAME_PARAMETER])

    def validate_external_secret(self, secret: EncryptedSecret) -> None:
        self._check_name(secret.params.get(NAME_PARAMETER))

    def decrypt_external_secret(self, secret: EncryptedSecret) -> bytes:
        params = secret.params
        value = self._read(params[NAME_PARAMETER]).get_secret_string(
            params.get(KEY_PARAMETER, DEFAULT_DATA_KEY)
        )
        return value.encode("utf-8")

    # ─── Internals ───────────────────────────────────────────────────────

    def _path(self, name: str) -> Path:
        return self._directory / f"{name}.secret"

    @staticmethod
    def _check_name(name: str | None) -> None:
        if not name:
            raise InvalidSecretFormatError(f"Missing '{NAME_PARAMETER}' parameter for local secret")
        if not _NAME_RE.fullmatch(name):
            raise InvalidSecretFormatError(f"Invalid local secret name: {name!r}")

    def _read(self, name: str) -> UserSecret:
        path = self._path(name)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            raise SecretDecryptionError(f"No local secret named '{name}'") from None
        try:
            envelope = json.loads(crypto.decrypt(raw, crypto.get_master_key(self._directory)))
        except (InvalidTag, ValueError) as e:
            raise SecretDecryptionError(f"Unable to decrypt local secret '{name}'") from e
        return UserSecret(
            metadata=UserSecretMetadata.model_validate(envelope.get("metadata", {})),
            data={str(k): str(v) for k, v in envelope.get("data", {}).items()},
        )
