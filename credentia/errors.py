"""
Credentia errors, one hierarchy per failure family.

Every error carries a stable ``code`` string so an outer surface can map it
to a response without inspecting messages:

  CredentialsDefinitionError          storage / definition problems
    NoSuchCredentialsDefinitionError  404  update/delete of an absent name
    DuplicateCredentialsDefinitionError 409  create of an existing name
    NoMatchingCredentialsError        412  if-match precondition failed
    InvalidCredentialsTypeError       400  unknown or mismatched type
    InvalidCredentialsDefinitionError 400  (de)serialization failure
    CredentialsRepositoryError        500  backing store failure
  ValidationFailedError               400  aggregated field errors
  AccessDeniedError                   403  permission check failed
  SecretError                              secret reference resolution
    InvalidSecretFormatError          400
    SecretAccessDeniedError           403
    SecretDecryptionError             500
      MissingSecretDataKeyError       500
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class CredentialsDefinitionError(Exception):
    """Base class for errors about a credentials definition (or several)."""

    code = "credentials.error"

    def __init__(self, names: str | Iterable[str], message: str) -> None:
        if isinstance(names, str):
            self.names: list[str] = [names]
        else:
            self.names = sorted(names)
        self.message = message
        super().__init__(f"{message}: {', '.join(self.names)}")

    @property
    def name(self) -> str:
        return self.names[0] if self.names else ""


class NoSuchCredentialsDefinitionError(CredentialsDefinitionError):
    code = "credentials.not_found"


class _ExistingCredentialsError(CredentialsDefinitionError):
    """Carries the currently stored value so the caller can reconcile."""

    def __init__(
        self,
        existing: Any,
        name: str,
        etag: str | None,
        last_modified: int | None,
        message: str,
    ) -> None:
        super().__init__(name, message)
        self.existing = existing
        self.etag = etag
        self.last_modified = last_modified


class DuplicateCredentialsDefinitionError(_ExistingCredentialsError):
    code = "credentials.duplicate_name"

    def __init__(
        self, existing: Any, name: str, etag: str | None = None, last_modified: int | None = None
    ) -> None:
        super().__init__(existing, name, etag, last_modified, "Duplicate credentials")


class NoMatchingCredentialsError(_ExistingCredentialsError):
    code = "credentials.precondition_failed"

    def __init__(
        self, existing: Any, name: str, etag: str | None = None, last_modified: int | None = None
    ) -> None:
        super().__init__(existing, name, etag, last_modified, "No matching credentials")


class InvalidCredentialsTypeError(CredentialsDefinitionError):
    code = "credentials.invalid_type"


class InvalidCredentialsDefinitionError(CredentialsDefinitionError):
    code = "credentials.invalid_definition"


class CredentialsRepositoryError(CredentialsDefinitionError):
    code = "credentials.storage_failure"


class ValidationFailedError(Exception):
    """One or more field-scoped validation errors, always reported together."""

    code = "credentials.validation_failed"

    def __init__(self, errors: list[Any]) -> None:
        self.errors = list(errors)
        summary = "; ".join(str(e) for e in self.errors)
        super().__init__(f"Validation failed with {len(self.errors)} error(s): {summary}")


class AccessDeniedError(Exception):
    code = "credentials.access_denied"


# ─── Secrets ─────────────────────────────────────────────────────────────


class SecretError(Exception):
    """Base class for failures while parsing or resolving a secret reference."""

    code = "secrets.error"

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message or self.code)

    @property
    def message(self) -> str:
        return str(self)


class InvalidSecretFormatError(SecretError):
    code = "secrets.invalid_format"


class SecretAccessDeniedError(SecretError):
    code = "secrets.access_denied"


class SecretDecryptionError(SecretError):
    code = "secrets.decryption_failure"


class MissingSecretDataKeyError(SecretDecryptionError):
    code = "secrets.missing_data_key"
