"""Display projections of credentials definitions."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CredentialsSource(StrEnum):
    """Where a definition came from."""

    STORAGE = "storage"
    CONFIG = "config"
    PLUGIN = "plugin"
    EXTERNAL = "external"


class ErrorCode(StrEnum):
    NOT_FOUND = "credentials.not_found"
    DUPLICATE_NAME = "credentials.duplicate_name"
    INVALID_NAME = "credentials.invalid_name"
    INVALID_TYPE = "credentials.invalid_type"
    UNAUTHORIZED = "credentials.unauthorized"
    MISSING_NAME = "credentials.missing_name"
    MISSING_TYPE = "credentials.missing_type"
    INVALID_SYNTAX = "credentials.invalid_syntax"
    INVALID_STRUCTURE = "credentials.invalid_structure"
    INVALID_BINDING = "credentials.invalid_binding"


class CredentialsErrorDetail(BaseModel):
    code: str
    message: str
    field: str | None = None


class Metadata(BaseModel):
    name: str | None = None
    type: str | None = None
    etag: str | None = None
    last_modified: int | None = None  # epoch millis
    source: CredentialsSource | None = None


class Status(BaseModel):
    valid: bool = True
    errors: list[CredentialsErrorDetail] = Field(default_factory=list)

    def add_error(self, error: CredentialsErrorDetail) -> None:
        self.valid = False
        self.errors.append(error)

    def add_errors(self, errors: list[CredentialsErrorDetail]) -> None:
        self.valid = False
        self.errors.extend(errors)


class CredentialsView(BaseModel):
    """Metadata, spec, and validity of one definition.

    ``spec`` is normally a ``CredentialsDefinition`` with secrets left as
    references. When the stored body could not be bound it is whatever the
    mapper got furthest with: ``{"data": raw}`` for bad JSON, the decoded
    value for a non-object, or an ``UnknownAccount`` for a body that failed
    to bind to its type.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    metadata: Metadata = Field(default_factory=Metadata)
    spec: Any = None
    status: Status = Field(default_factory=Status)
