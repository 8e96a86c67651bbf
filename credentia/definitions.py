"""
Credentials definitions and the type registry.

A definition is a declarative, serializable description of an account. Each
concrete definition class is a pydantic model registered under a type name:

    class AwsDefinition(AccessControlledDefinition):
        account_id: str
        secret_key: str | None = None

    registry = CredentialsTypeRegistry()
    registry.register("aws", AwsDefinition)
    registry.from_dict({"type": "aws", "name": "prod", "account_id": "1234"})

Definitions are frozen, so equality is structural. The loader relies on that
to decide what changed between two pulls of a source.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, ValidationError

from credentia.errors import InvalidCredentialsDefinitionError, InvalidCredentialsTypeError
from credentia.security import Authorization, Principal

logger = logging.getLogger(__name__)


class CredentialsDefinition(BaseModel):
    """Base class for every credentials definition."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str


class AccessControlledDefinition(CredentialsDefinition):
    """A definition carrying ``permissions``: authorization name -> permitted roles.

    An authorization with no roles listed is open to everyone.
    """

    permissions: dict[str, list[str]] = {}

    def is_authorized(self, principal: Principal, authorization: Authorization) -> bool:
        if principal.admin:
            return True
        roles = self.permissions.get(str(authorization).upper(), [])
        if not roles:
            return True
        return principal.has_any_role(roles)


@runtime_checkable
class Credentials(Protocol):
    """A live, usable account produced by parsing a definition."""

    @property
    def name(self) -> str: ...

    @property
    def type(self) -> str: ...


class CredentialsTypeRegistry:
    """Explicit mapping between type names and definition classes."""

    def __init__(self) -> None:
        self._classes: dict[str, type[CredentialsDefinition]] = {}
        self._names: dict[type[CredentialsDefinition], str] = {}

    def register(self, type_name: str, definition_class: type[CredentialsDefinition]) -> None:
        existing = self._classes.get(type_name)
        if existing is not None and existing is not definition_class:
            raise ValueError(
                f"Credentials type '{type_name}' already registered to {existing.__name__}"
            )
        self._classes[type_name] = definition_class
        self._names[definition_class] = type_name
        logger.debug("Registered credentials type %s -> %s", type_name, definition_class.__name__)

    def type_names(self) -> list[str]:
        return sorted(self._classes)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._classes

    def definition_class(self, type_name: str) -> type[CredentialsDefinition]:
        try:
            return self._classes[type_name]
        except KeyError:
            raise InvalidCredentialsTypeError(type_name, "Unknown credentials type") from None

    def type_name_of(self, definition: CredentialsDefinition | type[CredentialsDefinition]) -> str:
        cls = definition if isinstance(definition, type) else type(definition)
        try:
            return self._names[cls]
        except KeyError:
            raise InvalidCredentialsTypeError(
                cls.__name__, "Unregistered credentials definition class"
            ) from None

    def to_dict(self, definition: CredentialsDefinition) -> dict[str, Any]:
        """Dump a definition with its ``type`` discriminator."""
        return {"type": self.type_name_of(definition), **definition.model_dump(mode="json")}

    def from_dict(self, data: dict[str, Any]) -> CredentialsDefinition:
        """Build a definition from a dict carrying a ``type`` discriminator.

        Raises:
            InvalidCredentialsTypeError: missing or unknown ``type``.
            InvalidCredentialsDefinitionError: fields do not bind to the type's model.
        """
        body = dict(data)
        type_name = body.pop("type", None)
        if not type_name:
            raise InvalidCredentialsTypeError(
                str(body.get("name", "")), "Missing credentials type"
            )
        cls = self.definition_class(str(type_name))
        try:
            return cls.model_validate(body)
        except ValidationError as e:
            raise InvalidCredentialsDefinitionError(
                str(body.get("name", "")), f"Invalid {type_name} definition ({e.error_count()} errors)"
            ) from e
