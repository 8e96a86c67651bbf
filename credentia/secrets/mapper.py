"""
JSON mapping for stored definitions.

Stored bodies keep secret references as written. They are only resolved when
a definition is read for use (``deserialize_with_secrets``), never for display
(``deserialize_with_errors``).

Usage:
    mapper = CredentialsDefinitionMapper(registry, secret_manager)
    body = mapper.serialize(definition)           # canonical JSON with "type"
    live = mapper.deserialize_with_secrets(body)  # references replaced by values
    view = mapper.deserialize_with_errors(body)   # never raises
"""

from __future__ import annotations

import json
import logging
from typing import Any

from credentia.definitions import CredentialsDefinition, CredentialsTypeRegistry
from credentia.errors import CredentialsDefinitionError, InvalidCredentialsDefinitionError
from credentia.secrets.manager import CredentialsDefinitionSecretManager
from credentia.secrets.references import EncryptedSecret, UserSecretReference
from credentia.security import Authorization, Principal
from credentia.views import CredentialsErrorDetail, CredentialsView, ErrorCode

logger = logging.getLogger(__name__)


class UnknownAccount:
    """Raw body of a definition that did not bind, still permission-checkable.

    Access is decided from ``permissions`` (per authorization), else ``roles``,
    else ``requiredGroupMembership``. No roles listed means open.
    """

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data

    @property
    def name(self) -> str | None:
        name = self.data.get("name")
        return str(name) if name is not None else None

    def is_authorized(self, principal: Principal, authorization: Authorization) -> bool:
        if principal.admin:
            return True
        permissions = self.data.get("permissions")
        if permissions is not None:
            if not isinstance(permissions, dict):
                return True
            permitted = permissions.get(str(authorization).upper())
            if permitted is None:
                return True
        elif "roles" in self.data:
            permitted = self.data["roles"]
        elif "requiredGroupMembership" in self.data:
            permitted = self.data["requiredGroupMembership"]
        else:
            return True
        if not isinstance(permitted, list) or not permitted:
            return True
        return principal.has_any_role(str(role) for role in permitted)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UnknownAccount) and other.data == self.data

    def __repr__(self) -> str:
        return f"UnknownAccount({self.data!r})"


class CredentialsDefinitionMapper:
    def __init__(
        self, registry: CredentialsTypeRegistry, secret_manager: CredentialsDefinitionSecretManager
    ) -> None:
        self._registry = registry
        self._secrets = secret_manager

    @property
    def registry(self) -> CredentialsTypeRegistry:
        return self._registry

    def type_name_of(self, definition: CredentialsDefinition) -> str:
        return self._registry.type_name_of(definition)

    def serialize(self, definition: CredentialsDefinition) -> str:
        """Canonical JSON (sorted keys, compact) including the ``type`` discriminator."""
        return json.dumps(self._registry.to_dict(definition), sort_keys=True, separators=(",", ":"))

    def deserialize(self, body: str) -> CredentialsDefinition:
        """Bind a stored body without resolving secrets."""
        return self._registry.from_dict(self._parse_object(body))

    def deserialize_with_secrets(self, body: str) -> CredentialsDefinition:
        """Bind a stored body, replacing top-level secret references with their values.

        User secrets are resolved on behalf of the account named in the body,
        which records the use for later access checks.

        Raises:
            InvalidCredentialsDefinitionError: bad JSON, not an object, or no name.
            SecretError: a reference could not be resolved.
        """
        account = self._parse_object(body)
        name = account.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidCredentialsDefinitionError("", "Credentials definition has no name")
        for field_name, value in list(account.items()):
            if not isinstance(value, str):
                continue
            if UserSecretReference.is_user_secret(value):
                reference = UserSecretReference.parse(value)
                account[field_name] = self._secrets.get_user_secret_string(reference, name)
            elif EncryptedSecret.is_encrypted_secret(value):
                account[field_name] = self._secrets.get_external_secret_string(
                    EncryptedSecret.parse(value)
                )
        return self._registry.from_dict(account)

    def deserialize_with_errors(self, body: str) -> CredentialsView:
        """Bind as far as possible and report what went wrong. Never resolves secrets."""
        view = CredentialsView()

        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            logger.info("Cannot deserialize invalid JSON credentials data: %s", e)
            view.spec = {"data": body}
            view.status.add_error(CredentialsErrorDetail(code=ErrorCode.INVALID_SYNTAX, message=str(e)))
            return view

        view.spec = data
        if not isinstance(data, dict):
            kind = type(data).__name__
            logger.info("Expected a JSON object for credentials data but got %s", kind)
            view.status.add_error(
                CredentialsErrorDetail(
                    code=ErrorCode.INVALID_STRUCTURE,
                    message=f"Expected an object but instead got {kind}",
                )
            )
            return view

        view.spec = UnknownAccount(data)
        errors: list[CredentialsErrorDetail] = []
        if data.get("name") is None:
            errors.append(
                CredentialsErrorDetail(
                    code=ErrorCode.MISSING_NAME,
                    message="No 'name' field in credentials definition",
                    field="name",
                )
            )
        else:
            view.metadata.name = str(data["name"])
        if data.get("type") is None:
            errors.append(
                CredentialsErrorDetail(
                    code=ErrorCode.MISSING_TYPE,
                    message="No 'type' field in credentials definition",
                    field="type",
                )
            )
        else:
            view.metadata.type = str(data["type"])

        try:
            view.spec = self._registry.from_dict(data)
        except CredentialsDefinitionError as e:
            logger.info("Invalid credentials binding for '%s': %s", view.metadata.name, e)
            errors.append(CredentialsErrorDetail(code=ErrorCode.INVALID_BINDING, message=str(e)))

        if errors:
            view.status.add_errors(errors)
        return view

    @staticmethod
    def _parse_object(body: str) -> dict[str, Any]:
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise InvalidCredentialsDefinitionError("", f"Invalid credentials JSON: {e}") from e
        if not isinstance(data, dict):
            raise InvalidCredentialsDefinitionError(
                "", f"Expected a JSON object but got {type(data).__name__}"
            )
        return data
