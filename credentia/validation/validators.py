"""
Definition validators run before any stored mutation.

Each validator appends to a shared ``Errors`` and never raises; the service
decides what to do once the whole chain has run.
"""

from __future__ import annotations

import logging
from typing import Protocol

from credentia.config import ValidatorConfig, get_config
from credentia.definitions import CredentialsDefinition, CredentialsTypeRegistry
from credentia.secrets.validation import DefaultSecretReferenceValidator
from credentia.security import AccessControlled, Authorization, PermissionEvaluator, Principal
from credentia.validation.errors import Errors
from credentia.views import ErrorCode

logger = logging.getLogger(__name__)


class CredentialsDefinitionValidator(Protocol):
    def validate(
        self, definition: CredentialsDefinition, errors: Errors, principal: Principal | None
    ) -> None: ...


class CredentialsDefinitionNameValidator:
    """Account names must match the pattern configured for their type."""

    def __init__(
        self, registry: CredentialsTypeRegistry, config: ValidatorConfig | None = None
    ) -> None:
        self._registry = registry
        self._config = config

    def validate(
        self, definition: CredentialsDefinition, errors: Errors, principal: Principal | None
    ) -> None:
        config = self._config or get_config().validator
        pattern = config.name_pattern(self._registry.type_name_of(definition))
        if not pattern.fullmatch(definition.name):
            errors.reject_value(
                "name",
                ErrorCode.INVALID_NAME,
                f"Provided account name '{definition.name}' does not match regular expression "
                f"{pattern.pattern}",
            )


class AccessControlledDefinitionValidator:
    """Non-admins may not save a definition that would lock them out of it."""

    def __init__(self, permission_evaluator: PermissionEvaluator) -> None:
        self._evaluator = permission_evaluator

    def validate(
        self, definition: CredentialsDefinition, errors: Errors, principal: Principal | None
    ) -> None:
        if not isinstance(definition, AccessControlled):
            return
        if principal is not None and principal.admin:
            return
        if principal is None:
            errors.reject(ErrorCode.UNAUTHORIZED, "no authenticated user found")
            return
        if not self._evaluator.has_permission(principal, definition, Authorization.WRITE):
            logger.debug(
                "No write permission granted to account %s for %s", definition.name, principal.username
            )
            errors.reject_value(
                "permissions", ErrorCode.UNAUTHORIZED, "no write permission granted to current user"
            )


class UserSecretsValidator:
    """Every top-level string field must be a usable reference or plain text.

    Values nested in dict fields are stored and resolved as written.
    """

    def __init__(self, reference_validator: DefaultSecretReferenceValidator) -> None:
        self._references = reference_validator

    def validate(
        self, definition: CredentialsDefinition, errors: Errors, principal: Principal | None
    ) -> None:
        logger.debug("Validating user secrets in account %s", definition.name)
        for field, value in definition:
            if not isinstance(value, str):
                continue
            error = self._references.validate(value, principal)
            if error is not None:
                errors.reject_value(field, error.code, error.message)
