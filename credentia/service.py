"""
Front door for stored definition mutations.

Every mutation passes two gates before it reaches the store: the validator
chain, and a WRITE check against the *existing* definition (never the
incoming one, so a payload cannot grant itself access). Errors from the
chain are collected and raised together.

Usage:
    service = CredentialsDefinitionService(store, evaluator, validators, [aws_repo])
    service.create(AwsDefinition(name="prod", ...), principal)
    service.delete_all(["old-1", "old-2"], principal)
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Sequence
from enum import StrEnum
from typing import Any

from credentia.definitions import CredentialsDefinition
from credentia.errors import AccessDeniedError, ValidationFailedError
from credentia.repository import MapBackedCredentialsRepository
from credentia.security import AccessControlled, Authorization, PermissionEvaluator, Principal
from credentia.storage.base import DefinitionRepository, Revision
from credentia.validation.errors import Errors
from credentia.validation.validators import CredentialsDefinitionValidator
from credentia.views import ErrorCode, Metadata

logger = logging.getLogger(__name__)


class CredentialsDefinitionCommand(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    SAVE = "save"


def _safe_audit(operation: str, name: str, **kwargs: Any) -> None:
    """Wrap audit logging so it never propagates exceptions."""
    try:
        from credentia.audit.logger import log_credentials_mutation

        log_credentials_mutation(operation, name, **kwargs)
    except Exception as e:
        logger.warning("Audit call failed (non-fatal): %s", e)


def _username(principal: Principal | None) -> str | None:
    return principal.username if principal is not None else None


class CredentialsDefinitionService:
    def __init__(
        self,
        repository: DefinitionRepository,
        permission_evaluator: PermissionEvaluator,
        validators: Sequence[CredentialsDefinitionValidator] = (),
        credentials_repositories: Iterable[MapBackedCredentialsRepository] = (),
    ) -> None:
        self._repository = repository
        self._evaluator = permission_evaluator
        self._validators = list(validators)
        self._credentials_repositories = list(credentials_repositories)

    # ─── Gates ───────────────────────────────────────────────────────────

    def is_name_in_use(self, name: str) -> bool:
        """True if the name is stored or live under any credential type."""
        if self._repository.find_metadata_by_name(name) is not None:
            return True
        return any(repo.has(name) for repo in self._credentials_repositories)

    def should_deny_write_permission(self, principal: Principal | None, name: str) -> bool:
        existing = self._find_access_controlled(name)
        if existing is None:
            return False
        return not self._evaluator.has_permission(principal, existing, Authorization.WRITE)

    def _find_access_controlled(self, name: str) -> Any | None:
        stored = self._repository.find_by_name(name)
        if stored is not None:
            return stored if isinstance(stored, AccessControlled) else None
        for repo in self._credentials_repositories:
            live = repo.get_one(name)
            if live is not None and isinstance(live, AccessControlled):
                return live
        return None

    def _run_validators(
        self, definition: CredentialsDefinition, errors: Errors, principal: Principal | None
    ) -> None:
        for validator in self._validators:
            validator.validate(definition, errors, principal)

    def validate(
        self,
        definition: CredentialsDefinition,
        principal: Principal | None,
        command: CredentialsDefinitionCommand,
    ) -> None:
        """Validate a definition for one command.

        Raises:
            AccessDeniedError: the principal may not overwrite the existing account.
            ValidationFailedError: any validator (or the name checks) rejected it.
        """
        name = definition.name
        errors = Errors(name)
        exists = self.is_name_in_use(name)
        if command == CredentialsDefinitionCommand.UPDATE and not exists:
            errors.reject_value(
                "name", ErrorCode.NOT_FOUND, "Cannot update an account which does not exist"
            )
        if exists:
            if command == CredentialsDefinitionCommand.CREATE:
                errors.reject_value(
                    "name",
                    ErrorCode.DUPLICATE_NAME,
                    "Cannot create a new account with the same name as an existing one",
                )
            if self.should_deny_write_permission(principal, name):
                _safe_audit(
                    "denied",
                    name,
                    actor=_username(principal) or "anonymous",
                    details={"command": str(command)},
                    status="denied",
                )
                raise AccessDeniedError("Unauthorized to overwrite existing account")
        self._run_validators(definition, errors, principal)
        if errors.has_errors():
            logger.info("Rejected %s of account %s: %d error(s)", command, name, len(errors))
            raise ValidationFailedError(errors.all_errors)

    # ─── Mutations ───────────────────────────────────────────────────────

    def create(self, definition: CredentialsDefinition, principal: Principal | None) -> Metadata:
        self.validate(definition, principal, CredentialsDefinitionCommand.CREATE)
        metadata = self._repository.create(definition, user=_username(principal))
        self._audit("create", metadata, principal)
        return metadata

    def save(self, definition: CredentialsDefinition, principal: Principal | None) -> Metadata:
        self.validate(definition, principal, CredentialsDefinitionCommand.SAVE)
        metadata = self._repository.save(definition, user=_username(principal))
        self._audit("save", metadata, principal)
        return metadata

    def save_all(
        self, definitions: Collection[CredentialsDefinition], principal: Principal | None
    ) -> list[Metadata]:
        """Validate every definition, then store all of them or none."""
        errors = Errors("definitions")
        for definition in definitions:
            errors.push_nested_path(definition.name)
            if self.should_deny_write_permission(principal, definition.name):
                errors.reject_value(
                    "name", ErrorCode.UNAUTHORIZED, "Unauthorized to overwrite account"
                )
            self._run_validators(definition, errors, principal)
            errors.pop_nested_path()
        if errors.has_errors():
            logger.info(
                "Rejected batch save of %d account(s): %d error(s)", len(definitions), len(errors)
            )
            raise ValidationFailedError(errors.all_errors)

        views = self._repository.save_all(definitions, user=_username(principal))
        for view in views:
            self._audit("save", view.metadata, principal)
        return [view.metadata for view in views]

    def update(self, definition: CredentialsDefinition, principal: Principal | None) -> Metadata:
        self.validate(definition, principal, CredentialsDefinitionCommand.UPDATE)
        metadata = self._repository.update(definition, user=_username(principal))
        self._audit("update", metadata, principal)
        return metadata

    def update_if_match(
        self,
        definition: CredentialsDefinition,
        if_matches: Collection[str],
        principal: Principal | None,
    ) -> Metadata:
        """Update only if the stored ETag is one of ``if_matches``.

        Raises NoMatchingCredentialsError carrying the current value on mismatch.
        """
        self.validate(definition, principal, CredentialsDefinitionCommand.UPDATE)
        metadata = self._repository.update_if_match(
            definition, if_matches, user=_username(principal)
        )
        self._audit("update", metadata, principal)
        return metadata

    def delete(self, name: str, principal: Principal | None) -> None:
        if self.should_deny_write_permission(principal, name):
            raise AccessDeniedError(f"Unauthorized to delete account '{name}'")
        self._repository.delete(name, user=_username(principal))
        _safe_audit("delete", name, actor=_username(principal) or "anonymous")

    def delete_all(self, names: Collection[str], principal: Principal | None) -> None:
        unauthorized = sorted(n for n in names if self.should_deny_write_permission(principal, n))
        if unauthorized:
            raise AccessDeniedError(f"Unauthorized to delete account(s): {unauthorized}")
        self._repository.delete_all(names, user=_username(principal))
        for name in names:
            _safe_audit("delete", name, actor=_username(principal) or "anonymous")

    def revision_history(self, name: str) -> list[Revision]:
        return self._repository.revision_history(name)

    def _audit(self, operation: str, metadata: Metadata, principal: Principal | None) -> None:
        _safe_audit(
            operation,
            metadata.name,
            actor=_username(principal) or "anonymous",
            details={"type": metadata.type, "etag": metadata.etag},
        )
