"""
Principals, authorizations, and the permission evaluator contract.

A Principal is the authenticated caller. Targets that can answer
"may this principal do X to me?" implement ``is_authorized`` (definitions with
a ``permissions`` field, user secrets with roles). The evaluator is the single
place the rest of the package asks permission questions through.

Usage:
    from credentia.security import Authorization, Principal, RoleBasedPermissionEvaluator

    evaluator = RoleBasedPermissionEvaluator()
    alice = Principal("alice", roles=frozenset({"ops"}))
    evaluator.has_permission(alice, definition, Authorization.WRITE)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class Authorization(StrEnum):
    READ = "READ"
    WRITE = "WRITE"
    EXECUTE = "EXECUTE"
    CREATE = "CREATE"


@dataclass(frozen=True)
class Principal:
    """An authenticated caller."""

    username: str
    roles: frozenset[str] = field(default_factory=frozenset)
    admin: bool = False

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return any(role in self.roles for role in roles)


# Used for configuration-time work (e.g. validating static definitions).
SYSTEM_PRINCIPAL = Principal("system", admin=True)


def is_admin(principal: Principal | None) -> bool:
    return principal is not None and principal.admin


@runtime_checkable
class AccessControlled(Protocol):
    def is_authorized(self, principal: Principal, authorization: Authorization) -> bool: ...


class PermissionEvaluator(Protocol):
    def has_permission(
        self,
        principal: Principal | None,
        target: Any,
        authorization: Authorization,
        target_type: str | None = None,
    ) -> bool: ...


class RoleBasedPermissionEvaluator:
    """Role-based evaluator.

    Admins may do anything. Targets implementing ``AccessControlled`` decide
    for themselves. When ``target_type == "account"`` the target is an account
    name, resolved through ``account_lookup``; unknown accounts are denied.
    Any other target is open.
    """

    def __init__(self, account_lookup: Callable[[str], Any] | None = None) -> None:
        self._account_lookup = account_lookup

    def has_permission(
        self,
        principal: Principal | None,
        target: Any,
        authorization: Authorization,
        target_type: str | None = None,
    ) -> bool:
        if principal is None:
            return False
        if principal.admin:
            return True
        if target_type == "account":
            if self._account_lookup is None:
                return False
            account = self._account_lookup(str(target))
            if account is None:
                logger.debug("Permission check on unknown account '%s'", target)
                return False
            target = account
        if isinstance(target, AccessControlled):
            return target.is_authorized(principal, authorization)
        return True
