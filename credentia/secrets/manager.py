"""
Secret resolution and time-of-use authorization.

``UserSecretManager`` turns a parsed reference into secret material through
the engine registry. ``CredentialsDefinitionSecretManager`` adds bookkeeping:
every user secret resolved on behalf of an account is remembered, so that
``can_access_account_with_secrets`` can re-check READ on each of those secrets
whenever the account is used, long after the definition was loaded.

Usage:
    manager = CredentialsDefinitionSecretManager(UserSecretManager(engines), evaluator)
    password = manager.get_user_secret_string(UserSecretReference.parse(uri), "acct1")
    manager.can_access_account_with_secrets(principal, "acct1")
"""

from __future__ import annotations

import logging
import threading

from credentia.errors import SecretDecryptionError, SecretError
from credentia.secrets.engines import SecretEngine, SecretEngineRegistry, UserSecret
from credentia.secrets.references import KEY_PARAMETER, EncryptedSecret, UserSecretReference
from credentia.security import Authorization, PermissionEvaluator, Principal, is_admin

logger = logging.getLogger(__name__)


class UserSecretManager:
    def __init__(self, registry: SecretEngineRegistry) -> None:
        self._registry = registry

    def _engine(self, identifier: str) -> SecretEngine:
        engine = self._registry.get_engine(identifier)
        if engine is None:
            raise SecretDecryptionError(f"Unknown secret engine identifier: {identifier}")
        return engine

    def get_user_secret(self, reference: UserSecretReference) -> UserSecret:
        engine = self._engine(reference.engine_identifier)
        engine.validate_user_secret(reference)
        return engine.decrypt_user_secret(reference)

    def get_external_secret(self, secret: EncryptedSecret) -> bytes:
        engine = self._engine(secret.engine_identifier)
        engine.validate_external_secret(secret)
        return engine.decrypt_external_secret(secret)

    def get_external_secret_string(self, secret: EncryptedSecret) -> str:
        return self.get_external_secret(secret).decode("utf-8")


class CredentialsDefinitionSecretManager:
    def __init__(
        self, user_secret_manager: UserSecretManager, permission_evaluator: PermissionEvaluator
    ) -> None:
        self._secrets = user_secret_manager
        self._evaluator = permission_evaluator
        self._refs_by_account: dict[str, set[UserSecretReference]] = {}
        self._lock = threading.Lock()

    # ─── Resolution ──────────────────────────────────────────────────────

    def get_user_secret(self, reference: UserSecretReference) -> UserSecret:
        return self._secrets.get_user_secret(reference)

    def get_user_secret_string(self, reference: UserSecretReference, account_name: str) -> str:
        """Resolve one value of a user secret for an account and remember the use.

        Raises:
            SecretDecryptionError: unknown engine, engine failure, or missing data key.
        """
        secret = self.get_user_secret(reference)
        with self._lock:
            self._refs_by_account.setdefault(account_name, set()).add(reference)
        return secret.get_secret_string(reference.params.get(KEY_PARAMETER, ""))

    def get_external_secret_string(self, secret: EncryptedSecret) -> str:
        return self._secrets.get_external_secret_string(secret)

    def check_external_secret(self, secret: EncryptedSecret) -> None:
        self._secrets.get_external_secret(secret)

    # ─── Tracking ────────────────────────────────────────────────────────

    def is_tracking_account(self, account_name: str) -> bool:
        with self._lock:
            return account_name in self._refs_by_account

    def tracked_references(self, account_name: str) -> set[UserSecretReference]:
        with self._lock:
            return set(self._refs_by_account.get(account_name, ()))

    # ─── Authorization ───────────────────────────────────────────────────

    def can_access_account_with_secrets(self, principal: Principal | None, account_name: str) -> bool:
        """Admins always. Everyone else needs READ on every secret the account
        resolved, checked now rather than when it was resolved, plus WRITE on
        the account itself."""
        if is_admin(principal):
            return True
        username = principal.username if principal else "anonymous"
        for reference in self.tracked_references(account_name):
            try:
                secret = self.get_user_secret(reference)
            except SecretError as e:
                logger.warning(
                    "Denying %s access to account '%s': %s is unavailable: %s",
                    username,
                    account_name,
                    reference,
                    e,
                )
                return False
            if not self.can_read_user_secret(principal, secret):
                logger.info(
                    "Denying %s access to account '%s': no READ on %s",
                    username,
                    account_name,
                    reference,
                )
                return False
        return self._evaluator.has_permission(
            principal, account_name, Authorization.WRITE, target_type="account"
        )

    def can_read_user_secret(self, principal: Principal | None, secret: UserSecret) -> bool:
        return self._evaluator.has_permission(principal, secret, Authorization.READ)
