"""Checks that a secret reference string can be resolved by the acting principal."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from credentia.errors import (
    InvalidSecretFormatError,
    MissingSecretDataKeyError,
    SecretAccessDeniedError,
    SecretError,
)
from credentia.secrets.manager import CredentialsDefinitionSecretManager
from credentia.secrets.references import KEY_PARAMETER, EncryptedSecret, UserSecretReference
from credentia.security import Principal, is_admin

logger = logging.getLogger(__name__)


class SecretErrorCode(StrEnum):
    INVALID_USER_SECRET_URI = "secrets.user.invalid_uri"
    DENIED_ACCESS_TO_USER_SECRET = "secrets.user.access_denied"
    USER_SECRET_DECRYPTION_FAILURE = "secrets.user.decryption_failure"
    MISSING_USER_SECRET_DATA_KEY = "secrets.user.missing_data_key"
    INVALID_EXTERNAL_SECRET_URI = "secrets.external.invalid_uri"
    DENIED_ACCESS_TO_EXTERNAL_SECRET = "secrets.external.access_denied"
    EXTERNAL_SECRET_DECRYPTION_FAILURE = "secrets.external.decryption_failure"

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_MESSAGES = {
    SecretErrorCode.INVALID_USER_SECRET_URI: "Invalid user secret URI format",
    SecretErrorCode.DENIED_ACCESS_TO_USER_SECRET: "Denied access to user secret",
    SecretErrorCode.USER_SECRET_DECRYPTION_FAILURE: "Unable to decrypt user secret",
    SecretErrorCode.MISSING_USER_SECRET_DATA_KEY: "Missing user secret data for requested key",
    SecretErrorCode.INVALID_EXTERNAL_SECRET_URI: "Invalid external secret URI format",
    SecretErrorCode.DENIED_ACCESS_TO_EXTERNAL_SECRET: "Only admins may define external secrets",
    SecretErrorCode.EXTERNAL_SECRET_DECRYPTION_FAILURE: "Unable to decrypt external secret",
}


@dataclass(frozen=True)
class SecretReferenceError:
    code: str
    message: str


def _error(code: SecretErrorCode, exc: Exception | None = None) -> SecretReferenceError:
    message = str(exc) if exc is not None and str(exc) else code.message
    return SecretReferenceError(code.value, message)


class DefaultSecretReferenceValidator:
    """Resolves a reference on behalf of a principal and reports why it cannot be used.

    Plain strings that are not references validate cleanly.
    """

    def __init__(self, secret_manager: CredentialsDefinitionSecretManager) -> None:
        self._secrets = secret_manager

    def validate(self, value: str, principal: Principal | None) -> SecretReferenceError | None:
        if UserSecretReference.is_user_secret(value):
            return self.validate_user_secret_reference(value, principal)
        if EncryptedSecret.is_encrypted_secret(value):
            return self.validate_external_secret_reference(value, principal)
        return None

    def validate_user_secret_reference(
        self, uri: str, principal: Principal | None
    ) -> SecretReferenceError | None:
        logger.debug("Validating user secret reference '%s'", uri)
        try:
            reference = UserSecretReference.parse(uri)
            secret = self._secrets.get_user_secret(reference)
        except InvalidSecretFormatError as e:
            logger.info("Invalid user secret URI '%s': %s", uri, e)
            return _error(SecretErrorCode.INVALID_USER_SECRET_URI, e)
        except SecretAccessDeniedError:
            logger.info("Access denied to user secret reference %s", uri)
            return _error(SecretErrorCode.DENIED_ACCESS_TO_USER_SECRET)
        except SecretError as e:
            logger.info("Unable to decrypt secret '%s': %s", uri, e)
            return _error(SecretErrorCode.USER_SECRET_DECRYPTION_FAILURE, e)

        if not self._secrets.can_read_user_secret(principal, secret):
            logger.info("Access denied to user secret reference %s", uri)
            return _error(SecretErrorCode.DENIED_ACCESS_TO_USER_SECRET)

        key = reference.params.get(KEY_PARAMETER)
        if key:
            try:
                secret.get_secret_string(key)
            except MissingSecretDataKeyError:
                return _error(SecretErrorCode.MISSING_USER_SECRET_DATA_KEY)
        return None

    def validate_external_secret_reference(
        self, uri: str, principal: Principal | None
    ) -> SecretReferenceError | None:
        logger.debug("Validating external secret reference '%s'", uri)
        if not is_admin(principal):
            return _error(SecretErrorCode.DENIED_ACCESS_TO_EXTERNAL_SECRET)
        try:
            self._secrets.check_external_secret(EncryptedSecret.parse(uri))
        except InvalidSecretFormatError as e:
            logger.info("Invalid external secret URI format for string '%s'", uri)
            return _error(SecretErrorCode.INVALID_EXTERNAL_SECRET_URI, e)
        except SecretError as e:
            logger.info("Unable to decrypt external secret reference '%s': %s", uri, e)
            return _error(SecretErrorCode.EXTERNAL_SECRET_DECRYPTION_FAILURE, e)
        return None
