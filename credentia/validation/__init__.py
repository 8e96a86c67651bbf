"""Validation of credentials definitions before they are stored."""

from credentia.validation.errors import Errors, FieldError
from credentia.validation.validators import (
    AccessControlledDefinitionValidator,
    CredentialsDefinitionNameValidator,
    CredentialsDefinitionValidator,
    UserSecretsValidator,
)

__all__ = [
    "AccessControlledDefinitionValidator",
    "CredentialsDefinitionNameValidator",
    "CredentialsDefinitionValidator",
    "Errors",
    "FieldError",
    "UserSecretsValidator",
]
