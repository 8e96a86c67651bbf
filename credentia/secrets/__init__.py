"""
Credentia secrets: references in definitions, resolved through pluggable engines.

Public API:
    UserSecretReference.parse(uri)   → secret://<engine>?k=v
    EncryptedSecret.parse(value)     → encrypted:<engine>!k:v
    SecretEngineRegistry             → engines by identifier
    LocalSecretEngine                → AES-256-GCM files on disk
    CredentialsDefinitionSecretManager → resolve + time-of-use access checks
"""

from __future__ import annotations

from credentia.secrets.engines import (
    SecretEngine,
    SecretEngineRegistry,
    UserSecret,
    UserSecretMetadata,
)
from credentia.secrets.local import LocalSecretEngine
from credentia.secrets.manager import CredentialsDefinitionSecretManager, UserSecretManager
from credentia.secrets.references import EncryptedSecret, UserSecretReference

__all__ = [
    "CredentialsDefinitionSecretManager",
    "EncryptedSecret",
    "LocalSecretEngine",
    "SecretEngine",
    "SecretEngineRegistry",
    "UserSecret",
    "UserSecretManager",
    "UserSecretMetadata",
    "UserSecretReference",
]
