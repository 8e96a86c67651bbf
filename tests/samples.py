"""Sample credential types and a fake secret engine shared by the test suite."""

from __future__ import annotations

from dataclasses import dataclass

from credentia.definitions import AccessControlledDefinition, CredentialsDefinition
from credentia.errors import InvalidSecretFormatError, SecretDecryptionError
from credentia.secrets.engines import UserSecret, UserSecretMetadata
from credentia.secrets.references import EncryptedSecret, UserSecretReference


class AwsDefinition(AccessControlledDefinition):
    account_id: str = "000000000000"
    secret_key: str | None = None
    tags: dict[str, str] = {}


class KubeDefinition(CredentialsDefinition):
    context: str = "default"


@dataclass(frozen=True)
class FakeCredentials:
    name: str
    type: str
    definition: CredentialsDefinition


def parse_aws(definition: CredentialsDefinition) -> FakeCredentials:
    return FakeCredentials(definition.name, "aws", definition)


def parse_kube(definition: CredentialsDefinition) -> FakeCredentials:
    return FakeCredentials(definition.name, "kubernetes", definition)


class FakeSecretEngine:
    """In-memory engine. ``s`` selects the secret (default ``default``)."""

    identifier = "vault"

    def __init__(self) -> None:
        self.secrets: dict[str, UserSecret] = {}
        self.external: dict[str, str] = {}
        self.decrypt_calls = 0

    def put(self, data: dict[str, str], *, roles=(), name: str = "default") -> None:
        self.secrets[name] = UserSecret(UserSecretMetadata(roles=list(roles)), dict(data))

    def validate_user_secret(self, reference: UserSecretReference) -> None:
        if "bad" in reference.params:
            raise InvalidSecretFormatError("bad parameter")

    def decrypt_user_secret(self, reference: UserSecretReference) -> UserSecret:
        self.decrypt_calls += 1
        name = reference.params.get("s", "default")
        try:
            return self.secrets[name]
        except KeyError:
            raise SecretDecryptionError(f"no secret {name}") from None

    def validate_external_secret(self, secret: EncryptedSecret) -> None:
        if "s" not in secret.params:
            raise InvalidSecretFormatError("missing s")

    def decrypt_external_secret(self, secret: EncryptedSecret) -> bytes:
        try:
            return self.external[secret.params["s"]].encode("utf-8")
        except KeyError:
            raise SecretDecryptionError("no external secret") from None
