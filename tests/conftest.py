"""Shared fixtures: sample credential types, a fake secret engine, and a wired store."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from samples import AwsDefinition, FakeSecretEngine, KubeDefinition

from credentia.audit.logger import reset_connection_factory, set_connection_factory
from credentia.config import reset_config
from credentia.definitions import CredentialsTypeRegistry
from credentia.secrets.engines import SecretEngineRegistry
from credentia.secrets.manager import CredentialsDefinitionSecretManager, UserSecretManager
from credentia.secrets.mapper import CredentialsDefinitionMapper
from credentia.security import Principal, RoleBasedPermissionEvaluator
from credentia.storage.memory import InMemoryDefinitionRepository

# ─── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def clean_config():
    """Reset config singleton between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def audit_conn():
    """Route audit writes to a mock connection."""
    conn = MagicMock()
    set_connection_factory(lambda: conn)
    yield conn
    reset_connection_factory()


@pytest.fixture
def admin():
    return Principal("root", admin=True)


@pytest.fixture
def alice():
    return Principal("alice", roles=frozenset({"ops"}))


@pytest.fixture
def bob():
    return Principal("bob", roles=frozenset({"dev"}))


@pytest.fixture
def registry():
    r = CredentialsTypeRegistry()
    r.register("aws", AwsDefinition)
    r.register("kubernetes", KubeDefinition)
    return r


@pytest.fixture
def accounts():
    """Account lookup table backing the evaluator's account-name checks."""
    return {}


@pytest.fixture
def evaluator(accounts):
    return RoleBasedPermissionEvaluator(account_lookup=accounts.get)


@pytest.fixture
def engine():
    return FakeSecretEngine()


@pytest.fixture
def engines(engine):
    r = SecretEngineRegistry()
    r.register(engine)
    return r


@pytest.fixture
def secret_manager(engines, evaluator):
    return CredentialsDefinitionSecretManager(UserSecretManager(engines), evaluator)


@pytest.fixture
def mapper(registry, secret_manager):
    return CredentialsDefinitionMapper(registry, secret_manager)


@pytest.fixture
def store(mapper):
    return InMemoryDefinitionRepository(mapper)
