"""Shared fixtures for secrets tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from credentia.secrets.crypto import reset_key_cache
from credentia.secrets.engines import SecretEngineRegistry
from credentia.secrets.local import LocalSecretEngine
from credentia.secrets.manager import CredentialsDefinitionSecretManager, UserSecretManager
from credentia.security import Principal, RoleBasedPermissionEvaluator


@pytest.fixture(autouse=True)
def _clear_cache():
    """Clear cached master keys before each test."""
    reset_key_cache()
    yield
    reset_key_cache()


@pytest.fixture
def secrets_dir(tmp_path: Path) -> Path:
    return tmp_path / "secrets"


@pytest.fixture
def local_engine(secrets_dir: Path) -> LocalSecretEngine:
    return LocalSecretEngine(secrets_dir)


@pytest.fixture
def accounts() -> dict:
    return {}


@pytest.fixture
def secret_manager(local_engine, accounts) -> CredentialsDefinitionSecretManager:
    engines = SecretEngineRegistry()
    engines.register(local_engine)
    evaluator = RoleBasedPermissionEvaluator(account_lookup=accounts.get)
    return CredentialsDefinitionSecretManager(UserSecretManager(engines), evaluator)


@pytest.fixture
def ops_user() -> Principal:
    return Principal("alice", roles=frozenset({"ops"}))


@pytest.fixture
def dev_user() -> Principal:
    return Principal("bob", roles=frozenset({"dev"}))


@pytest.fixture
def root_user() -> Principal:
    return Principal("root", admin=True)
