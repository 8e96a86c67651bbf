"""
Root-level shared test fixtures.

Inherited by tests/ and by the package-local test suites (credentia/*/tests).
"""

from __future__ import annotations

import uuid

import pytest


@pytest.fixture
def test_prefix():
    """Unique prefix for test isolation."""
    return f"test_{uuid.uuid4().hex[:8]}"


@pytest.fixture
def clean_env(monkeypatch):
    """Remove env vars that leak between tests."""
    for key in [
        "CREDENTIA_DB_HOST",
        "CREDENTIA_DB_PORT",
        "CREDENTIA_DB_NAME",
        "CREDENTIA_DB_USER",
        "CREDENTIA_DB_PASSWORD",
        "CREDENTIA_DB_POOL_MIN",
        "CREDENTIA_DB_POOL_MAX",
        "CREDENTIA_STORAGE_TYPES",
        "CREDENTIA_PARALLEL_LOAD",
        "CREDENTIA_LOAD_WORKERS",
        "CREDENTIA_NAME_PATTERN",
        "CREDENTIA_NAME_PATTERNS",
        "CREDENTIA_SECRETS_DIR",
        "CREDENTIA_DEFINITIONS_FILE",
    ]:
        monkeypatch.delenv(key, raising=False)
