"""Tests for the live credentials cache and its lifecycle events."""

from unittest.mock import MagicMock

import pytest
from samples import AwsDefinition, FakeCredentials, KubeDefinition

from credentia.repository import CompositeCredentialsRepository, MapBackedCredentialsRepository


def _aws(name, account_id="1"):
    return FakeCredentials(name, "aws", AwsDefinition(name=name, account_id=account_id))


class TestMapBackedRepository:
    def test_save_new_fires_added(self):
        handler = MagicMock()
        repo = MapBackedCredentialsRepository("aws", handler)
        creds = _aws("prod")

        assert repo.save(creds) is None
        handler.credentials_added.assert_called_once_with(creds)
        handler.credentials_updated.assert_not_called()
        assert repo.get_one("prod") is creds
        assert repo.has("prod")

    def test_save_existing_fires_updated(self):
        handler = MagicMock()
        repo = MapBackedCredentialsRepository("aws", handler)
        first, second = _aws("prod", "1"), _aws("prod", "2")
        repo.save(first)

        assert repo.save(second) is first
        handler.credentials_updated.assert_called_once_with(second)
        assert repo.get_one("prod") is second

    def test_delete_fires_only_when_present(self):
        handler = MagicMock()
        repo = MapBackedCredentialsRepository("aws", handler)
        creds = _aws("prod")
        repo.save(creds)

        repo.delete("missing")
        handler.credentials_deleted.assert_not_called()

        repo.delete("prod")
        handler.credentials_deleted.assert_called_once_with(creds)
        assert not repo.has("prod")
        assert repo.get_one("prod") is None

    def test_no_handler(self):
        repo = MapBackedCredentialsRepository("aws")
        repo.save(_aws("a1b"))
        repo.save(_aws("a2b"))
        assert sorted(c.name for c in repo.get_all()) == ["a1b", "a2b"]
        repo.delete("a1b")
        assert [c.name for c in repo.get_all()] == ["a2b"]


class TestCompositeRepository:
    @pytest.fixture
    def composite(self):
        aws = MapBackedCredentialsRepository("aws")
        kube = MapBackedCredentialsRepository("kubernetes")
        aws.save(_aws("shared"))
        kube.save(FakeCredentials("shared", "kubernetes", KubeDefinition(name="shared")))
        kube.save(FakeCredentials("cluster", "kubernetes", KubeDefinition(name="cluster")))
        return CompositeCredentialsRepository([aws, kube])

    def test_get_credentials(self, composite):
        assert composite.get_credentials("cluster", "kubernetes").type == "kubernetes"

    def test_get_credentials_errors(self, composite):
        with pytest.raises(ValueError, match="must be supplied"):
            composite.get_credentials("", "aws")
        with pytest.raises(ValueError, match="No credentials of type"):
            composite.get_credentials("cluster", "gce")
        with pytest.raises(ValueError, match="cannot be found"):
            composite.get_credentials("cluster", "aws")

    def test_first_with_name_follows_registration_order(self, composite):
        assert composite.get_first_credentials_with_name("shared").type == "aws"
        assert composite.get_first_credentials_with_name("nope") is None

    def test_all_and_has(self, composite):
        assert len(composite.get_all_credentials()) == 3
        assert composite.has("cluster")
        assert not composite.has("nope")
        assert [r.type_name for r in composite.repositories()] == ["aws", "kubernetes"]
