"""Tests for the in-memory definition store: ETags, revisions, preconditions."""

from dataclasses import replace

import pytest
from samples import AwsDefinition, KubeDefinition, parse_aws

from credentia.composite import CompositeDefinitionSource
from credentia.definitions import CredentialsDefinition
from credentia.errors import (
    DuplicateCredentialsDefinitionError,
    InvalidCredentialsTypeError,
    NoMatchingCredentialsError,
    NoSuchCredentialsDefinitionError,
)
from credentia.loader import BasicCredentialsLoader
from credentia.metrics import MetricsRegistry
from credentia.repository import MapBackedCredentialsRepository
from credentia.storage.base import (
    DESERIALIZATION_ERROR_METRIC,
    SECRET_ERROR_METRIC,
    compute_etag,
)
from credentia.storage.memory import InMemoryDefinitionRepository
from credentia.views import CredentialsSource, ErrorCode


class TestCreateAndRead:
    def test_create_returns_metadata(self, store, mapper):
        d = AwsDefinition(name="prod", account_id="1")
        meta = store.create(d, user="alice")
        assert meta.name == "prod"
        assert meta.type == "aws"
        assert meta.source == CredentialsSource.STORAGE
        assert meta.etag == compute_etag(mapper.serialize(d))
        assert meta.last_modified > 0
        assert store.find_by_name("prod") == d
        assert store.find_metadata_by_name("prod") == meta

    def test_create_duplicate(self, store):
        original = AwsDefinition(name="prod", account_id="1")
        meta = store.create(original)
        with pytest.raises(DuplicateCredentialsDefinitionError) as exc_info:
            store.create(AwsDefinition(name="prod", account_id="2"))
        assert exc_info.value.existing == original
        assert exc_info.value.etag == meta.etag
        assert exc_info.value.code == "credentials.duplicate_name"

    def test_missing(self, store):
        assert store.find_by_name("nope") is None
        assert store.find_metadata_by_name("nope") is None

    def test_list_by_type(self, store):
        store.create(AwsDefinition(name="a-one"))
        store.create(KubeDefinition(name="k-one"))
        assert [d.name for d in store.list_by_type("aws")] == ["a-one"]
        assert [d.name for d in store.list_by_type("kubernetes")] == ["k-one"]

    def test_reads_resolve_secrets(self, store, engine):
        engine.put({"password": "hunter2"}, roles=["ops"])
        store.create(AwsDefinition(name="prod", secret_key="secret://vault?k=password"))
        assert store.find_by_name("prod").secret_key == "hunter2"
        [view] = store.list_credentials_views("aws")
        assert view.spec.secret_key == "secret://vault?k=password"

    def test_unresolvable_secret_skipped(self, store, engine):
        engine.put({"password": "hunter2"})
        store.create(AwsDefinition(name="good", secret_key="secret://vault?k=password"))
        store.create(AwsDefinition(name="broken", secret_key="secret://vault?s=missing"))

        assert store.find_by_name("broken") is None
        assert [d.name for d in store.list_by_type("aws")] == ["good"]
        assert store.find_metadata_by_name("broken") is not None
        assert len(store.list_credentials_views("aws")) == 2

    def test_skipped_reads_counted(self, mapper):
        metrics = MetricsRegistry()
        store = InMemoryDefinitionRepository(mapper, metrics=metrics)
        store.create(AwsDefinition(name="broken", secret_key="secret://vault?s=missing"))
        store.create(AwsDefinition(name="prod"))
        store._records["prod"] = replace(store._records["prod"], body='{"type": "aws"}')

        assert store.list_by_type("aws") == []
        assert metrics.count(SECRET_ERROR_METRIC, type="aws") == 1
        assert metrics.count(DESERIALIZATION_ERROR_METRIC, type="aws") == 1

    def test_healthy_accounts_still_load(self, store, engine):
        engine.put({"password": "hunter2"})
        store.create(AwsDefinition(name="good", secret_key="secret://vault?k=password"))
        store.create(AwsDefinition(name="broken", secret_key="secret://vault?s=missing"))
        repo = MapBackedCredentialsRepository("aws")

        BasicCredentialsLoader(
            CompositeDefinitionSource(store, "aws"), parse_aws, repo, type_name="aws"
        ).load()

        assert repo.has("good")
        assert repo.get_one("good").definition.secret_key == "hunter2"
        assert not repo.has("broken")

    def test_views_report_metadata(self, store):
        meta = store.create(AwsDefinition(name="prod"))
        [view] = store.list_credentials_views("aws")
        assert view.metadata == meta
        assert view.status.valid

    def test_unknown_names(self, store):
        store.create(AwsDefinition(name="prod"))
        assert store.get_unknown_names(["prod", "dev", "qa"]) == {"dev", "qa"}


class TestUpdate:
    def test_update(self, store):
        store.create(AwsDefinition(name="prod", account_id="1"))
        meta = store.update(AwsDefinition(name="prod", account_id="2"))
        assert store.find_by_name("prod").account_id == "2"
        assert store.find_metadata_by_name("prod").etag == meta.etag

    def test_update_missing(self, store):
        with pytest.raises(NoSuchCredentialsDefinitionError):
            store.update(AwsDefinition(name="prod"))

    def test_update_type_change_rejected(self, store):
        store.create(AwsDefinition(name="shared"))
        with pytest.raises(InvalidCredentialsTypeError):
            store.update(KubeDefinition(name="shared"))
        assert isinstance(store.find_by_name("shared"), AwsDefinition)

    def test_update_if_match(self, store):
        meta = store.create(AwsDefinition(name="prod", account_id="1"))
        new_meta = store.update_if_match(AwsDefinition(name="prod", account_id="2"), [meta.etag])
        assert new_meta.etag != meta.etag

    def test_update_if_match_stale_returns_current(self, store):
        current = AwsDefinition(name="prod", account_id="1")
        meta = store.create(current)
        with pytest.raises(NoMatchingCredentialsError) as exc_info:
            store.update_if_match(AwsDefinition(name="prod", account_id="2"), ["stale"])
        assert exc_info.value.existing == current
        assert exc_info.value.etag == meta.etag
        assert exc_info.value.last_modified == meta.last_modified
        assert store.find_by_name("prod") == current

    def test_update_if_match_type_checked_before_etag(self, store):
        meta = store.create(AwsDefinition(name="shared"))
        with pytest.raises(InvalidCredentialsTypeError):
            store.update_if_match(KubeDefinition(name="shared"), [meta.etag])

    def test_save_upserts(self, store):
        store.save(AwsDefinition(name="prod", account_id="1"))
        store.save(AwsDefinition(name="prod", account_id="2"))
        assert store.find_by_name("prod").account_id == "2"


class TestBatch:
    def test_save_all(self, store):
        views = store.save_all([AwsDefinition(name="a-one"), KubeDefinition(name="k-one")])
        assert [v.metadata.type for v in views] == ["aws", "kubernetes"]
        assert store.find_by_name("k-one") == KubeDefinition(name="k-one")

    def test_save_all_unregistered_type_stores_nothing(self, store):
        class Orphan(CredentialsDefinition):
            pass

        with pytest.raises(InvalidCredentialsTypeError):
            store.save_all([AwsDefinition(name="a-one"), Orphan(name="orphan")])
        assert store.find_metadata_by_name("a-one") is None

    def test_delete_all_missing_deletes_nothing(self, store):
        store.create(AwsDefinition(name="a-one"))
        with pytest.raises(NoSuchCredentialsDefinitionError) as exc_info:
            store.delete_all(["a-one", "ghost"])
        assert exc_info.value.names == ["ghost"]
        assert store.find_metadata_by_name("a-one") is not None

    def test_delete_all(self, store):
        store.create(AwsDefinition(name="a-one"))
        store.create(AwsDefinition(name="a-two"))
        store.delete_all(["a-one", "a-two"], user="alice")
        assert store.list_by_type("aws") == []


class TestRevisions:
    def test_ledger_versions(self, store):
        v1 = AwsDefinition(name="prod", account_id="1")
        v2 = AwsDefinition(name="prod", account_id="2")
        v4 = AwsDefinition(name="prod", account_id="4")
        store.create(v1, user="alice")
        store.update(v2, user="bob")
        store.delete("prod", user="carol")
        store.create(v4, user="dave")

        history = store.revision_history("prod")
        assert [r.version for r in history] == [4, 3, 2, 1]
        assert [r.account for r in reversed(history)] == [v1, v2, None, v4]
        assert [r.user for r in reversed(history)] == ["alice", "bob", "carol", "dave"]
        assert history[1].deleted
        assert not history[0].deleted
        assert history[0].timestamp >= history[-1].timestamp

    def test_history_does_not_resolve_secrets(self, store, engine):
        store.create(AwsDefinition(name="prod", secret_key="secret://vault?s=missing"))
        [revision] = store.revision_history("prod")
        assert revision.account.secret_key == "secret://vault?s=missing"
        assert engine.decrypt_calls == 0

    def test_unknown_name_has_empty_history(self, store):
        assert store.revision_history("nope") == []

    def test_delete_missing(self, store):
        with pytest.raises(NoSuchCredentialsDefinitionError):
            store.delete("nope")


class TestCorruptBodies:
    def test_invalid_json_view(self, store):
        store.create(AwsDefinition(name="prod"))
        record = store._records["prod"]
        store._records["prod"] = replace(record, body="{not json")

        [view] = store.list_credentials_views("aws")
        assert not view.status.valid
        assert view.status.errors[0].code == ErrorCode.INVALID_SYNTAX
        assert view.spec == {"data": "{not json"}
        assert view.metadata.name == "prod"
