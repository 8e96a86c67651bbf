"""Tests for static, YAML-backed and composite definition sources."""

import os

import pytest
from samples import AwsDefinition, KubeDefinition

from credentia.sources import CompositeNavigator, StaticDefinitionSource, YamlDefinitionSource
from credentia.views import CredentialsSource


def _write(path, text, mtime):
    path.write_text(text)
    os.utime(path, (mtime, mtime))


class TestStaticSource:
    def test_definitions_and_find(self):
        a, b = KubeDefinition(name="a-one"), KubeDefinition(name="b-two")
        source = StaticDefinitionSource("kubernetes", [a, b])
        assert source.get_credentials_definitions() == [a, b]
        assert source.find_by_name("b-two") == b
        assert source.find_by_name("zzz") is None

    def test_views(self):
        source = StaticDefinitionSource("kubernetes", [KubeDefinition(name="a-one")])
        [view] = source.list_credentials_views()
        assert view.metadata.name == "a-one"
        assert view.metadata.type == "kubernetes"
        assert view.metadata.source == CredentialsSource.CONFIG
        assert view.status.valid
        assert view.spec == KubeDefinition(name="a-one")


class TestYamlSource:
    @pytest.fixture
    def path(self, tmp_path):
        return tmp_path / "definitions.yml"

    def test_loads_type_section(self, path, registry):
        _write(
            path,
            "aws:\n"
            "  - name: prod\n"
            "    account_id: '123'\n"
            "kubernetes:\n"
            "  - name: main\n",
            1_000,
        )
        source = YamlDefinitionSource("aws", path, registry)
        assert source.get_credentials_definitions() == [AwsDefinition(name="prod", account_id="123")]
        assert source.find_by_name("prod").account_id == "123"

    def test_missing_file(self, path, registry):
        assert YamlDefinitionSource("aws", path, registry).get_credentials_definitions() == []

    def test_bad_entries_skipped(self, path, registry):
        _write(path, "aws:\n  - name: good\n  - name: bad\n    nope: 1\n  - just-a-string\n", 1_000)
        source = YamlDefinitionSource("aws", path, registry)
        assert [d.name for d in source.get_credentials_definitions()] == ["good"]

    def test_reload_on_mtime_change(self, path, registry):
        _write(path, "aws:\n  - name: first\n", 1_000)
        source = YamlDefinitionSource("aws", path, registry)
        assert [d.name for d in source.get_credentials_definitions()] == ["first"]

        _write(path, "aws:\n  - name: second\n", 1_000)
        assert [d.name for d in source.get_credentials_definitions()] == ["first"]

        _write(path, "aws:\n  - name: second\n", 2_000)
        assert [d.name for d in source.get_credentials_definitions()] == ["second"]

    def test_invalid_yaml_keeps_last_good(self, path, registry):
        _write(path, "aws:\n  - name: first\n", 1_000)
        source = YamlDefinitionSource("aws", path, registry)
        source.get_credentials_definitions()

        _write(path, "aws: [unclosed\n", 2_000)
        assert [d.name for d in source.get_credentials_definitions()] == ["first"]

    def test_non_mapping_document(self, path, registry):
        _write(path, "- just\n- a list\n", 1_000)
        assert YamlDefinitionSource("aws", path, registry).get_credentials_definitions() == []


class TestCompositeNavigator:
    def test_concatenates_without_dedup(self):
        one = StaticDefinitionSource("kubernetes", [KubeDefinition(name="dup")])
        two = StaticDefinitionSource(
            "kubernetes", [KubeDefinition(name="dup", context="x")], source=CredentialsSource.PLUGIN
        )
        nav = CompositeNavigator("kubernetes", [one, two])
        assert len(nav.get_credentials_definitions()) == 2
        views = nav.list_credentials_views()
        assert [v.metadata.source for v in views] == [
            CredentialsSource.CONFIG,
            CredentialsSource.PLUGIN,
        ]

    def test_empty(self):
        nav = CompositeNavigator("kubernetes", [])
        assert nav.get_credentials_definitions() == []
        assert nav.list_credentials_views() == []
