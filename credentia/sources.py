"""
Definition sources.

A source is an idempotent pull of the full current definition set for one
credentials type. It never reports diffs; the loader computes those.

Usage:
    from credentia.sources import StaticDefinitionSource, YamlDefinitionSource

    static = StaticDefinitionSource("aws", [AwsDefinition(name="prod", ...)])
    from_file = YamlDefinitionSource("aws", Path("accounts.yml"), registry)
    from_file.get_credentials_definitions()
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from pathlib import Path

import yaml

from credentia.definitions import CredentialsDefinition, CredentialsTypeRegistry
from credentia.errors import CredentialsDefinitionError
from credentia.views import CredentialsSource, CredentialsView, Metadata

logger = logging.getLogger(__name__)


class DefinitionSource(ABC):
    """Anything that can produce the current definitions of one type."""

    source: CredentialsSource = CredentialsSource.CONFIG

    @abstractmethod
    def get_credentials_definitions(self) -> list[CredentialsDefinition]: ...

    def find_by_name(self, name: str) -> CredentialsDefinition | None:
        for definition in self.get_credentials_definitions():
            if definition.name == name:
                return definition
        return None


class CredentialsNavigator(DefinitionSource):
    """A source that knows its type name and can list display views."""

    type_name: str

    def list_credentials_views(self) -> list[CredentialsView]:
        return [
            valid_view(definition, self.type_name, self.source)
            for definition in self.get_credentials_definitions()
        ]


def valid_view(
    definition: CredentialsDefinition, type_name: str, source: CredentialsSource
) -> CredentialsView:
    return CredentialsView(
        metadata=Metadata(name=definition.name, type=type_name, source=source),
        spec=definition,
    )


class StaticDefinitionSource(CredentialsNavigator):
    """A fixed list of definitions, typically bound from configuration."""

    def __init__(
        self,
        type_name: str,
        definitions: Iterable[CredentialsDefinition] = (),
        source: CredentialsSource = CredentialsSource.CONFIG,
    ) -> None:
        self.type_name = type_name
        self.source = source
        self._definitions = list(definitions)

    def get_credentials_definitions(self) -> list[CredentialsDefinition]:
        return list(self._definitions)


class YamlDefinitionSource(CredentialsNavigator):
    """Definitions of one type read from a YAML file, reloaded when the file changes.

    The file maps type names to lists of definitions::

        aws:
          - name: prod
            account_id: "123456789012"

    Entries that fail to bind are logged and skipped. An unreadable file keeps
    the last good result.
    """

    def __init__(self, type_name: str, path: Path | str, registry: CredentialsTypeRegistry) -> None:
        self.type_name = type_name
        self.source = CredentialsSource.CONFIG
        self._path = Path(path)
        self._registry = registry
        self._cached: list[CredentialsDefinition] | None = None
        self._mtime: float = 0.0
        self._lock = threading.Lock()

    def get_credentials_definitions(self) -> list[CredentialsDefinition]:
        with self._lock:
            return list(self._load())

    def _load(self) -> list[CredentialsDefinition]:
        try:
            mtime = self._path.stat().st_mtime
        except OSError:
            if self._cached is not None:
                return self._cached
            logger.debug("Definitions file not found at %s", self._path)
            return []

        if self._cached is not None and mtime <= self._mtime:
            return self._cached

        try:
            with open(self._path) as f:
                data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Failed to load definitions file %s: %s", self._path, e)
            return self._cached if self._cached is not None else []

        self._cached = self._bind(data.get(self.type_name) if isinstance(data, dict) else None)
        self._mtime = mtime
        return self._cached

    def _bind(self, entries: Sequence[object] | None) -> list[CredentialsDefinition]:
        definitions: list[CredentialsDefinition] = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                logger.warning("Skipping non-mapping %s entry in %s", self.type_name, self._path)
                continue
            try:
                definitions.append(self._registry.from_dict({**entry, "type": self.type_name}))
            except CredentialsDefinitionError as e:
                logger.warning("Skipping %s entry '%s': %s", self.type_name, entry.get("name"), e)
        return definitions


class CompositeNavigator(CredentialsNavigator):
    """Concatenates several sources of one type. No deduplication."""

    def __init__(self, type_name: str, sources: Sequence[DefinitionSource]) -> None:
        self.type_name = type_name
        self._sources = list(sources)

    def get_credentials_definitions(self) -> list[CredentialsDefinition]:
        return [d for source in self._sources for d in source.get_credentials_definitions()]

    def list_credentials_views(self) -> list[CredentialsView]:
        views: list[CredentialsView] = []
        for source in self._sources:
            if isinstance(source, CredentialsNavigator):
                views.extend(source.list_credentials_views())
            else:
                views.extend(
                    valid_view(d, self.type_name, source.source)
                    for d in source.get_credentials_definitions()
                )
        return views
