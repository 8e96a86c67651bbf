"""
Storage-backed definitions merged with configuration-backed ones.

Storage definitions come first, so they win any name clash. The losing
definition is dropped and the clash is logged once per name until the
duplicate goes away.

Usage:
    source = CompositeDefinitionSource(store, "aws", [YamlDefinitionSource(...)])
    loader = BasicCredentialsLoader(source, parse_aws, repository, type_name="aws")
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from credentia.definitions import CredentialsDefinition
from credentia.metrics import MetricsRegistry
from credentia.sources import CredentialsNavigator, DefinitionSource, valid_view
from credentia.storage.base import DefinitionRepository
from credentia.views import CredentialsSource, CredentialsView

logger = logging.getLogger(__name__)

DUPLICATE_METRIC = "credentials.duplicate"


class CompositeDefinitionSource(CredentialsNavigator):
    source = CredentialsSource.STORAGE

    def __init__(
        self,
        repository: DefinitionRepository,
        type_name: str,
        config_sources: Sequence[DefinitionSource] = (),
        *,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.type_name = type_name
        self._repository = repository
        self._config_sources = list(config_sources)
        self._metrics = metrics
        self._warned: set[str] = set()
        self._lock = threading.Lock()

    def get_credentials_definitions(self) -> list[CredentialsDefinition]:
        candidates = list(self._repository.list_by_type(self.type_name))
        for source in self._config_sources:
            candidates.extend(source.get_credentials_definitions())

        seen: set[str] = set()
        duplicates: set[str] = set()
        merged: list[CredentialsDefinition] = []
        for definition in candidates:
            if definition.name in seen:
                duplicates.add(definition.name)
                continue
            seen.add(definition.name)
            merged.append(definition)

        with self._lock:
            for name in sorted(duplicates - self._warned):
                logger.warning(
                    "Duplicate account name detected (%s). Skipping this definition.", name
                )
                if self._metrics is not None:
                    self._metrics.increment(DUPLICATE_METRIC, type=self.type_name)
            # Forget resolved duplicates so a reintroduced one warns again
            self._warned = duplicates
        return merged

    def find_by_name(self, name: str) -> CredentialsDefinition | None:
        definition = self._repository.find_by_name(name)
        if definition is not None:
            return definition
        for source in self._config_sources:
            definition = source.find_by_name(name)
            if definition is not None:
                return definition
        return None

    def list_credentials_views(self) -> list[CredentialsView]:
        views = list(self._repository.list_credentials_views(self.type_name))
        for source in self._config_sources:
            if isinstance(source, CredentialsNavigator):
                views.extend(source.list_credentials_views())
            else:
                views.extend(
                    valid_view(d, self.type_name, source.source)
                    for d in source.get_credentials_definitions()
                )
        return views
