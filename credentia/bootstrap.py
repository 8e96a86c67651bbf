"""
Explicit startup wiring for credential types.

Each type is registered once with its definition class and parser. The
context then builds, in order, the live repository, the definition source
(storage merged with configuration when storage is enabled for the type)
and the loader.

Usage:
    ctx = CredentialsContext()
    ctx.register_type(CredentialsTypeProperties("aws", AwsDefinition, parse_aws))
    ctx.load_all()
    ctx.repository("aws").get_one("prod")
    ctx.service().create(AwsDefinition(name="staging", ...), principal)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from credentia.composite import CompositeDefinitionSource
from credentia.config import Config, get_config
from credentia.definitions import CredentialsDefinition, CredentialsTypeRegistry
from credentia.inspector import CredentialsInspector
from credentia.loader import BasicCredentialsLoader, CredentialsParser
from credentia.metrics import MetricsRegistry
from credentia.repository import (
    CompositeCredentialsRepository,
    CredentialsLifecycleHandler,
    MapBackedCredentialsRepository,
)
from credentia.secrets.engines import SecretEngine, SecretEngineRegistry
from credentia.secrets.local import LocalSecretEngine
from credentia.secrets.manager import CredentialsDefinitionSecretManager, UserSecretManager
from credentia.secrets.mapper import CredentialsDefinitionMapper
from credentia.secrets.validation import DefaultSecretReferenceValidator
from credentia.security import PermissionEvaluator, RoleBasedPermissionEvaluator
from credentia.service import CredentialsDefinitionService
from credentia.sources import (
    CompositeNavigator,
    CredentialsNavigator,
    DefinitionSource,
    StaticDefinitionSource,
    YamlDefinitionSource,
)
from credentia.storage.base import DefinitionRepository
from credentia.storage.memory import InMemoryDefinitionRepository
from credentia.validation.validators import (
    AccessControlledDefinitionValidator,
    CredentialsDefinitionNameValidator,
    CredentialsDefinitionValidator,
    UserSecretsValidator,
)

logger = logging.getLogger(__name__)

# Called as factory(mapper, metrics=registry)
StoreFactory = Callable[..., DefinitionRepository]


@dataclass
class CredentialsTypeProperties:
    """Everything needed to load one credential type.

    ``parallel=None`` defers to ``Config.parallel_load``.
    """

    type_name: str
    definition_class: type[CredentialsDefinition]
    parser: CredentialsParser
    definitions: Sequence[CredentialsDefinition] = ()
    handler: CredentialsLifecycleHandler | None = None
    parallel: bool | None = None


def _default_store(config: Config) -> StoreFactory:
    if config.storage_types:
        from credentia.storage.postgres import PostgresDefinitionRepository

        return PostgresDefinitionRepository
    return InMemoryDefinitionRepository


class CredentialsContext:
    """Owns the shared collaborators and the per-type loaders."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        store_factory: StoreFactory | None = None,
        secret_engines: Iterable[SecretEngine] | None = None,
        metrics: MetricsRegistry | None = None,
        permission_evaluator: PermissionEvaluator | None = None,
    ) -> None:
        self.config = config or get_config()
        self.metrics = metrics or MetricsRegistry()
        self.registry = CredentialsTypeRegistry()
        self.permission_evaluator = permission_evaluator or RoleBasedPermissionEvaluator(
            account_lookup=self.find_account
        )

        self.engines = SecretEngineRegistry()
        if secret_engines is None:
            secret_engines = [LocalSecretEngine(self.config.secrets_dir)]
        for engine in secret_engines:
            self.engines.register(engine)

        self.secret_manager = CredentialsDefinitionSecretManager(
            UserSecretManager(self.engines), self.permission_evaluator
        )
        self.mapper = CredentialsDefinitionMapper(self.registry, self.secret_manager)
        store_factory = store_factory or _default_store(self.config)
        self.store = store_factory(self.mapper, metrics=self.metrics)
        self.credentials = CompositeCredentialsRepository()

        self._loaders: dict[str, BasicCredentialsLoader] = {}
        self._repositories: dict[str, MapBackedCredentialsRepository] = {}
        self._sources: dict[str, CredentialsNavigator] = {}

    # ─── Registration ────────────────────────────────────────────────────

    def register_type(self, properties: CredentialsTypeProperties) -> BasicCredentialsLoader:
        type_name = properties.type_name
        if type_name in self._loaders:
            raise ValueError(f"Credentials type '{type_name}' already registered")

        self.registry.register(type_name, properties.definition_class)

        repository = MapBackedCredentialsRepository(type_name, properties.handler)
        self.credentials.register_repository(repository)

        config_sources: list[DefinitionSource] = []
        if properties.definitions:
            config_sources.append(StaticDefinitionSource(type_name, properties.definitions))
        if self.config.definitions_file is not None:
            config_sources.append(
                YamlDefinitionSource(type_name, self.config.definitions_file, self.registry)
            )

        source: CredentialsNavigator
        if self.config.storage_enabled(type_name):
            source = CompositeDefinitionSource(
                self.store, type_name, config_sources, metrics=self.metrics
            )
        else:
            source = CompositeNavigator(type_name, config_sources)

        parallel = properties.parallel
        if parallel is None:
            parallel = self.config.parallel_load
        loader = BasicCredentialsLoader(
            source,
            properties.parser,
            repository,
            parallel=parallel,
            type_name=type_name,
            max_workers=self.config.load_workers,
            metrics=self.metrics,
        )

        self._repositories[type_name] = repository
        self._sources[type_name] = source
        self._loaders[type_name] = loader
        logger.info(
            "Registered credentials type %s (storage=%s, parallel=%s)",
            type_name,
            self.config.storage_enabled(type_name),
            parallel,
        )
        return loader

    # ─── Lookups ─────────────────────────────────────────────────────────

    def type_names(self) -> list[str]:
        return sorted(self._loaders)

    def loader(self, type_name: str) -> BasicCredentialsLoader:
        return self._loaders[type_name]

    def repository(self, type_name: str) -> MapBackedCredentialsRepository:
        return self._repositories[type_name]

    def navigators(self) -> list[CredentialsNavigator]:
        return [self._sources[t] for t in self.type_names()]

    def find_account(self, name: str) -> Any | None:
        """Resolve an account name to its last loaded definition, else its live credentials."""
        if not name:
            return None
        for type_name in self.type_names():
            definition = self._loaders[type_name].loaded_definitions.get(name)
            if definition is not None:
                return definition
        return self.credentials.get_first_credentials_with_name(name)

    # ─── Operations ──────────────────────────────────────────────────────

    def load_all(self) -> None:
        """Load every registered type in registration order. Source failures propagate."""
        for type_name, loader in self._loaders.items():
            logger.debug("Loading %s credentials", type_name)
            loader.load()

    def notify_definition_changed(self, definition: CredentialsDefinition) -> None:
        type_name = self.registry.type_name_of(definition)
        for loader in self._loaders.values():
            if loader.supports_type(type_name):
                loader.on_definition_changed(definition)

    def notify_definition_removed(self, type_name: str, name: str) -> None:
        for loader in self._loaders.values():
            if loader.supports_type(type_name):
                loader.on_definition_removed(name)

    def default_validators(self) -> list[CredentialsDefinitionValidator]:
        return [
            CredentialsDefinitionNameValidator(self.registry, self.config.validator),
            AccessControlledDefinitionValidator(self.permission_evaluator),
            UserSecretsValidator(DefaultSecretReferenceValidator(self.secret_manager)),
        ]

    def service(
        self, validators: Sequence[CredentialsDefinitionValidator] | None = None
    ) -> CredentialsDefinitionService:
        return CredentialsDefinitionService(
            self.store,
            self.permission_evaluator,
            self.default_validators() if validators is None else validators,
            self.credentials.repositories(),
        )

    def inspector(self) -> CredentialsInspector:
        return CredentialsInspector(self.navigators(), self.permission_evaluator)
