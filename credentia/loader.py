"""
Incremental credentials loader.

``load()`` pulls the full definition set from a source, tears down live
credentials the source no longer reports, and parses only definitions that
are new or changed since the last successful load. Unchanged definitions are
never re-parsed and never touch the repository.

Usage:
    loader = BasicCredentialsLoader(source, parse_aws, repository, type_name="aws")
    loader.load()   # first pull: everything is new
    loader.load()   # nothing changed: zero parses, zero repository writes
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from credentia.definitions import CredentialsDefinition
from credentia.metrics import MetricsRegistry
from credentia.repository import MapBackedCredentialsRepository
from credentia.sources import DefinitionSource

logger = logging.getLogger(__name__)

# Definition -> live credentials, or None to skip the definition this round.
CredentialsParser = Callable[[CredentialsDefinition], Any]

PARSE_ERROR_METRIC = "credentials.parse.error"
APPLY_ERROR_METRIC = "credentials.apply.error"


class SafeCredentialsParser:
    """Wraps a parser so one bad definition cannot abort a load.

    Exceptions are logged, counted, and turned into ``None``.
    """

    def __init__(
        self,
        delegate: CredentialsParser,
        *,
        metrics: MetricsRegistry | None = None,
        type_name: str | None = None,
    ) -> None:
        self._delegate = delegate
        self._metrics = metrics
        self._type_name = type_name
        self._lock = threading.Lock()
        self.parse_errors = 0

    def __call__(self, definition: CredentialsDefinition) -> Any | None:
        try:
            return self._delegate(definition)
        except Exception:
            with self._lock:
                self.parse_errors += 1
            if self._metrics is not None:
                tags = {"type": self._type_name} if self._type_name else {}
                self._metrics.increment(PARSE_ERROR_METRIC, **tags)
            logger.warning(
                "Unable to parse credentials definition with name '%s'",
                definition.name,
                exc_info=True,
            )
            return None


class BasicCredentialsLoader:
    """Diffs a definition source against what it last applied to a repository.

    ``parallel=True`` fans the apply phase out over a thread pool with no
    ordering between entries. Only use it when parsing and saving one account
    has no side effects on another.
    """

    def __init__(
        self,
        source: DefinitionSource,
        parser: CredentialsParser,
        repository: MapBackedCredentialsRepository,
        *,
        parallel: bool = False,
        type_name: str | None = None,
        max_workers: int | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        if not isinstance(parser, SafeCredentialsParser):
            parser = SafeCredentialsParser(parser, metrics=metrics, type_name=type_name)
        self._source = source
        self._parser = parser
        self._repository = repository
        self.parallel = parallel
        self.type_name = type_name
        self._max_workers = max_workers
        self._metrics = metrics
        self._loaded: dict[str, CredentialsDefinition] = {}
        self._lock = threading.RLock()

    @property
    def loaded_definitions(self) -> dict[str, CredentialsDefinition]:
        with self._lock:
            return dict(self._loaded)

    def load(self) -> None:
        """Pull, diff, and apply. Source failures propagate; parse and apply failures do not."""
        with self._lock:
            definitions = self._source.get_credentials_definitions()
            self._apply_definitions(definitions)

    def _apply_definitions(self, definitions: list[CredentialsDefinition]) -> None:
        names = {d.name for d in definitions}

        removed = 0
        for credentials in self._repository.get_all():
            if credentials.name not in names:
                self._loaded.pop(credentials.name, None)
                self._repository.delete(credentials.name)
                removed += 1
        for name in [n for n in self._loaded if n not in names]:
            del self._loaded[name]

        to_apply: list[tuple[CredentialsDefinition, Any]] = []
        for definition in definitions:
            previous = self._loaded.get(definition.name)
            if previous is not None and previous == definition:
                continue
            credentials = self._parser(definition)
            if credentials is None:
                continue
            to_apply.append((definition, credentials))

        if self.parallel and len(to_apply) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                results = list(pool.map(lambda entry: self._apply(*entry), to_apply))
        else:
            results = [self._apply(definition, credentials) for definition, credentials in to_apply]

        for (definition, _), ok in zip(to_apply, results, strict=True):
            if ok:
                self._loaded[definition.name] = definition
        applied = sum(results)
        if to_apply or removed:
            logger.info(
                "Loaded %s credentials: %d added or changed, %d failed, %d removed",
                self.type_name or "untyped",
                applied,
                len(to_apply) - applied,
                removed,
            )

    def _apply(self, definition: CredentialsDefinition, credentials: Any) -> bool:
        """Save one parsed entry. False when the save raised; the caller records successes."""
        try:
            self._repository.save(credentials)
        except Exception:
            if self._metrics is not None:
                tags = {"type": self.type_name} if self.type_name else {}
                self._metrics.increment(APPLY_ERROR_METRIC, **tags)
            logger.warning(
                "Unable to apply credentials with name '%s'", definition.name, exc_info=True
            )
            return False
        return True

    # ─── Definition listener ────────────────────────────────────────────

    def supports_type(self, type_name: str) -> bool:
        return type_name == self.type_name

    def on_definition_changed(self, definition: CredentialsDefinition) -> None:
        with self._lock:
            credentials = self._parser(definition)
            if credentials is not None:
                self._repository.save(credentials)
                self._loaded[definition.name] = definition

    def on_definition_removed(self, name: str) -> None:
        with self._lock:
            self._loaded.pop(name, None)
            self._repository.delete(name)
