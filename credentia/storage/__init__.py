"""Definition stores: the contract plus in-memory and PostgreSQL implementations."""

from credentia.storage.base import DefinitionRepository, Revision, compute_etag
from credentia.storage.memory import InMemoryDefinitionRepository

__all__ = ["DefinitionRepository", "InMemoryDefinitionRepository", "Revision", "compute_etag"]
