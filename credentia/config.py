"""
Centralized configuration for Credentia.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from credentia.config import get_config
    cfg = get_config()
    print(cfg.storage_types)                 # frozenset({"aws"})
    print(cfg.validator.name_pattern("aws"))  # re.Pattern
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_NAME_PATTERN = r"^[A-Za-z][-_A-Za-z0-9]+[A-Za-z0-9]$"


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters for the definition store."""

    host: str = ""  # empty = Unix socket
    port: int = 5432
    name: str = "credentia"
    user: str = "credentia"
    password: str = ""
    pool_min: int = 1
    pool_max: int = 10

    @property
    def dsn(self) -> str:
        """Return a psycopg2-compatible DSN string."""
        parts = [f"dbname={self.name}"]
        if self.host:
            parts.append(f"host={self.host}")
        parts.append(f"port={self.port}")
        if self.user:
            parts.append(f"user={self.user}")
        if self.password:
            parts.append(f"password={self.password}")
        return " ".join(parts)

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {"dbname": self.name, "port": self.port}
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class ValidatorConfig:
    """Account name rules, per credentials type with a global fallback."""

    default_name_pattern: str = DEFAULT_NAME_PATTERN
    name_patterns: dict[str, str] = field(default_factory=dict)

    def name_pattern(self, type_name: str | None) -> re.Pattern[str]:
        raw = self.name_patterns.get(type_name or "", self.default_name_pattern)
        return re.compile(raw)


@dataclass(frozen=True)
class Config:
    """Top-level Credentia configuration."""

    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    validator: ValidatorConfig = field(default_factory=ValidatorConfig)

    # Credentials types whose definitions also live in the definition store
    storage_types: frozenset[str] = field(default_factory=frozenset)

    # Loader
    parallel_load: bool = False
    load_workers: int = 8

    # Local secret engine + static definitions
    secrets_dir: Path = field(default_factory=lambda: Path.home() / ".credentia" / "secrets")
    definitions_file: Path | None = None

    def storage_enabled(self, type_name: str) -> bool:
        return type_name in self.storage_types


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _env_bool(key: str, default: bool = False) -> bool:
    return os.environ.get(key, str(default)).lower() in ("true", "1", "yes")


def _parse_name_patterns(raw: str) -> dict[str, str]:
    """Parse ``type=regex;type2=regex`` into a dict. Blank entries are skipped."""
    patterns: dict[str, str] = {}
    for entry in raw.split(";"):
        if "=" not in entry:
            continue
        type_name, pattern = entry.split("=", 1)
        if type_name.strip() and pattern.strip():
            patterns[type_name.strip()] = pattern.strip()
    return patterns


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    db = DatabaseConfig(
        host=os.environ.get("CREDENTIA_DB_HOST", ""),
        port=int(os.environ.get("CREDENTIA_DB_PORT", "5432")),
        name=os.environ.get("CREDENTIA_DB_NAME", "credentia"),
        user=os.environ.get("CREDENTIA_DB_USER", os.environ.get("USER", "credentia")),
        password=os.environ.get("CREDENTIA_DB_PASSWORD", ""),
        pool_min=int(os.environ.get("CREDENTIA_DB_POOL_MIN", "1")),
        pool_max=int(os.environ.get("CREDENTIA_DB_POOL_MAX", "10")),
    )

    validator = ValidatorConfig(
        default_name_pattern=os.environ.get("CREDENTIA_NAME_PATTERN", DEFAULT_NAME_PATTERN),
        name_patterns=_parse_name_patterns(os.environ.get("CREDENTIA_NAME_PATTERNS", "")),
    )

    storage = os.environ.get("CREDENTIA_STORAGE_TYPES", "")
    definitions_file = os.environ.get("CREDENTIA_DEFINITIONS_FILE")

    return Config(
        db=db,
        validator=validator,
        storage_types=frozenset(s.strip() for s in storage.split(",") if s.strip()),
        parallel_load=_env_bool("CREDENTIA_PARALLEL_LOAD"),
        load_workers=int(os.environ.get("CREDENTIA_LOAD_WORKERS", "8")),
        secrets_dir=Path(
            os.environ.get("CREDENTIA_SECRETS_DIR", Path.home() / ".credentia" / "secrets")
        ),
        definitions_file=Path(definitions_file) if definitions_file else None,
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
