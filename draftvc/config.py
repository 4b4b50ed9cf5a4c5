"""
Configuration management for the draft versioning service.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST choose a durable store backend

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable once released
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported version store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


class SectionDiffMode(Enum):
    """How the comparator diffs list-valued sections."""

    KEYED = "keyed"
    COUNT = "count"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Version store configuration.

    Attributes:
        backend: Which store implementation to use
        data_dir: Directory for the SQLite database file
        db_filename: SQLite database file name
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: StoreBackend = StoreBackend.SQLITE
    data_dir: str = "./data"
    db_filename: str = "draft_versions.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If STORE_BACKEND is not a known backend
        """
        backend_str = os.getenv("STORE_BACKEND", "sqlite").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: memory, sqlite"
            )

        return cls(
            backend=backend,
            data_dir=os.getenv("DATA_DIR", "./data"),
            db_filename=os.getenv("DB_FILENAME", "draft_versions.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class VersioningConfig:
    """Versioning engine behavior.

    Attributes:
        max_append_retries: Retries after a version-number conflict
        retry_delay_ms: Base delay between retries (doubles each attempt)
        allow_cross_family_compare: Whether versions of unrelated drafts may be compared
        section_diff_mode: KEYED per-item diff or COUNT heuristic
        max_lineage_depth: Upper bound on parent links walked when resolving a root
    """

    max_append_retries: int = 3
    retry_delay_ms: int = 50
    allow_cross_family_compare: bool = True
    section_diff_mode: SectionDiffMode = SectionDiffMode.KEYED
    max_lineage_depth: int = 10000

    @classmethod
    def from_env(cls) -> VersioningConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If SECTION_DIFF_MODE is not a known mode
        """
        mode_str = os.getenv("SECTION_DIFF_MODE", "keyed").lower()
        try:
            mode = SectionDiffMode(mode_str)
        except ValueError:
            raise ValueError(
                f"Invalid SECTION_DIFF_MODE '{mode_str}'. Must be one of: keyed, count"
            )

        return cls(
            max_append_retries=int(os.getenv("MAX_APPEND_RETRIES", "3")),
            retry_delay_ms=int(os.getenv("APPEND_RETRY_DELAY_MS", "50")),
            allow_cross_family_compare=_env_bool("ALLOW_CROSS_FAMILY_COMPARE", "true"),
            section_diff_mode=mode,
            max_lineage_depth=int(os.getenv("MAX_LINEAGE_DEPTH", "10000")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServiceConfig:
    """Complete service configuration.

    Attributes:
        storage: Version store configuration
        versioning: Engine behavior
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    versioning: VersioningConfig = field(default_factory=VersioningConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            versioning=VersioningConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.storage.backend == StoreBackend.SQLITE:
            if not self.storage.data_dir:
                raise ValueError("DATA_DIR is required when STORE_BACKEND=sqlite")
            if not self.storage.db_filename:
                raise ValueError("DB_FILENAME is required when STORE_BACKEND=sqlite")

        if self.versioning.max_append_retries < 0:
            raise ValueError("MAX_APPEND_RETRIES must be >= 0")
        if self.versioning.retry_delay_ms < 0:
            raise ValueError("APPEND_RETRY_DELAY_MS must be >= 0")
        if self.versioning.max_lineage_depth < 1:
            raise ValueError("MAX_LINEAGE_DEPTH must be >= 1")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.storage.backend == StoreBackend.MEMORY:
            logger.warning("Using in-memory version store; all drafts are lost on exit")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Service configuration loaded",
            extra={
                "store_backend": self.storage.backend.value,
                "data_dir": self.storage.data_dir
                if self.storage.backend == StoreBackend.SQLITE
                else None,
                "max_append_retries": self.versioning.max_append_retries,
                "allow_cross_family_compare": self.versioning.allow_cross_family_compare,
                "section_diff_mode": self.versioning.section_diff_mode.value,
                "log_level": self.observability.log_level,
            },
        )
