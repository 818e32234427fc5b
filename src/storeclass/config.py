"""
Engine configuration.

This module centralizes the knobs of the module engine and its backing store,
providing a single source of truth read from the environment.

Environment Variables:
    STORECLASS_SEPARATOR: Namespace separator used in qualified keys (default: '/')
    STORECLASS_RESERVED_PREFIX: Member name prefix that marks helpers (default: '_')
    STORECLASS_STORE_MARKER: Path fragment stripped from raw namespaces (default: 'store')
    STORECLASS_ATOMIC_COMMITS: Stage commits on a copy and write back on success (default: '1')
    STORECLASS_LOG_LEVEL: Logging level, falls back to LOG_LEVEL (default: 'INFO')
"""
from __future__ import annotations

import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default) in {"1", "true", "True", "yes"}


@dataclass(frozen=True)
class StoreConfig:
    """Centralized configuration for the module engine."""

    # Namespacing
    separator: str = os.getenv("STORECLASS_SEPARATOR", "/")
    store_marker: str = os.getenv("STORECLASS_STORE_MARKER", "store")

    # Classification
    reserved_prefix: str = os.getenv("STORECLASS_RESERVED_PREFIX", "_")

    # Commit behavior
    atomic_commits: bool = _flag("STORECLASS_ATOMIC_COMMITS", "1")

    # Logging
    log_level: str = os.getenv("STORECLASS_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO")).upper()

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.separator:
            raise ValueError("STORECLASS_SEPARATOR must not be empty")
        if not self.reserved_prefix:
            raise ValueError("STORECLASS_RESERVED_PREFIX must not be empty")
        if self.reserved_prefix.startswith("__"):
            raise ValueError("STORECLASS_RESERVED_PREFIX must not start with a dunder")
        if self.separator in self.store_marker:
            raise ValueError("STORECLASS_STORE_MARKER must not contain the separator")
        if self.log_level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}:
            raise ValueError(f"Unknown log level {self.log_level!r}")


# Global configuration instance
CONFIG = StoreConfig()

# Validate configuration on import
CONFIG.validate()


def get_config() -> StoreConfig:
    """Get the global engine configuration instance."""
    return CONFIG


def reload_config() -> StoreConfig:
    """Reload configuration from environment variables."""
    global CONFIG
    CONFIG = StoreConfig(
        separator=os.getenv("STORECLASS_SEPARATOR", "/"),
        store_marker=os.getenv("STORECLASS_STORE_MARKER", "store"),
        reserved_prefix=os.getenv("STORECLASS_RESERVED_PREFIX", "_"),
        atomic_commits=_flag("STORECLASS_ATOMIC_COMMITS", "1"),
        log_level=os.getenv("STORECLASS_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO")).upper(),
    )
    CONFIG.validate()
    return CONFIG


__all__ = ["StoreConfig", "CONFIG", "get_config", "reload_config"]
