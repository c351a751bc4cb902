"""
fixedsig Unified Configuration

Loads all sections of config.toml at startup.
Environment variables override TOML values.
"""

from .loader import (
    FixedSigConfig,
    MultisigConfig,
    NodeSectionConfig,
    SQLiteConfig,
    StorageConfig,
    load_config,
)

__all__ = [
    "FixedSigConfig",
    "MultisigConfig",
    "NodeSectionConfig",
    "SQLiteConfig",
    "StorageConfig",
    "load_config",
]
