"""
fixedsig Unified TOML Configuration Loader

Reads the [node], [multisig], [storage] and [rpc] tables of config.toml, then lets FIXEDSIG_* variables override them.
Each section is a dataclass with from_dict / apply_env.

Overrides:
    [node] log_level         → FIXEDSIG_LOG_LEVEL
    [node] block_time        → FIXEDSIG_BLOCK_TIME
    [storage] type           → FIXEDSIG_STORAGE_TYPE
    [storage.sqlite] path    → FIXEDSIG_DB_PATH
    [multisig] address       → FIXEDSIG_MULTISIG_ADDRESS
    [rpc.http] port          → FIXEDSIG_RPC_HTTP_PORT
    ...
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    try:
        import tomli  # type: ignore[no-redef]
    except ImportError:
        tomli = None  # type: ignore[assignment]

from ..constants import BLOCK_TIME
from ..exceptions import ConfigurationError, FixedSigException

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
STORAGE_TYPES = ("memory", "sqlite")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


# ---------------------------------------------------------------------------
# Subsection dataclasses
# ---------------------------------------------------------------------------


@dataclass
class NodeSectionConfig:
    """[node] section."""
    log_level: str = "INFO"
    block_time: int = BLOCK_TIME
    genesis_time: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeSectionConfig":
        return cls(
            log_level=data.get("log_level", "INFO"),
            block_time=data.get("block_time", BLOCK_TIME),
            genesis_time=data.get("genesis_time"),
        )

    def apply_env(self) -> None:
        """FIXEDSIG_LOG_LEVEL, FIXEDSIG_BLOCK_TIME and FIXEDSIG_GENESIS_TIME."""
        if v := os.environ.get("FIXEDSIG_LOG_LEVEL"):
            self.log_level = v
        if v := os.environ.get("FIXEDSIG_BLOCK_TIME"):
            self.block_time = int(v)
        if v := os.environ.get("FIXEDSIG_GENESIS_TIME"):
            self.genesis_time = int(v)


# -- Multisig -----------------------------------------------------------

@dataclass
class MultisigConfig:
    """
    [multisig] section.

    Only read when the store holds no instance yet; an existing instance
    keeps the voters and threshold it was created with.
    """
    address: str = "multisig"
    voters: List[Dict[str, Any]] = field(default_factory=list)
    threshold: Dict[str, Any] = field(default_factory=dict)
    max_voting_period: Dict[str, Any] = field(default_factory=lambda: {"height": 100})
    allow_empty_batch: bool = False
    auto_vote_proposer: bool = True
    reject_on_dispatch_failure: bool = False
    # Bank balance credited to the multisig address on first start
    treasury: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MultisigConfig":
        return cls(
            address=data.get("address", "multisig"),
            voters=list(data.get("voters", [])),
            threshold=dict(data.get("threshold", {})),
            max_voting_period=dict(data.get("max_voting_period", {"height": 100})),
            allow_empty_batch=data.get("allow_empty_batch", False),
            auto_vote_proposer=data.get("auto_vote_proposer", True),
            reject_on_dispatch_failure=data.get("reject_on_dispatch_failure", False),
            treasury=data.get("treasury", 0),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("FIXEDSIG_MULTISIG_ADDRESS"):
            self.address = v
        if v := os.environ.get("FIXEDSIG_ALLOW_EMPTY_BATCH"):
            self.allow_empty_batch = _env_bool(v)
        if v := os.environ.get("FIXEDSIG_AUTO_VOTE_PROPOSER"):
            self.auto_vote_proposer = _env_bool(v)
        if v := os.environ.get("FIXEDSIG_REJECT_ON_DISPATCH_FAILURE"):
            self.reject_on_dispatch_failure = _env_bool(v)

    # --- domain conversion ------------------------------------------------

    def build_voters(self):
        """Voter list for VoterRegistry."""
        from ..multisig.registry import Voter
        return [Voter.from_dict(entry) for entry in self.voters]

    def build_threshold(self):
        from ..multisig.threshold import threshold_from_dict
        return threshold_from_dict(self.threshold)

    def build_voting_period(self):
        from ..multisig.timing import Duration
        return Duration.from_dict(self.max_voting_period)

    @property
    def is_defined(self) -> bool:
        """True when the section carries enough to instantiate a new engine."""
        return bool(self.voters) and bool(self.threshold)


# -- Storage ------------------------------------------------------------

@dataclass
class SQLiteConfig:
    """[storage.sqlite]."""
    path: str = "data/fixedsig.db"
    wal_mode: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SQLiteConfig":
        return cls(
            path=data.get("path", "data/fixedsig.db"),
            wal_mode=data.get("wal_mode", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("FIXEDSIG_DB_PATH"):
            self.path = v


@dataclass
class StorageConfig:
    """[storage] section."""
    type: str = "sqlite"
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StorageConfig":
        sqlite_data = data.get("sqlite", {})
        return cls(
            type=data.get("type", "sqlite"),
            sqlite=SQLiteConfig.from_dict(sqlite_data),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("FIXEDSIG_STORAGE_TYPE"):
            self.type = v
        self.sqlite.apply_env()


# -----------------------------------------------------------------------
# Whole-node config
# -----------------------------------------------------------------------

@dataclass
class FixedSigConfig:
    """Every section a node needs, as one object."""
    node: NodeSectionConfig = field(default_factory=NodeSectionConfig)
    multisig: MultisigConfig = field(default_factory=MultisigConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    rpc: Optional[Any] = None          # fixedsig.rpc.config.RPCConfig

    def __post_init__(self):
        if self.rpc is None:
            from ..rpc.config import RPCConfig
            self.rpc = RPCConfig()

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FixedSigConfig":
        """Create FixedSigConfig from a parsed TOML dict."""
        # Lazy import to avoid circular dependencies
        from ..rpc.config import RPCConfig

        try:
            rpc = RPCConfig.from_dict(data.get("rpc", {}))
        except TypeError as e:
            raise ConfigurationError(f"Invalid [rpc] section: {e}") from e

        return cls(
            node=NodeSectionConfig.from_dict(data.get("node", {})),
            multisig=MultisigConfig.from_dict(data.get("multisig", {})),
            storage=StorageConfig.from_dict(data.get("storage", {})),
            rpc=rpc,
        )

    @classmethod
    def from_file(cls, config_path: str) -> "FixedSigConfig":
        """
        Parse *path* as TOML and build the config from it.

        Args:
            config_path: Path to config.toml

        Returns:
            FixedSigConfig instance
        """
        if tomli is None:
            raise ImportError(
                "tomli is required for TOML config loading. "
                "Install it: pip install tomli"
            )

        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            try:
                raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Malformed config file {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Let FIXEDSIG_* variables win over file values."""
        self.node.apply_env()
        self.multisig.apply_env()
        self.storage.apply_env()

        # RPC env overrides
        if v := os.environ.get("FIXEDSIG_RPC_HTTP_HOST"):
            self.rpc.http.host = v
        if v := os.environ.get("FIXEDSIG_RPC_HTTP_PORT"):
            self.rpc.http.port = int(v)
        if v := os.environ.get("FIXEDSIG_RPC_RATE_LIMIT"):
            self.rpc.http.rate_limit = int(v)

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Check cross-field rules; raise ConfigurationError on the first problem.

        Returns:
            True if all valid

        Raises:
            ConfigurationError: on invalid config
        """
        if str(self.node.log_level).upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log_level: {self.node.log_level}")
        if self.node.block_time < 1:
            raise ConfigurationError("block_time must be >= 1")
        if self.storage.type not in STORAGE_TYPES:
            raise ConfigurationError(
                f"Unknown storage type {self.storage.type!r}; expected one of {STORAGE_TYPES}"
            )
        if self.storage.type == "sqlite" and not self.storage.sqlite.path:
            raise ConfigurationError("storage.sqlite.path is required for sqlite storage")
        if not self.multisig.address:
            raise ConfigurationError("multisig.address cannot be empty")
        if self.multisig.treasury < 0:
            raise ConfigurationError("multisig.treasury cannot be negative")
        if self.rpc.http.rate_limit < 1:
            raise ConfigurationError("rpc.http.rate_limit must be >= 1")

        if self.multisig.voters or self.multisig.threshold:
            from ..multisig.registry import VoterRegistry
            from ..multisig.threshold import validate as validate_threshold

            try:
                registry = VoterRegistry(self.multisig.build_voters())
                validate_threshold(self.multisig.build_threshold(), registry.total_weight())
                period = self.multisig.build_voting_period()
            except (KeyError, TypeError, ValueError, FixedSigException) as e:
                raise ConfigurationError(f"Invalid [multisig] section: {e}") from e
            if period.is_zero:
                raise ConfigurationError("multisig.max_voting_period must be positive")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict view for diagnostics; not a TOML round-trip."""
        return {
            "node": {
                "log_level": self.node.log_level,
                "block_time": self.node.block_time,
                "genesis_time": self.node.genesis_time,
            },
            "multisig": {
                "address": self.multisig.address,
                "voters": self.multisig.voters,
                "threshold": self.multisig.threshold,
                "max_voting_period": self.multisig.max_voting_period,
                "allow_empty_batch": self.multisig.allow_empty_batch,
                "auto_vote_proposer": self.multisig.auto_vote_proposer,
                "reject_on_dispatch_failure": self.multisig.reject_on_dispatch_failure,
                "treasury": self.multisig.treasury,
            },
            "storage": {
                "type": self.storage.type,
                "sqlite": {
                    "path": self.storage.sqlite.path,
                    "wal_mode": self.storage.sqlite.wal_mode,
                },
            },
            "rpc": {
                "enabled": self.rpc.enabled,
                "http": {
                    "host": self.rpc.http.host,
                    "port": self.rpc.http.port,
                    "cors_origins": self.rpc.http.cors_origins,
                    "rate_limit": self.rpc.http.rate_limit,
                },
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> FixedSigConfig:
    """
    Load node configuration.

    Resolution order:
        1. Explicit *path* argument
        2. FIXEDSIG_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("FIXEDSIG_CONFIG", "config.toml")

    return FixedSigConfig.from_file(path)
