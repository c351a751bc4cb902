"""
[rpc] section of config.toml.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class HTTPConfig:
    """
    [rpc.http]

    rate_limit is requests per minute per client address on POST /rpc.
    """
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 3017
    cors_enabled: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    rate_limit: int = 600


@dataclass
class ModulesConfig:
    """[rpc.modules]: which method namespaces the node registers."""
    msig: bool = True
    net: bool = True


@dataclass
class RPCConfig:
    enabled: bool = True
    http: HTTPConfig = field(default_factory=HTTPConfig)
    modules: ModulesConfig = field(default_factory=ModulesConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RPCConfig":
        """Unknown keys raise TypeError."""
        data = dict(data)
        http = HTTPConfig(**data.pop("http", {}))
        modules = ModulesConfig(**data.pop("modules", {}))
        return cls(http=http, modules=modules, **data)
