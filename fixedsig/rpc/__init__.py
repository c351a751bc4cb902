"""
fixedsig RPC Module

Provides the JSON-RPC 2.0 interface for the multisig node:
- HTTP JSON-RPC server
- msig_* governance namespace, net_* node namespace
"""

from .server import RPCError, RPCErrorCode, RPCModule, RPCServer, rpc_method
from .config import RPCConfig
from .modules import MultisigModule, NetModule

__all__ = [
    "RPCServer",
    "RPCModule",
    "RPCError",
    "RPCErrorCode",
    "rpc_method",
    "RPCConfig",
    "MultisigModule",
    "NetModule",
]
