"""
fixedsig RPC Modules

JSON-RPC method implementations.
"""

from .multisig import MultisigModule
from .net import NetModule

__all__ = [
    "MultisigModule",
    "NetModule",
]
