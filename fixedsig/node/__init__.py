"""
fixedsig Node

FastAPI application serving one multisig instance over JSON-RPC.
"""

from .main import NodeContext, build_context, build_engine, create_app, open_clock

__all__ = [
    "NodeContext",
    "build_context",
    "build_engine",
    "create_app",
    "open_clock",
]
