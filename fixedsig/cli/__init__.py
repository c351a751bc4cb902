"""
fixedsig CLI

Command-line client for a fixedsig node.
"""

from .main import cli

__all__ = ["cli"]
