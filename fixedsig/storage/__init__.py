"""
fixedsig Storage

Ordered key-value stores with nestable transactions:
  - KeyValueStore / MemoryStore   (kv.py)
  - SQLiteStore                   (sqlite.py)
"""

from .kv import KeyValueStore, MemoryStore
from .sqlite import SQLiteStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "SQLiteStore",
]
