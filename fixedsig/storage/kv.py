"""
Key-Value Store

Abstract persistence boundary for the multisig engine plus an in-memory
backend. Every backend supports:

  - get / set / remove on string keys with JSON-text values
  - ordered prefix scans (for paginated listings)
  - nestable transactions that roll back on exception
"""

import json
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..exceptions import StorageError


class KeyValueStore(ABC):
    """Abstract ordered key-value store."""

    # ── Raw access ────────────────────────────────────────────────────

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the raw value for *key*, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store *value* under *key*."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete *key* (no-op if absent)."""

    @abstractmethod
    def scan(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        end_before: Optional[str] = None,
        limit: Optional[int] = None,
        reverse: bool = False,
    ) -> List[Tuple[str, str]]:
        """
        Return (key, value) pairs whose key starts with *prefix*, in key order.

        Args:
            prefix:      Key prefix to match
            start_after: Exclusive lower bound (full key)
            end_before:  Exclusive upper bound (full key)
            limit:       Maximum number of pairs
            reverse:     Descending order
        """

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator["KeyValueStore"]:
        """All-or-nothing block. Nested blocks roll back independently."""

    def close(self) -> None:
        pass

    # ── JSON helpers ──────────────────────────────────────────────────

    def get_json(self, key: str) -> Optional[Any]:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt value under {key!r}: {e}") from e

    def set_json(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key!r} is not JSON-serializable: {e}") from e
        self.set(key, raw)

    def scan_json(self, prefix: str, **kwargs) -> List[Tuple[str, Any]]:
        return [(k, json.loads(v)) for k, v in self.scan(prefix, **kwargs)]

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStore(KeyValueStore):
    """
    Dict-backed store.

    Transactions snapshot the whole table on entry and restore it on
    exception; snapshots stack so nested transactions behave like
    savepoints.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._snapshots: List[Dict[str, str]] = []

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"Values must be str, got {type(value).__name__}")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def scan(
        self,
        prefix: str,
        start_after: Optional[str] = None,
        end_before: Optional[str] = None,
        limit: Optional[int] = None,
        reverse: bool = False,
    ) -> List[Tuple[str, str]]:
        keys = sorted(
            k for k in self._data
            if k.startswith(prefix)
            and (start_after is None or k > start_after)
            and (end_before is None or k < end_before)
        )
        if reverse:
            keys.reverse()
        if limit is not None:
            keys = keys[:limit]
        return [(k, self._data[k]) for k in keys]

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        self._snapshots.append(dict(self._data))
        try:
            yield self
        except BaseException:
            self._data = self._snapshots.pop()
            raise
        else:
            self._snapshots.pop()

    @property
    def in_transaction(self) -> bool:
        return bool(self._snapshots)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"<MemoryStore keys={len(self._data)}>"
