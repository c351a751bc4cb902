"""
Block Info, Durations and Expirations

Deadlines are declarative: an Expiration is compared against the BlockInfo
supplied by the caller's environment on every operation. Nothing here
schedules or sleeps.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..constants import BLOCK_TIME


@dataclass(frozen=True)
class BlockInfo:
    """Environment at the moment an operation runs."""
    height: int
    time: int   # unix seconds

    def to_dict(self) -> Dict[str, Any]:
        return {"height": self.height, "time": self.time}


class DurationKind(str, Enum):
    HEIGHT = "height"
    TIME = "time"


@dataclass(frozen=True)
class Duration:
    """A block-height delta or a time delta in seconds."""
    kind: DurationKind
    value: int

    @classmethod
    def height(cls, blocks: int) -> "Duration":
        return cls(DurationKind.HEIGHT, blocks)

    @classmethod
    def time(cls, seconds: int) -> "Duration":
        return cls(DurationKind.TIME, seconds)

    def after(self, block: BlockInfo) -> "Expiration":
        if self.kind == DurationKind.HEIGHT:
            return Expiration.at_height(block.height + self.value)
        return Expiration.at_time(block.time + self.value)

    @property
    def is_zero(self) -> bool:
        return self.value <= 0

    def to_dict(self) -> Dict[str, int]:
        return {self.kind.value: self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Duration":
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"Duration must be {{'height': n}} or {{'time': s}}, got {data!r}")
        (kind, value), = data.items()
        return cls(DurationKind(kind), int(value))

    def __str__(self) -> str:
        unit = "blocks" if self.kind == DurationKind.HEIGHT else "s"
        return f"{self.value} {unit}"


class ExpirationKind(str, Enum):
    AT_HEIGHT = "at_height"
    AT_TIME = "at_time"
    NEVER = "never"


@dataclass(frozen=True)
class Expiration:
    """Deadline at a block height, at a unix time, or never."""
    kind: ExpirationKind
    value: Optional[int] = None

    @classmethod
    def at_height(cls, height: int) -> "Expiration":
        return cls(ExpirationKind.AT_HEIGHT, height)

    @classmethod
    def at_time(cls, timestamp: int) -> "Expiration":
        return cls(ExpirationKind.AT_TIME, timestamp)

    @classmethod
    def never(cls) -> "Expiration":
        return cls(ExpirationKind.NEVER)

    def is_expired(self, block: BlockInfo) -> bool:
        if self.kind == ExpirationKind.AT_HEIGHT:
            return block.height >= self.value
        if self.kind == ExpirationKind.AT_TIME:
            return block.time >= self.value
        return False

    def is_comparable(self, other: "Expiration") -> bool:
        """Only deadlines of the same kind can be ordered (never == never)."""
        return self.kind == other.kind

    def __lt__(self, other: "Expiration") -> bool:
        if not self.is_comparable(other):
            raise TypeError(f"Cannot compare {self.kind.value} with {other.kind.value}")
        if self.kind == ExpirationKind.NEVER:
            return False
        return self.value < other.value

    def __le__(self, other: "Expiration") -> bool:
        return self == other or self < other

    def __gt__(self, other: "Expiration") -> bool:
        return other < self

    def __ge__(self, other: "Expiration") -> bool:
        return self == other or other < self

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == ExpirationKind.NEVER:
            return {"never": {}}
        return {self.kind.value: self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Expiration":
        if not isinstance(data, dict) or len(data) != 1:
            raise ValueError(f"Invalid expiration: {data!r}")
        (kind, value), = data.items()
        kind = ExpirationKind(kind)
        if kind == ExpirationKind.NEVER:
            return cls.never()
        return cls(kind, int(value))

    def __str__(self) -> str:
        if self.kind == ExpirationKind.NEVER:
            return "never"
        return f"{self.kind.value}={self.value}"


class SystemClock:
    """
    Derives BlockInfo from wall-clock time for the standalone node.

    Height advances by one every *block_time* seconds from *genesis_time*.
    """

    def __init__(self, genesis_time: Optional[int] = None, block_time: int = BLOCK_TIME):
        if block_time <= 0:
            raise ValueError("block_time must be positive")
        self.genesis_time = int(genesis_time if genesis_time is not None else time.time())
        self.block_time = block_time

    def current(self) -> BlockInfo:
        now = int(time.time())
        height = max(0, (now - self.genesis_time) // self.block_time)
        return BlockInfo(height=height, time=now)

    def __repr__(self) -> str:
        return f"<SystemClock genesis={self.genesis_time} block_time={self.block_time}s>"


class ManualClock:
    """Caller-driven BlockInfo source for embedding and tests."""

    def __init__(self, height: int = 1, time: int = 1_700_000_000, block_time: int = BLOCK_TIME):
        self.height = height
        self.time = time
        self.block_time = block_time

    def current(self) -> BlockInfo:
        return BlockInfo(height=self.height, time=self.time)

    def advance(self, blocks: int = 1, seconds: Optional[int] = None) -> BlockInfo:
        """Move forward *blocks* heights and *seconds* (default blocks × block_time)."""
        self.height += blocks
        self.time += blocks * self.block_time if seconds is None else seconds
        return self.current()

    def __repr__(self) -> str:
        return f"<ManualClock height={self.height} time={self.time}>"
