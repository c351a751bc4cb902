"""
Voter Registry

Immutable address → weight table, fixed when the engine is instantiated.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..exceptions import DuplicateVoter, EmptyRegistry, ZeroWeight


@dataclass(frozen=True)
class Voter:
    """A registered identity and its fixed weight."""
    address: str
    weight: int

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "weight": self.weight}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Voter":
        return cls(address=data["address"], weight=int(data["weight"]))


class VoterRegistry:
    """
    Fixed voter set.

    Raises:
        EmptyRegistry:  no voters given
        DuplicateVoter: an address appears twice
        ZeroWeight:     a voter has weight 0 (or negative)
    """

    def __init__(self, voters: Iterable[Voter]):
        ordered: List[Voter] = list(voters)
        if not ordered:
            raise EmptyRegistry("Voter registry cannot be empty")

        weights: Dict[str, int] = {}
        for voter in ordered:
            if not voter.address:
                raise ValueError("Voter address is required")
            if voter.address in weights:
                raise DuplicateVoter(f"Duplicate voter address: {voter.address}")
            if voter.weight <= 0:
                raise ZeroWeight(
                    f"Voter {voter.address} has non-positive weight {voter.weight}"
                )
            weights[voter.address] = voter.weight

        self._voters = tuple(ordered)
        self._weights: Mapping[str, int] = MappingProxyType(weights)
        self._total_weight = sum(weights.values())

    @classmethod
    def from_dicts(cls, entries: Iterable[Dict[str, Any]]) -> "VoterRegistry":
        return cls(Voter.from_dict(e) for e in entries)

    # ── Lookups ───────────────────────────────────────────────────────

    def weight_of(self, address: str) -> Optional[int]:
        return self._weights.get(address)

    def total_weight(self) -> int:
        return self._total_weight

    def is_voter(self, address: str) -> bool:
        return address in self._weights

    @property
    def voters(self) -> List[Voter]:
        """Voters in registration order."""
        return list(self._voters)

    def __len__(self) -> int:
        return len(self._voters)

    def __contains__(self, address: str) -> bool:
        return self.is_voter(address)

    def to_list(self) -> List[Dict[str, Any]]:
        return [v.to_dict() for v in self._voters]

    def __repr__(self) -> str:
        return f"<VoterRegistry voters={len(self._voters)} total_weight={self._total_weight}>"
