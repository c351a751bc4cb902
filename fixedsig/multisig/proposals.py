"""
Proposals and Ballots

Defines the proposal lifecycle, vote options, and the Proposal / Ballot
records persisted by the ProposalStore.

Lifecycle:

    OPEN ──► PASSED ──► EXECUTED
      │        │
      └──► REJECTED ◄┘  (PASSED → REJECTED only under the reject-on-failure policy)
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

from ..constants import VOTE_ABSTAIN, VOTE_NO, VOTE_VETO, VOTE_YES
from ..exceptions import InvalidProposal, WrongStatus
from ..logger import get_logger
from .threshold import ThresholdSpec, threshold_from_dict, threshold_to_dict
from .timing import BlockInfo, Expiration

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ProposalStatus(IntEnum):
    """Lifecycle stage."""
    OPEN = 1        # Accepting ballots
    PASSED = 2      # Threshold met; executable until expiry
    REJECTED = 3    # Cannot pass (early rejection, expiry, or close)
    EXECUTED = 4    # Actions dispatched


_VALID_TRANSITIONS: Dict[ProposalStatus, set] = {
    ProposalStatus.OPEN:     {ProposalStatus.PASSED, ProposalStatus.REJECTED},
    ProposalStatus.PASSED:   {ProposalStatus.EXECUTED, ProposalStatus.REJECTED},
    # Terminal states — no further transitions
    ProposalStatus.REJECTED: set(),
    ProposalStatus.EXECUTED: set(),
}


class VoteOption(IntEnum):
    """Ballot choice."""
    YES = 1
    NO = 2
    ABSTAIN = 3
    VETO = 4

    @property
    def wire_name(self) -> str:
        return _VOTE_NAMES[self]

    @classmethod
    def parse(cls, value: Any) -> "VoteOption":
        """Accept a VoteOption, its wire name ("yes"), or its enum name ("YES")."""
        if isinstance(value, VoteOption):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            for option, name in _VOTE_NAMES.items():
                if name == lowered:
                    return option
        raise ValueError(f"Invalid vote option: {value!r}")


_VOTE_NAMES = {
    VoteOption.YES: VOTE_YES,
    VoteOption.NO: VOTE_NO,
    VoteOption.ABSTAIN: VOTE_ABSTAIN,
    VoteOption.VETO: VOTE_VETO,
}


# ══════════════════════════════════════════════════════════════════════
#  BALLOT
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Ballot:
    """One voter's immutable choice on one proposal."""
    proposal_id: int
    voter: str
    vote: VoteOption
    weight: int
    height: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "voter": self.voter,
            "vote": self.vote.wire_name,
            "weight": self.weight,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ballot":
        return cls(
            proposal_id=int(data["proposal_id"]),
            voter=data["voter"],
            vote=VoteOption.parse(data["vote"]),
            weight=int(data["weight"]),
            height=int(data.get("height", 0)),
        )


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Proposal:
    """
    A batch of opaque actions under vote.

    Fields:
        id:            Unique monotonic identifier (assigned by the store)
        title:         Short title
        description:   Rationale
        proposer:      Address of the submitting voter
        actions:       Ordered opaque payloads, dispatched verbatim
        threshold:     Pass rule snapshotted at creation
        total_weight:  Registry weight snapshotted at creation
        expires:       Voting / execution deadline
        start_height:  Block height at creation
        status:        Current lifecycle stage
    """
    id: int
    title: str
    description: str
    proposer: str
    actions: List[Any]
    threshold: ThresholdSpec
    total_weight: int
    expires: Expiration
    start_height: int = 0
    status: ProposalStatus = ProposalStatus.OPEN
    _history: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.title:
            raise InvalidProposal("Proposal title cannot be empty")
        if not self.proposer:
            raise InvalidProposal("Proposer address is required")
        if not isinstance(self.actions, list):
            raise InvalidProposal("Proposal actions must be a list")
        if not self._history:
            self._history.append({
                "from": "INIT",
                "to": self.status.name,
                "reason": "created",
                "height": self.start_height,
            })

    # ── Properties ────────────────────────────────────────────────────

    @property
    def is_open(self) -> bool:
        return self.status == ProposalStatus.OPEN

    @property
    def is_terminal(self) -> bool:
        return self.status in (ProposalStatus.REJECTED, ProposalStatus.EXECUTED)

    def is_expired(self, block: BlockInfo) -> bool:
        return self.expires.is_expired(block)

    def effective_status(self, block: BlockInfo) -> ProposalStatus:
        """Status as it would read after lazy expiry finalization."""
        if self.status == ProposalStatus.OPEN and self.is_expired(block):
            return ProposalStatus.REJECTED
        return self.status

    @property
    def history(self) -> List[Dict[str, Any]]:
        return list(self._history)

    # ── State transitions ─────────────────────────────────────────────

    def transition_to(self, new_status: ProposalStatus, reason: str = "", height: int = 0):
        """
        Move to *new_status*.

        Raises WrongStatus on invalid transitions.
        """
        allowed = _VALID_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise WrongStatus(
                f"Proposal #{self.id} cannot transition from "
                f"{self.status.name} → {new_status.name}"
            )
        old = self.status
        self._history.append({
            "from": old.name,
            "to": new_status.name,
            "reason": reason,
            "height": height,
        })
        self.status = new_status
        logger.info(
            f"Proposal #{self.id} ({self.title}): "
            f"{old.name} → {new_status.name} | {reason}"
        )

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "proposer": self.proposer,
            "actions": self.actions,
            "threshold": threshold_to_dict(self.threshold),
            "total_weight": self.total_weight,
            "expires": self.expires.to_dict(),
            "start_height": self.start_height,
            "status": self.status.name,
            "history": self.history,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Proposal":
        return cls(
            id=int(data["id"]),
            title=data["title"],
            description=data.get("description", ""),
            proposer=data["proposer"],
            actions=list(data.get("actions", [])),
            threshold=threshold_from_dict(data["threshold"]),
            total_weight=int(data["total_weight"]),
            expires=Expiration.from_dict(data["expires"]),
            start_height=int(data.get("start_height", 0)),
            status=ProposalStatus[data["status"]],
            _history=list(data.get("history", [])),
        )

    def __repr__(self) -> str:
        return f"<Proposal #{self.id} '{self.title}' status={self.status.name}>"
