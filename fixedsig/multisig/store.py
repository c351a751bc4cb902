"""
Proposal Store

Persistent tables for one multisig instance, laid out over a KeyValueStore:

    config                          engine configuration (threshold, period, flags)
    clock                           node clock anchor (genesis_time, block_time)
    proposal_count                  last assigned proposal id
    proposals/<id:020d>             Proposal
    ballots/<id:020d>/<voter>       Ballot
    voters/<address>                voter weight and registration position

Zero-padded ids keep key order equal to numeric order, and the fixed-width id
segment keeps ballot keys collision-free for any voter address.
"""

from typing import Any, Dict, List, Optional

from ..constants import (
    KEY_CLOCK,
    KEY_CONFIG,
    KEY_PROPOSAL_COUNT,
    PREFIX_BALLOTS,
    PREFIX_PROPOSALS,
    PREFIX_VOTERS,
    PROPOSAL_ID_WIDTH,
)
from ..exceptions import AlreadyVoted, NotFound
from ..storage.kv import KeyValueStore
from .proposals import Ballot, Proposal, ProposalStatus
from .registry import Voter, VoterRegistry
from .threshold import Tally, tally_from_weights


def proposal_key(proposal_id: int) -> str:
    return f"{PREFIX_PROPOSALS}{proposal_id:0{PROPOSAL_ID_WIDTH}d}"


def ballot_prefix(proposal_id: int) -> str:
    return f"{PREFIX_BALLOTS}{proposal_id:0{PROPOSAL_ID_WIDTH}d}/"


def ballot_key(proposal_id: int, voter: str) -> str:
    return ballot_prefix(proposal_id) + voter


def voter_key(address: str) -> str:
    return PREFIX_VOTERS + address


class ProposalStore:
    """Typed access to the multisig tables. Owned by the VotingEngine."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def transaction(self):
        return self.kv.transaction()

    # ── Config & voters ───────────────────────────────────────────────

    def save_config(self, config: Dict[str, Any]) -> None:
        self.kv.set_json(KEY_CONFIG, config)

    def load_config(self) -> Optional[Dict[str, Any]]:
        return self.kv.get_json(KEY_CONFIG)

    def save_voters(self, registry: VoterRegistry) -> None:
        for position, voter in enumerate(registry.voters):
            self.kv.set_json(
                voter_key(voter.address),
                {"weight": voter.weight, "position": position},
            )

    def load_voters(self) -> VoterRegistry:
        """Rebuild the registry in its original registration order."""
        entries = sorted(
            self.kv.scan_json(PREFIX_VOTERS), key=lambda row: row[1]["position"]
        )
        return VoterRegistry(
            Voter(address=key[len(PREFIX_VOTERS):], weight=int(data["weight"]))
            for key, data in entries
        )

    def save_clock(self, genesis_time: int, block_time: int) -> None:
        self.kv.set_json(KEY_CLOCK, {"genesis_time": genesis_time, "block_time": block_time})

    def load_clock(self) -> Optional[Dict[str, int]]:
        return self.kv.get_json(KEY_CLOCK)

    # ── Proposals ─────────────────────────────────────────────────────

    def proposal_count(self) -> int:
        return int(self.kv.get_json(KEY_PROPOSAL_COUNT) or 0)

    def create(self, proposal: Proposal) -> int:
        """Assign the next id to *proposal*, persist it and return the id."""
        proposal_id = self.proposal_count() + 1
        self.kv.set_json(KEY_PROPOSAL_COUNT, proposal_id)
        proposal.id = proposal_id
        self.save(proposal)
        return proposal_id

    def get(self, proposal_id: int) -> Optional[Proposal]:
        data = self.kv.get_json(proposal_key(proposal_id))
        return Proposal.from_dict(data) if data is not None else None

    def require(self, proposal_id: int) -> Proposal:
        proposal = self.get(proposal_id)
        if proposal is None:
            raise NotFound(f"Proposal #{proposal_id} not found")
        return proposal

    def save(self, proposal: Proposal) -> None:
        self.kv.set_json(proposal_key(proposal.id), proposal.to_dict())

    def update_status(
        self,
        proposal_id: int,
        status: ProposalStatus,
        reason: str = "",
        height: int = 0,
    ) -> Proposal:
        proposal = self.require(proposal_id)
        proposal.transition_to(status, reason, height)
        self.save(proposal)
        return proposal

    def list(
        self,
        start_after: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Proposal]:
        """Ascending by id."""
        after = proposal_key(start_after) if start_after is not None else None
        rows = self.kv.scan_json(PREFIX_PROPOSALS, start_after=after, limit=limit)
        return [Proposal.from_dict(data) for _, data in rows]

    def list_reverse(
        self,
        start_before: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Proposal]:
        """Descending by id."""
        before = proposal_key(start_before) if start_before is not None else None
        rows = self.kv.scan_json(
            PREFIX_PROPOSALS, end_before=before, limit=limit, reverse=True
        )
        return [Proposal.from_dict(data) for _, data in rows]

    # ── Ballots ───────────────────────────────────────────────────────

    def get_ballot(self, proposal_id: int, voter: str) -> Optional[Ballot]:
        data = self.kv.get_json(ballot_key(proposal_id, voter))
        return Ballot.from_dict(data) if data is not None else None

    def record_ballot(self, ballot: Ballot) -> None:
        key = ballot_key(ballot.proposal_id, ballot.voter)
        if key in self.kv:
            raise AlreadyVoted(
                f"{ballot.voter} has already voted on proposal #{ballot.proposal_id}"
            )
        self.kv.set_json(key, ballot.to_dict())

    def list_ballots(
        self,
        proposal_id: int,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Ballot]:
        """Ascending by voter address."""
        prefix = ballot_prefix(proposal_id)
        after = prefix + start_after if start_after is not None else None
        rows = self.kv.scan_json(prefix, start_after=after, limit=limit)
        return [Ballot.from_dict(data) for _, data in rows]

    def tally(self, proposal_id: int) -> Tally:
        """Recomputed from stored ballots on every call."""
        return tally_from_weights(
            (b.vote.wire_name, b.weight) for b in self.list_ballots(proposal_id)
        )

    def __repr__(self) -> str:
        return f"<ProposalStore proposals={self.proposal_count()} kv={self.kv!r}>"
