"""
Query Layer

Read-only views over one multisig instance. Nothing here writes to the store;
proposals that are Open past their deadline are reported as REJECTED (the
status lazy finalization would commit) without persisting it.
"""

from typing import Any, Dict, List, Optional

from ..constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ..logger import get_logger
from .engine import VotingEngine
from .proposals import Ballot, Proposal, ProposalStatus
from .threshold import evaluate_tally, required_yes, threshold_to_dict
from .timing import BlockInfo

logger = get_logger(__name__)


def clamp_limit(limit: Optional[int]) -> int:
    """Page size: default when unset, capped at the maximum."""
    if limit is None:
        return DEFAULT_QUERY_LIMIT
    return max(0, min(int(limit), MAX_QUERY_LIMIT))


def proposal_view(proposal: Proposal, block: BlockInfo) -> Dict[str, Any]:
    data = proposal.to_dict()
    data["status"] = proposal.effective_status(block).name
    return data


def ballot_view(ballot: Ballot) -> Dict[str, Any]:
    return {
        "voter": ballot.voter,
        "vote": ballot.vote.wire_name,
        "weight": ballot.weight,
        "height": ballot.height,
    }


class QueryLayer:
    """Serializable read access for RPC and CLI callers."""

    def __init__(self, engine: VotingEngine):
        self._store = engine.store
        self._registry = engine.registry
        self._config = engine.config

    # ── Proposals ─────────────────────────────────────────────────────

    def proposal(self, proposal_id: int, block: BlockInfo) -> Dict[str, Any]:
        """Raises NotFound."""
        return proposal_view(self._store.require(proposal_id), block)

    def list_proposals(
        self,
        block: BlockInfo,
        start_after: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        proposals = self._store.list(start_after=start_after, limit=clamp_limit(limit))
        return [proposal_view(p, block) for p in proposals]

    def reverse_proposals(
        self,
        block: BlockInfo,
        start_before: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        proposals = self._store.list_reverse(
            start_before=start_before, limit=clamp_limit(limit)
        )
        return [proposal_view(p, block) for p in proposals]

    # ── Ballots ───────────────────────────────────────────────────────

    def vote(self, proposal_id: int, voter: str) -> Optional[Dict[str, Any]]:
        """None when *voter* has not voted; raises NotFound for unknown proposals."""
        self._store.require(proposal_id)
        ballot = self._store.get_ballot(proposal_id, voter)
        return ballot_view(ballot) if ballot is not None else None

    def list_votes(
        self,
        proposal_id: int,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._store.require(proposal_id)
        ballots = self._store.list_ballots(
            proposal_id, start_after=start_after, limit=clamp_limit(limit)
        )
        return [ballot_view(b) for b in ballots]

    # ── Threshold ─────────────────────────────────────────────────────

    def threshold(
        self, block: BlockInfo, proposal_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Without an id: the instance's configured rule and current total weight.
        With an id: the proposal's snapshotted rule plus its tally. The outcome
        of an Open proposal is evaluated at *block*, so one past its deadline
        reads REJECTED; settled proposals report their stored status.
        """
        if proposal_id is None:
            return {
                "threshold": threshold_to_dict(self._config.threshold),
                "total_weight": self._registry.total_weight(),
            }

        proposal = self._store.require(proposal_id)
        tally = self._store.tally(proposal_id)
        if proposal.status == ProposalStatus.OPEN:
            outcome = evaluate_tally(
                proposal.threshold,
                tally,
                proposal.total_weight,
                expired=proposal.is_expired(block),
            ).name
        else:
            outcome = proposal.status.name
        return {
            "threshold": threshold_to_dict(proposal.threshold),
            "total_weight": proposal.total_weight,
            "tally": tally.to_dict(),
            "required_yes": required_yes(proposal.threshold, tally, proposal.total_weight),
            "status": proposal.effective_status(block).name,
            "outcome": outcome,
        }

    # ── Voters ────────────────────────────────────────────────────────

    def voter(self, address: str) -> Dict[str, Any]:
        """Weight is None for non-members."""
        return {"address": address, "weight": self._registry.weight_of(address)}

    def voter_list(
        self,
        start_after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        voters = sorted(self._registry.voters, key=lambda v: v.address)
        if start_after is not None:
            voters = [v for v in voters if v.address > start_after]
        return [v.to_dict() for v in voters[:clamp_limit(limit)]]

    # ── Config ────────────────────────────────────────────────────────

    def config(self) -> Dict[str, Any]:
        data = self._config.to_dict()
        data["voter_count"] = len(self._registry)
        data["total_weight"] = self._registry.total_weight()
        data["proposal_count"] = self._store.proposal_count()
        return data
