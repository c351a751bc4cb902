"""
Voting Engine

Fixed-membership weighted multisig state machine.

Implements:
  - Propose: voter-only; optional proposer Yes ballot in the same transaction
  - Vote:    one immutable ballot per (proposal, voter); re-evaluates threshold
  - Execute: anyone; Passed and unexpired only; dispatches the whole batch once
  - Close:   anyone; force-rejects an Open proposal past its deadline

Every operation is one store transaction: a raised error leaves persisted
state untouched. Expired-but-Open proposals are finalized lazily: each
operation that touches a proposal first commits Open → Rejected if the
deadline has passed, independent of whether the operation itself succeeds.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import (
    EmptyBatch,
    Expired,
    ExternalFailure,
    InstantiationError,
    InvalidVotingPeriod,
    NotExpired,
    Unauthorized,
    WrongExpiration,
    WrongStatus,
)
from ..logger import get_logger
from ..storage.kv import KeyValueStore
from .dispatch import ExecutionDispatcher
from .proposals import Ballot, Proposal, ProposalStatus, VoteOption
from .registry import Voter, VoterRegistry
from .store import ProposalStore
from .threshold import (
    ThresholdOutcome,
    ThresholdSpec,
    evaluate_tally,
    threshold_from_dict,
    threshold_to_dict,
    validate,
)
from .timing import BlockInfo, Duration, Expiration

logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """
    Per-instance policy, persisted at instantiation.

    Attributes:
        threshold:                  Pass rule, snapshotted into each proposal
        max_voting_period:          Longest allowed proposal lifetime
        allow_empty_batch:          Accept proposals with no actions
        auto_vote_proposer:         Cast the proposer's Yes ballot on Propose
        reject_on_dispatch_failure: Failed Execute moves Passed → Rejected
                                    instead of leaving it retryable
    """
    threshold: ThresholdSpec
    max_voting_period: Duration
    allow_empty_batch: bool = False
    auto_vote_proposer: bool = True
    reject_on_dispatch_failure: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "threshold": threshold_to_dict(self.threshold),
            "max_voting_period": self.max_voting_period.to_dict(),
            "allow_empty_batch": self.allow_empty_batch,
            "auto_vote_proposer": self.auto_vote_proposer,
            "reject_on_dispatch_failure": self.reject_on_dispatch_failure,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        return cls(
            threshold=threshold_from_dict(data["threshold"]),
            max_voting_period=Duration.from_dict(data["max_voting_period"]),
            allow_empty_batch=bool(data.get("allow_empty_batch", False)),
            auto_vote_proposer=bool(data.get("auto_vote_proposer", True)),
            reject_on_dispatch_failure=bool(data.get("reject_on_dispatch_failure", False)),
        )


class VotingEngine:
    """
    Orchestrates propose / vote / execute / close against one store.

    Create with :meth:`instantiate` (fresh store) or :meth:`load` (store that
    already holds an instance). Independent engines share nothing.
    """

    def __init__(
        self,
        store: ProposalStore,
        registry: VoterRegistry,
        config: EngineConfig,
        dispatcher: ExecutionDispatcher,
    ):
        self.store = store
        self.registry = registry
        self.config = config
        self.dispatcher = dispatcher

    # ── Construction ──────────────────────────────────────────────────

    @classmethod
    def instantiate(
        cls,
        kv: KeyValueStore,
        voters: Iterable[Voter],
        threshold: ThresholdSpec,
        max_voting_period: Duration,
        dispatcher: ExecutionDispatcher,
        allow_empty_batch: bool = False,
        auto_vote_proposer: bool = True,
        reject_on_dispatch_failure: bool = False,
    ) -> "VotingEngine":
        """
        Validate and persist a new multisig instance.

        Raises:
            EmptyRegistry / DuplicateVoter / ZeroWeight: bad voter list
            InvalidThreshold:    threshold malformed or unreachable
            InvalidVotingPeriod: zero-length max voting period
            InstantiationError:  store already holds an instance
        """
        registry = VoterRegistry(voters)
        validate(threshold, registry.total_weight())
        if max_voting_period.is_zero:
            raise InvalidVotingPeriod(
                f"Max voting period must be positive, got {max_voting_period}"
            )

        config = EngineConfig(
            threshold=threshold,
            max_voting_period=max_voting_period,
            allow_empty_batch=allow_empty_batch,
            auto_vote_proposer=auto_vote_proposer,
            reject_on_dispatch_failure=reject_on_dispatch_failure,
        )
        store = ProposalStore(kv)
        with store.transaction():
            if store.load_config() is not None:
                raise InstantiationError("Store already holds a multisig instance")
            store.save_config(config.to_dict())
            store.save_voters(registry)

        logger.info(
            f"Multisig instantiated: {len(registry)} voters, "
            f"total weight {registry.total_weight()}, "
            f"threshold {threshold_to_dict(threshold)}, "
            f"max voting period {max_voting_period}"
        )
        return cls(store, registry, config, dispatcher)

    @classmethod
    def load(cls, kv: KeyValueStore, dispatcher: ExecutionDispatcher) -> "VotingEngine":
        """Re-open an instance persisted by :meth:`instantiate`."""
        store = ProposalStore(kv)
        data = store.load_config()
        if data is None:
            raise InstantiationError("Store holds no multisig instance")
        config = EngineConfig.from_dict(data)
        registry = store.load_voters()
        logger.info(
            f"Multisig loaded: {len(registry)} voters, "
            f"{store.proposal_count()} proposals"
        )
        return cls(store, registry, config, dispatcher)

    # ── Propose ───────────────────────────────────────────────────────

    def propose(
        self,
        sender: str,
        title: str,
        description: str,
        actions: List[Any],
        block: BlockInfo,
        latest: Optional[Expiration] = None,
    ) -> int:
        """
        Create a proposal and return its id.

        Raises Unauthorized, EmptyBatch, WrongExpiration, InvalidProposal.
        """
        weight = self.registry.weight_of(sender)
        if weight is None:
            raise Unauthorized(f"{sender} is not a voter")
        if not actions and not self.config.allow_empty_batch:
            raise EmptyBatch("Proposal must carry at least one action")

        expires = self._resolve_expiry(block, latest)

        with self.store.transaction():
            proposal = Proposal(
                id=0,
                title=title,
                description=description,
                proposer=sender,
                actions=list(actions),
                threshold=self.config.threshold,
                total_weight=self.registry.total_weight(),
                expires=expires,
                start_height=block.height,
            )
            proposal_id = self.store.create(proposal)
            logger.info(
                f"Proposal #{proposal_id} created by {sender}: '{title}' "
                f"({len(proposal.actions)} action(s), expires {expires})"
            )

            if self.config.auto_vote_proposer:
                self.store.record_ballot(Ballot(
                    proposal_id=proposal_id,
                    voter=sender,
                    vote=VoteOption.YES,
                    weight=weight,
                    height=block.height,
                ))
                self._reevaluate(proposal, block)
                self.store.save(proposal)

        return proposal_id

    def _resolve_expiry(self, block: BlockInfo, latest: Optional[Expiration]) -> Expiration:
        max_expires = self.config.max_voting_period.after(block)
        if latest is None:
            return max_expires
        if not latest.is_comparable(max_expires):
            raise WrongExpiration(
                f"Expiry {latest} must be of the same kind as the max voting "
                f"period ({max_expires.kind.value})"
            )
        if latest.is_expired(block):
            raise WrongExpiration(f"Expiry {latest} is already in the past")
        return min(latest, max_expires)

    # ── Vote ──────────────────────────────────────────────────────────

    def vote(
        self,
        sender: str,
        proposal_id: int,
        vote: VoteOption,
        block: BlockInfo,
    ) -> ProposalStatus:
        """
        Cast *sender*'s ballot and return the resulting proposal status.

        Raises Unauthorized, NotFound, Expired, WrongStatus, AlreadyVoted.
        """
        vote = VoteOption.parse(vote)
        weight = self.registry.weight_of(sender)
        if weight is None:
            raise Unauthorized(f"{sender} is not a voter")

        self._settle_expiry(proposal_id, block)

        with self.store.transaction():
            proposal = self.store.require(proposal_id)
            if proposal.is_expired(block):
                raise Expired(f"Proposal #{proposal_id} voting period has ended")
            if proposal.status != ProposalStatus.OPEN:
                raise WrongStatus(
                    f"Proposal #{proposal_id} is not open for voting "
                    f"(status={proposal.status.name})"
                )
            self.store.record_ballot(Ballot(
                proposal_id=proposal_id,
                voter=sender,
                vote=vote,
                weight=weight,
                height=block.height,
            ))
            logger.info(
                f"Vote: {sender} → {vote.name} on proposal #{proposal_id} "
                f"(weight={weight})"
            )
            self._reevaluate(proposal, block)
            self.store.save(proposal)

        return proposal.status

    def _reevaluate(self, proposal: Proposal, block: BlockInfo) -> None:
        """Apply the threshold outcome to an Open proposal in place."""
        if proposal.status != ProposalStatus.OPEN:
            return
        tally = self.store.tally(proposal.id)
        outcome = evaluate_tally(proposal.threshold, tally, proposal.total_weight)
        if outcome == ThresholdOutcome.PASSED:
            proposal.transition_to(
                ProposalStatus.PASSED,
                f"Threshold met (yes={tally.yes}/{proposal.total_weight})",
                block.height,
            )
        elif outcome == ThresholdOutcome.REJECTED:
            proposal.transition_to(
                ProposalStatus.REJECTED,
                f"Threshold unreachable (yes={tally.yes}, no={tally.opposed}, "
                f"abstain={tally.abstain})",
                block.height,
            )

    # ── Execute ───────────────────────────────────────────────────────

    def execute(self, sender: str, proposal_id: int, block: BlockInfo) -> Any:
        """
        Dispatch a Passed proposal's actions and mark it Executed.

        Anyone may trigger execution. Returns the sandbox's batch result.

        Raises NotFound, WrongStatus, Expired, ExternalFailure.
        """
        self._settle_expiry(proposal_id, block)

        try:
            with self.store.transaction():
                proposal = self.store.require(proposal_id)
                if proposal.status != ProposalStatus.PASSED:
                    raise WrongStatus(
                        f"Proposal #{proposal_id} is not PASSED "
                        f"(status={proposal.status.name})"
                    )
                if proposal.is_expired(block):
                    raise Expired(f"Proposal #{proposal_id} expired before execution")

                proposal.transition_to(
                    ProposalStatus.EXECUTED, f"Executed by {sender}", block.height
                )
                self.store.save(proposal)
                result = self.dispatcher.dispatch(proposal.actions)
        except ExternalFailure:
            if self.config.reject_on_dispatch_failure:
                with self.store.transaction():
                    self.store.update_status(
                        proposal_id,
                        ProposalStatus.REJECTED,
                        "Dispatch failed",
                        block.height,
                    )
            else:
                logger.warning(
                    f"Proposal #{proposal_id}: dispatch failed, remains PASSED for retry"
                )
            raise

        return result

    # ── Close ─────────────────────────────────────────────────────────

    def close(self, sender: str, proposal_id: int, block: BlockInfo) -> None:
        """
        Reject an Open proposal whose deadline has passed.

        Raises NotFound, WrongStatus, NotExpired.
        """
        with self.store.transaction():
            proposal = self.store.require(proposal_id)
            if proposal.status != ProposalStatus.OPEN:
                raise WrongStatus(
                    f"Proposal #{proposal_id} cannot be closed "
                    f"(status={proposal.status.name})"
                )
            if not proposal.is_expired(block):
                raise NotExpired(f"Proposal #{proposal_id} has not expired yet")
            proposal.transition_to(
                ProposalStatus.REJECTED, f"Closed by {sender} after expiry", block.height
            )
            self.store.save(proposal)

    # ── Lazy finalization ─────────────────────────────────────────────

    def _settle_expiry(self, proposal_id: int, block: BlockInfo) -> Proposal:
        """Commit Open → Rejected for an expired proposal. Raises NotFound."""
        with self.store.transaction():
            proposal = self.store.require(proposal_id)
            if proposal.status == ProposalStatus.OPEN and proposal.is_expired(block):
                proposal.transition_to(
                    ProposalStatus.REJECTED,
                    "Expired before reaching threshold",
                    block.height,
                )
                self.store.save(proposal)
        return proposal

    def __repr__(self) -> str:
        return (
            f"<VotingEngine voters={len(self.registry)} "
            f"proposals={self.store.proposal_count()}>"
        )
