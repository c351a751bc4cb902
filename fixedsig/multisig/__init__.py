"""
fixedsig Multisig — fixed-membership weighted governance

Provides:
  - BlockInfo / Duration / Expiration / clocks            (timing.py)
  - Voter / VoterRegistry                                 (registry.py)
  - AbsoluteCount / AbsolutePercentage / ThresholdQuorum  (threshold.py)
  - Proposal / ProposalStatus / Ballot / VoteOption       (proposals.py)
  - ProposalStore                                         (store.py)
  - ExecutionDispatcher / LocalSandbox                    (dispatch.py)
  - VotingEngine / EngineConfig                           (engine.py)
  - QueryLayer                                            (queries.py)
"""

from .timing import (
    BlockInfo,
    Duration,
    DurationKind,
    Expiration,
    ExpirationKind,
    ManualClock,
    SystemClock,
)
from .registry import Voter, VoterRegistry
from .threshold import (
    AbsoluteCount,
    AbsolutePercentage,
    Tally,
    ThresholdOutcome,
    ThresholdQuorum,
    ThresholdSpec,
    evaluate,
    evaluate_tally,
    threshold_from_dict,
    threshold_to_dict,
    validate,
)
from .proposals import Ballot, Proposal, ProposalStatus, VoteOption
from .store import ProposalStore
from .dispatch import (
    BANK_CONTRACT,
    ContractState,
    ExecutionDispatcher,
    LocalSandbox,
    Sandbox,
    bank_balance,
    bank_handler,
)
from .engine import EngineConfig, VotingEngine
from .queries import QueryLayer

__all__ = [
    # Timing
    "BlockInfo",
    "Duration",
    "DurationKind",
    "Expiration",
    "ExpirationKind",
    "ManualClock",
    "SystemClock",
    # Registry
    "Voter",
    "VoterRegistry",
    # Threshold
    "AbsoluteCount",
    "AbsolutePercentage",
    "Tally",
    "ThresholdOutcome",
    "ThresholdQuorum",
    "ThresholdSpec",
    "evaluate",
    "evaluate_tally",
    "threshold_from_dict",
    "threshold_to_dict",
    "validate",
    # Proposals
    "Ballot",
    "Proposal",
    "ProposalStatus",
    "VoteOption",
    "ProposalStore",
    # Execution
    "BANK_CONTRACT",
    "ContractState",
    "ExecutionDispatcher",
    "LocalSandbox",
    "Sandbox",
    "bank_balance",
    "bank_handler",
    # Engine
    "EngineConfig",
    "VotingEngine",
    "QueryLayer",
]
