"""
fixedsig Exceptions

Custom exception classes for the fixed-membership multisig engine.
"""


class FixedSigException(Exception):
    """Base exception for fixedsig."""
    pass


class ConfigurationError(FixedSigException, ValueError):
    """Configuration error."""
    pass


class StorageError(FixedSigException):
    """Key-value store failure."""
    pass


# ══════════════════════════════════════════════════════════════════════
#  MULTISIG TAXONOMY
# ══════════════════════════════════════════════════════════════════════

class MultisigError(FixedSigException):
    """Base multisig error. ``code`` is stable and surfaced over RPC."""
    code = "MultisigError"


class Unauthorized(MultisigError):
    """Caller is not a registered voter."""
    code = "Unauthorized"


class NotFound(MultisigError):
    """Unknown proposal."""
    code = "NotFound"


class AlreadyVoted(MultisigError):
    """A ballot for this (proposal, voter) pair already exists."""
    code = "AlreadyVoted"


class WrongStatus(MultisigError):
    """Operation is illegal in the proposal's current lifecycle state."""
    code = "WrongStatus"


class Expired(MultisigError):
    """Proposal deadline has passed."""
    code = "Expired"


class NotExpired(MultisigError):
    """Close attempted before the proposal deadline."""
    code = "NotExpired"


class WrongExpiration(MultisigError):
    """Explicit expiry is of the wrong kind or already in the past."""
    code = "WrongExpiration"


class InvalidProposal(MultisigError):
    """Proposal data is malformed (e.g. empty title)."""
    code = "InvalidProposal"


class EmptyBatch(MultisigError):
    """Proposal carries no actions and empty batches are disabled."""
    code = "EmptyBatch"


class ExternalFailure(MultisigError):
    """The execution sandbox rejected the dispatched batch."""
    code = "ExternalFailure"


# -- Construction-time -------------------------------------------------

class InstantiationError(MultisigError):
    """Engine could not be created."""
    code = "InstantiationError"


class InvalidThreshold(InstantiationError):
    """Threshold spec is malformed or unreachable for the registry."""
    code = "InvalidThreshold"


class InvalidVotingPeriod(InstantiationError):
    """Max voting period is zero or malformed."""
    code = "InvalidVotingPeriod"


class DuplicateVoter(InstantiationError):
    """Voter address appears more than once."""
    code = "DuplicateVoter"


class ZeroWeight(InstantiationError):
    """Voter weight is zero."""
    code = "ZeroWeight"


class EmptyRegistry(InstantiationError):
    """No voters given."""
    code = "EmptyRegistry"
