"""
Threshold Policy

A closed set of pass rules, each a frozen dataclass:

  - AbsoluteCount{weight}                passes when yes ≥ weight
  - AbsolutePercentage{percentage}       passes when yes ≥ ⌈percentage × total⌉
  - ThresholdQuorum{threshold, quorum}   passes when participation ≥ ⌈quorum × total⌉
                                         and yes ≥ ⌈threshold × (total − abstain)⌉

Evaluation is a pure function of the tally and the snapshotted total weight.
Passed is checked before Rejected so that a decided outcome never flaps.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import Any, Dict, Iterable, Union

from ..constants import MAX_PERCENTAGE, MIN_THRESHOLD_PERCENTAGE
from ..exceptions import InvalidThreshold


# ══════════════════════════════════════════════════════════════════════
#  THRESHOLD VARIANTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AbsoluteCount:
    weight: int


@dataclass(frozen=True)
class AbsolutePercentage:
    percentage: Decimal


@dataclass(frozen=True)
class ThresholdQuorum:
    threshold: Decimal
    quorum: Decimal


ThresholdSpec = Union[AbsoluteCount, AbsolutePercentage, ThresholdQuorum]


class ThresholdOutcome(IntEnum):
    OPEN = 1
    PASSED = 2
    REJECTED = 3


@dataclass(frozen=True)
class Tally:
    """Summed ballot weights for one proposal."""
    yes: int = 0
    no: int = 0
    abstain: int = 0
    veto: int = 0

    @property
    def total(self) -> int:
        """All weight that has voted, abstain and veto included."""
        return self.yes + self.no + self.abstain + self.veto

    @property
    def opposed(self) -> int:
        """Non-yes opinions."""
        return self.no + self.veto

    def to_dict(self) -> Dict[str, int]:
        return {
            "yes": self.yes,
            "no": self.no,
            "abstain": self.abstain,
            "veto": self.veto,
            "total": self.total,
        }


# ══════════════════════════════════════════════════════════════════════
#  ARITHMETIC
# ══════════════════════════════════════════════════════════════════════

def votes_needed(weight: int, percentage: Decimal) -> int:
    """⌈weight × percentage⌉ computed exactly."""
    return math.ceil(Decimal(weight) * percentage)


def required_yes(spec: ThresholdSpec, tally: Tally, total_weight: int) -> int:
    """Yes weight needed to pass given the abstentions already cast."""
    if isinstance(spec, AbsoluteCount):
        return spec.weight
    if isinstance(spec, AbsolutePercentage):
        return votes_needed(total_weight, spec.percentage)
    if isinstance(spec, ThresholdQuorum):
        return votes_needed(total_weight - tally.abstain, spec.threshold)
    raise TypeError(f"Unknown threshold spec: {spec!r}")


def quorum_reached(spec: ThresholdSpec, tally: Tally, total_weight: int) -> bool:
    if isinstance(spec, ThresholdQuorum):
        return tally.total >= votes_needed(total_weight, spec.quorum)
    return True


def is_passed(spec: ThresholdSpec, tally: Tally, total_weight: int) -> bool:
    return (
        quorum_reached(spec, tally, total_weight)
        and tally.yes >= required_yes(spec, tally, total_weight)
    )


def is_rejected(spec: ThresholdSpec, tally: Tally, total_weight: int) -> bool:
    """
    True once the proposal can no longer pass even if every voter who has
    not voted yet votes yes.

    If all remaining weight votes yes, participation is the full registry so
    quorum is always met; only the yes requirement can fail.
    """
    max_yes = total_weight - tally.opposed - tally.abstain
    return max_yes < required_yes(spec, tally, total_weight)


def evaluate_tally(
    spec: ThresholdSpec,
    tally: Tally,
    total_weight: int,
    expired: bool = False,
) -> ThresholdOutcome:
    """Passed first, then early rejection, then rejection at expiry."""
    if is_passed(spec, tally, total_weight):
        return ThresholdOutcome.PASSED
    if expired or is_rejected(spec, tally, total_weight):
        return ThresholdOutcome.REJECTED
    return ThresholdOutcome.OPEN


def evaluate(
    spec: ThresholdSpec,
    yes: int,
    no: int,
    abstain: int,
    total: int,
    veto: int = 0,
) -> ThresholdOutcome:
    return evaluate_tally(spec, Tally(yes=yes, no=no, abstain=abstain, veto=veto), total)


# ══════════════════════════════════════════════════════════════════════
#  VALIDATION
# ══════════════════════════════════════════════════════════════════════

def validate(spec: ThresholdSpec, total_weight: int) -> None:
    """
    Reject specs that are malformed or can never pass for *total_weight*.

    Raises InvalidThreshold.
    """
    if isinstance(spec, AbsoluteCount):
        if spec.weight <= 0:
            raise InvalidThreshold("AbsoluteCount weight must be positive")
        if spec.weight > total_weight:
            raise InvalidThreshold(
                f"AbsoluteCount weight {spec.weight} exceeds total weight {total_weight}"
            )
    elif isinstance(spec, AbsolutePercentage):
        _check_percentage("percentage", spec.percentage, Decimal("0"), exclusive_low=True)
    elif isinstance(spec, ThresholdQuorum):
        _check_percentage("threshold", spec.threshold, MIN_THRESHOLD_PERCENTAGE)
        _check_percentage("quorum", spec.quorum, Decimal("0"), exclusive_low=True)
    else:
        raise InvalidThreshold(f"Unknown threshold spec: {spec!r}")


def _check_percentage(name: str, value: Decimal, low: Decimal, exclusive_low: bool = False):
    if not isinstance(value, Decimal) or not value.is_finite():
        raise InvalidThreshold(f"{name} must be a finite decimal, got {value!r}")
    too_low = value <= low if exclusive_low else value < low
    if too_low:
        bound = f"> {low}" if exclusive_low else f">= {low}"
        raise InvalidThreshold(f"{name} {value} must be {bound}")
    if value > MAX_PERCENTAGE:
        raise InvalidThreshold(f"{name} {value} is unreachable (> {MAX_PERCENTAGE})")


# ══════════════════════════════════════════════════════════════════════
#  SERIALIZATION
# ══════════════════════════════════════════════════════════════════════

def _decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidThreshold(f"{name} is not a decimal: {value!r}") from e


def threshold_to_dict(spec: ThresholdSpec) -> Dict[str, Any]:
    """Tagged form, e.g. ``{"absolute_count": {"weight": 2}}``."""
    if isinstance(spec, AbsoluteCount):
        return {"absolute_count": {"weight": spec.weight}}
    if isinstance(spec, AbsolutePercentage):
        return {"absolute_percentage": {"percentage": str(spec.percentage)}}
    if isinstance(spec, ThresholdQuorum):
        return {
            "threshold_quorum": {
                "threshold": str(spec.threshold),
                "quorum": str(spec.quorum),
            }
        }
    raise TypeError(f"Unknown threshold spec: {spec!r}")


def threshold_from_dict(data: Dict[str, Any]) -> ThresholdSpec:
    if not isinstance(data, dict) or len(data) != 1:
        raise InvalidThreshold(f"Threshold must have exactly one variant tag, got {data!r}")
    (tag, body), = data.items()
    body = body or {}
    try:
        if tag == "absolute_count":
            return AbsoluteCount(weight=int(body["weight"]))
        if tag == "absolute_percentage":
            return AbsolutePercentage(percentage=_decimal(body["percentage"], "percentage"))
        if tag == "threshold_quorum":
            return ThresholdQuorum(
                threshold=_decimal(body["threshold"], "threshold"),
                quorum=_decimal(body["quorum"], "quorum"),
            )
    except KeyError as e:
        raise InvalidThreshold(f"Threshold {tag} missing field {e}") from e
    except (TypeError, ValueError) as e:
        raise InvalidThreshold(f"Threshold {tag} is malformed: {e}") from e
    raise InvalidThreshold(f"Unknown threshold variant: {tag}")


def tally_from_weights(pairs: Iterable[tuple]) -> Tally:
    """Build a Tally from (vote_name, weight) pairs."""
    sums = {"yes": 0, "no": 0, "abstain": 0, "veto": 0}
    for vote, weight in pairs:
        sums[vote] += weight
    return Tally(**sums)
