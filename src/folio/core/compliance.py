"""Compliance scoring strategies.

A strategy turns the final violation list, plus whatever confidence the model
reported about itself, into a score in [0, 100]. The persistence gate compares
that score with the policy minimum.

``penalty`` (default)
    Start from the self-reported confidence (100 when the model reported
    none) and subtract ``penalty_per_violation`` for every violation.

``zero_on_violation``
    Any violation scores 0; otherwise the self-reported confidence (or 100).
"""

from typing import List, Optional, Protocol

from .config import CompliancePolicy

MAX_SCORE = 100.0
MIN_SCORE = 0.0


def clamp_score(value: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, float(value)))


class ComplianceStrategy(Protocol):
    name: str

    def score(self, violations: List[str], self_reported_confidence: Optional[float]) -> float: ...


class PenaltyPerViolationStrategy:
    name = "penalty"

    def __init__(self, penalty_per_violation: float = 15.0):
        self.penalty_per_violation = penalty_per_violation

    def score(self, violations: List[str], self_reported_confidence: Optional[float]) -> float:
        base = MAX_SCORE if self_reported_confidence is None else clamp_score(self_reported_confidence)
        return clamp_score(base - self.penalty_per_violation * len(violations))


class ZeroOnViolationStrategy:
    name = "zero_on_violation"

    def score(self, violations: List[str], self_reported_confidence: Optional[float]) -> float:
        if violations:
            return MIN_SCORE
        return MAX_SCORE if self_reported_confidence is None else clamp_score(self_reported_confidence)


def build_strategy(policy: CompliancePolicy) -> ComplianceStrategy:
    """Instantiate the strategy a policy names."""
    if policy.strategy == PenaltyPerViolationStrategy.name:
        return PenaltyPerViolationStrategy(policy.penalty_per_violation)
    if policy.strategy == ZeroOnViolationStrategy.name:
        return ZeroOnViolationStrategy()
    raise ValueError(f"Unknown compliance strategy: {policy.strategy}")


def stored_confidence(policy: CompliancePolicy, self_reported_confidence: Optional[float]) -> float:
    """Value for the ``confidence`` column; the policy default fills in when the model is silent."""
    if self_reported_confidence is None:
        return policy.default_self_confidence
    return clamp_score(self_reported_confidence)
