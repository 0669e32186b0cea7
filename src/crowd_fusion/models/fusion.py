"""
Fusion Models
=============

Result types produced by the estimator registry and the fusion engine.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from crowd_fusion.models.availability import FailureRecord
from crowd_fusion.models.estimate import Estimate, EstimatorKind
from crowd_fusion.models.reason_codes import FusionReason


class RunStatus(str, Enum):
    """
    Overall outcome of one registry run.

    Attributes:
        FULL: Every qualifying estimator succeeded
        PARTIAL: Some succeeded, some failed
        FAILED: Every qualifying estimator failed
        SKIPPED: No estimator qualified
    """

    FULL = "full"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class RegistryOutcome:
    """
    Settled result of dispatching estimators against one image.

    Attributes:
        estimates: Successful estimates in canonical kind order
        failures: Failures in canonical kind order
    """

    estimates: Tuple[Estimate, ...] = ()
    failures: Tuple[FailureRecord, ...] = ()

    @property
    def status(self) -> RunStatus:
        match (bool(self.estimates), bool(self.failures)):
            case (True, False):
                return RunStatus.FULL
            case (True, True):
                return RunStatus.PARTIAL
            case (False, True):
                return RunStatus.FAILED
            case _:
                return RunStatus.SKIPPED

    def get(self, kind: EstimatorKind) -> Optional[Estimate]:
        """Return the estimate for `kind`, or None if absent."""
        for estimate in self.estimates:
            if estimate.kind is kind:
                return estimate
        return None


@dataclass(frozen=True, slots=True)
class FusionResult:
    """
    Reconciled people count for one image.

    Attributes:
        final_count: Fused people count
        reason: Machine-readable code for the trusted signal
        note: Human-readable justification
        per_estimator: Estimates that fed the run, keyed by kind
    """

    final_count: int
    reason: FusionReason
    note: str
    per_estimator: Dict[EstimatorKind, Estimate] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return self.reason is not FusionReason.NO_DATA

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "final_count": self.final_count,
            "reason": self.reason.value,
            "note": self.note,
            "per_estimator": {
                kind.value: est.person_count for kind, est in self.per_estimator.items()
            },
        }
