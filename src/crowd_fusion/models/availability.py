"""
Availability and Failure Models
===============================

Process-wide estimator availability and the per-run failure taxonomy.

Availability is one-shot: every kind starts NOT_LOADED and moves exactly
once to LOADED, LOAD_FAILED or GAVE_UP. There is no reload.

Failures are per run. An estimator that fails during one analysis is
treated as absent for that analysis only.
"""

from dataclasses import dataclass
from enum import Enum

from crowd_fusion.models.estimate import EstimatorKind


class EstimatorAvailability(str, Enum):
    """
    Load state of one estimator kind.

    Attributes:
        NOT_LOADED: Load not finished (or not attempted)
        LOADED: Model ready for inference
        LOAD_FAILED: Load raised; capability excluded for the process
        GAVE_UP: Readiness wait exceeded its bound; proceeding without it
    """

    NOT_LOADED = "not_loaded"
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    GAVE_UP = "gave_up"

    @property
    def is_terminal(self) -> bool:
        return self is not EstimatorAvailability.NOT_LOADED


class FailureReason(str, Enum):
    """Why an estimator produced no estimate for a run."""

    MODEL_UNAVAILABLE = "model_unavailable"
    INFERENCE_ERROR = "inference_error"
    INVALID_OUTPUT = "invalid_output"


class EstimatorFailure(Exception):
    """
    Raised by adapters and estimators when no estimate can be produced.

    Attributes:
        kind: Estimator kind that failed
        reason: Failure category
    """

    def __init__(self, kind: EstimatorKind, reason: FailureReason, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.reason = reason
        self.message = message

    def __repr__(self) -> str:
        return f"EstimatorFailure({self.kind.value}, {self.reason.value}: {self.message})"


@dataclass(frozen=True, slots=True)
class FailureRecord:
    """Recorded failure of one estimator in one run."""

    kind: EstimatorKind
    reason: FailureReason
    message: str

    @classmethod
    def from_exception(cls, kind: EstimatorKind, exc: BaseException) -> "FailureRecord":
        """
        Classify an exception raised by an estimator call.

        EstimatorFailure keeps its own reason; anything else is an
        inference error.
        """
        if isinstance(exc, EstimatorFailure):
            return cls(kind=kind, reason=exc.reason, message=exc.message)
        return cls(
            kind=kind,
            reason=FailureReason.INFERENCE_ERROR,
            message=f"{type(exc).__name__}: {exc}",
        )

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "kind": self.kind.value,
            "reason": self.reason.value,
            "message": self.message,
        }
