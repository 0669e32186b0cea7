"""
Fusion Engine
=============

Reconciles the people counts of independent estimators into one count.

Policy (D = detection count, C = density count, F = face count):
    1. Neither C nor F:       final = D
    2. C and D present:
         C > ratio * D  ->    final = C            (dense scene)
         D > C          ->    final = D            (people visible)
         otherwise      ->    final = round((D + C) / 2)
    3. C present, D absent:   final = C
    4. F present, F > final:  final = F            (faces are a lower bound)
    5. Zero-shot crops never feed the count; their person_count is a
       sample size, not a scene estimate.

A run with no count-bearing estimate yields NO_DATA with a count of 0.
A run whose estimators agree on zero yields NO_PEOPLE.

Rounding is half-up to the nearest integer throughout.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from crowd_fusion.models.estimate import Estimate, EstimatorKind
from crowd_fusion.models.fusion import FusionResult
from crowd_fusion.models.reason_codes import FusionReason


logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round a non-negative value to the nearest integer, halves up."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class FusionPolicy:
    """
    Tunable constants of the fusion policy.

    Attributes:
        dense_crowd_ratio: Density counts above this multiple of the
            detection count mark the scene as a dense crowd
    """

    dense_crowd_ratio: float = 2.0

    def __post_init__(self) -> None:
        if self.dense_crowd_ratio <= 1.0:
            raise ValueError("dense_crowd_ratio must be greater than 1")


class FusionEngine:
    """
    Deterministic fusion of estimator outputs.

    The engine is stateless: fusing the same estimates twice yields the
    same FusionResult.

    Example:
        engine = FusionEngine()
        result = engine.fuse(outcome.estimates)
        print(result.final_count, result.note)
    """

    def __init__(self, policy: Optional[FusionPolicy] = None) -> None:
        self.policy = policy or FusionPolicy()

    def fuse(self, estimates: Iterable[Estimate]) -> FusionResult:
        """
        Compute the final count and its justification.

        Args:
            estimates: Successful estimates of one run, at most one per kind

        Returns:
            FusionResult with final count, reason code and note
        """
        per_estimator = {}
        for estimate in estimates:
            if estimate.kind in per_estimator:
                raise ValueError(f"Duplicate estimate for {estimate.kind.value}")
            per_estimator[estimate.kind] = estimate

        detection = per_estimator.get(EstimatorKind.DIRECT_DETECTION)
        density = per_estimator.get(EstimatorKind.DENSITY_REGRESSION)
        face = per_estimator.get(EstimatorKind.FACE_DEMOGRAPHIC)

        if detection is None and density is None and face is None:
            return self._result(0, FusionReason.NO_DATA, per_estimator)

        d = detection.person_count if detection is not None else 0
        c = density.person_count if density is not None else None
        f = face.person_count if face is not None else None

        # Body-based base count
        if c is None:
            final, reason = d, FusionReason.DIRECT_DETECTION
        elif detection is None:
            final, reason = c, FusionReason.DENSITY_ONLY
        elif c > self.policy.dense_crowd_ratio * d:
            final, reason = c, FusionReason.DENSE_SCENE
        elif d > c:
            final, reason = d, FusionReason.PEOPLE_VISIBLE
        else:
            final, reason = round_half_up((d + c) / 2), FusionReason.AVERAGED

        # Faces are a hard lower bound on people present
        if f is not None and f > final:
            final, reason = f, FusionReason.FACE_OVERRIDE

        if final == 0:
            reason = FusionReason.NO_PEOPLE

        return self._result(final, reason, per_estimator)

    @staticmethod
    def _result(final: int, reason: FusionReason, per_estimator: dict) -> FusionResult:
        result = FusionResult(
            final_count=final,
            reason=reason,
            note=reason.note,
            per_estimator=per_estimator,
        )
        logger.debug(f"Fusion: {result.to_dict()}")
        return result
