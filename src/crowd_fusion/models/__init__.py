"""
Data Models
===========

Data models for CrowdCountFusion.

This module re-exports all data models for convenient access.

Models:
    Estimates:
        - EstimatorKind: The four estimator kinds
        - Estimate: Normalized output of one estimator run
        - Box, Demographics, ZeroShotBreakdown, DensityMap: Estimate parts

    Availability:
        - EstimatorAvailability: One-shot load state per kind
        - EstimatorFailure, FailureReason, FailureRecord: Per-run failures

    Fusion:
        - FusionReason: Reason codes with fixed notes
        - RegistryOutcome, RunStatus: Settled registry run
        - FusionResult: Reconciled count

    Output:
        - AnalysisResponse: Render model returned by the service
"""

from crowd_fusion.models.estimate import (
    KIND_ORDER,
    Box,
    Demographics,
    DensityMap,
    Estimate,
    EstimatorKind,
    ZeroShotBreakdown,
)
from crowd_fusion.models.availability import (
    EstimatorAvailability,
    EstimatorFailure,
    FailureReason,
    FailureRecord,
)
from crowd_fusion.models.reason_codes import FusionReason
from crowd_fusion.models.fusion import FusionResult, RegistryOutcome, RunStatus
from crowd_fusion.models.output import AnalysisResponse, EstimatorStatus

__all__ = [
    # Estimates
    "KIND_ORDER",
    "EstimatorKind",
    "Box",
    "Demographics",
    "ZeroShotBreakdown",
    "DensityMap",
    "Estimate",
    # Availability
    "EstimatorAvailability",
    "EstimatorFailure",
    "FailureReason",
    "FailureRecord",
    # Fusion
    "FusionReason",
    "RegistryOutcome",
    "RunStatus",
    "FusionResult",
    # Output
    "AnalysisResponse",
    "EstimatorStatus",
]
