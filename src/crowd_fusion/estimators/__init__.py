"""
Estimators Module
=================

Independent, failure-prone people-count estimators.

This module treats every vision model as a pluggable black box. The
fusion engine consumes ONLY the normalized Estimates produced here.

Components:
    - Adapters: Raw model output -> Estimate
    - Backends: Model call protocols and deterministic mocks
    - Estimators: Model + adapter per kind
    - EstimatorRegistry: Availability, readiness and concurrent dispatch
    - create_loaders: Per-kind loaders for the configured backend

The transformers backend is imported lazily by the factory so the
package works without the optional model dependencies.
"""

from crowd_fusion.estimators.adapters import (
    adapt_density,
    adapt_detections,
    adapt_faces,
    adapt_zero_shot,
    best_label,
    select_person_samples,
)
from crowd_fusion.estimators.backends import (
    MockDensityModel,
    MockDetectionModel,
    MockFaceModel,
    MockZeroShotModel,
)
from crowd_fusion.estimators.engine import (
    DensityEstimator,
    DetectionEstimator,
    Estimator,
    FaceEstimator,
    ZeroShotEstimator,
)
from crowd_fusion.estimators.registry import EstimatorRegistry, EstimatorSlot
from crowd_fusion.estimators.factory import create_loaders

__all__ = [
    "adapt_density",
    "adapt_detections",
    "adapt_faces",
    "adapt_zero_shot",
    "best_label",
    "select_person_samples",
    "MockDensityModel",
    "MockDetectionModel",
    "MockFaceModel",
    "MockZeroShotModel",
    "Estimator",
    "DetectionEstimator",
    "DensityEstimator",
    "FaceEstimator",
    "ZeroShotEstimator",
    "EstimatorRegistry",
    "EstimatorSlot",
    "create_loaders",
]
