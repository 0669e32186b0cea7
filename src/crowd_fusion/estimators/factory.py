"""
Estimator Factory
=================

Builds the per-kind loaders for the configured backend.

A loader is a zero-argument callable that constructs one estimator. The
registry runs each loader in a worker thread, so loaders may block on
model downloads.
"""

import logging
from functools import partial
from typing import Dict

from crowd_fusion.config import EstimatorsConfig
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
from crowd_fusion.estimators.registry import Loader
from crowd_fusion.models.estimate import EstimatorKind


logger = logging.getLogger(__name__)


def _mock_detection(config: EstimatorsConfig) -> Estimator:
    return DetectionEstimator(
        MockDetectionModel(person_count=config.mock.person_count),
        score_threshold=config.detection.score_threshold,
    )


def _mock_density(config: EstimatorsConfig) -> Estimator:
    return DensityEstimator(
        MockDensityModel(total=config.mock.density_total),
        input_width=config.density.input_width,
        input_height=config.density.input_height,
    )


def _mock_face(config: EstimatorsConfig) -> Estimator:
    return FaceEstimator(
        MockFaceModel(face_count=config.mock.face_count),
        child_age=config.face.child_age,
    )


def _mock_zero_shot(config: EstimatorsConfig) -> Estimator:
    return ZeroShotEstimator(
        MockZeroShotModel(),
        labels=config.zero_shot.labels,
        max_samples=config.zero_shot.max_samples,
    )


def _transformers_detection(config: EstimatorsConfig) -> Estimator:
    from crowd_fusion.estimators.transformers_backend import TransformersDetectionModel

    return DetectionEstimator(
        TransformersDetectionModel(config.detection.model, device=config.device),
        score_threshold=config.detection.score_threshold,
    )


def _torchscript_density(config: EstimatorsConfig) -> Estimator:
    from crowd_fusion.estimators.transformers_backend import TorchScriptDensityModel

    return DensityEstimator(
        TorchScriptDensityModel(config.density.model_path, device=config.device),
        input_width=config.density.input_width,
        input_height=config.density.input_height,
    )


def _transformers_face(config: EstimatorsConfig) -> Estimator:
    from crowd_fusion.estimators.transformers_backend import TransformersFaceModel

    return FaceEstimator(
        TransformersFaceModel(
            age_model=config.face.age_model,
            gender_model=config.face.gender_model,
            min_face_size=config.face.min_face_size,
            device=config.device,
        ),
        child_age=config.face.child_age,
    )


def _transformers_zero_shot(config: EstimatorsConfig) -> Estimator:
    from crowd_fusion.estimators.transformers_backend import TransformersZeroShotModel

    return ZeroShotEstimator(
        TransformersZeroShotModel(config.zero_shot.model, device=config.device),
        labels=config.zero_shot.labels,
        max_samples=config.zero_shot.max_samples,
    )


_BACKENDS = {
    "mock": {
        EstimatorKind.DIRECT_DETECTION: _mock_detection,
        EstimatorKind.DENSITY_REGRESSION: _mock_density,
        EstimatorKind.FACE_DEMOGRAPHIC: _mock_face,
        EstimatorKind.ZERO_SHOT_CROP: _mock_zero_shot,
    },
    "transformers": {
        EstimatorKind.DIRECT_DETECTION: _transformers_detection,
        EstimatorKind.DENSITY_REGRESSION: _torchscript_density,
        EstimatorKind.FACE_DEMOGRAPHIC: _transformers_face,
        EstimatorKind.ZERO_SHOT_CROP: _transformers_zero_shot,
    },
}


def create_loaders(config: EstimatorsConfig) -> Dict[EstimatorKind, Loader]:
    """
    Create one loader per estimator kind for the configured backend.

    Fails fast on an unknown backend name.

    Raises:
        ValueError: If the backend is unknown
    """
    builders = _BACKENDS.get(config.backend)
    if builders is None:
        raise ValueError(
            f"Unknown estimator backend: {config.backend} "
            f"(expected one of {sorted(_BACKENDS)})"
        )

    logger.info(f"Using {config.backend} estimator backend")
    return {kind: partial(build, config) for kind, build in builders.items()}
