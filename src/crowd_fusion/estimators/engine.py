"""
Estimators
==========

One estimator per kind: calls its model, then its adapter.

Estimators are the handles held by the registry once a kind has loaded.
They are stateless across runs; every call produces a fresh Estimate.

Design Rules:
    - Takes AnalysisImage directly (already decoded)
    - Returns an Estimate or raises (EstimatorFailure or the model's error)
    - ZeroShotEstimator needs the DIRECT_DETECTION estimate of the same run
"""

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from crowd_fusion.estimators.adapters import (
    adapt_density,
    adapt_detections,
    adapt_faces,
    adapt_zero_shot,
    best_label,
    select_person_samples,
)
from crowd_fusion.estimators.backends import (
    DensityModel,
    DetectionModel,
    FaceModel,
    ZeroShotModel,
)
from crowd_fusion.imaging.decoder import crop_box, prepare_density_tensor
from crowd_fusion.imaging.image import AnalysisImage
from crowd_fusion.models.estimate import Estimate, EstimatorKind


logger = logging.getLogger(__name__)


class Estimator(Protocol):
    """
    Protocol for estimators.

    All implementations expose their `kind` and an async `estimate`
    method. `detection` is only consulted by ZERO_SHOT_CROP.
    """

    kind: EstimatorKind

    async def estimate(
        self,
        image: AnalysisImage,
        detection: Optional[Estimate] = None,
    ) -> Estimate:
        ...


class DetectionEstimator:
    """
    Direct object detection estimator.

    Attributes:
        model: Object detection model
        score_threshold: Minimum detection score kept (default 0.7)
    """

    kind = EstimatorKind.DIRECT_DETECTION

    def __init__(self, model: DetectionModel, score_threshold: float = 0.7) -> None:
        if not 0.0 <= score_threshold <= 1.0:
            raise ValueError("score_threshold must be in [0, 1]")
        self.model = model
        self.score_threshold = score_threshold

    async def estimate(
        self,
        image: AnalysisImage,
        detection: Optional[Estimate] = None,
    ) -> Estimate:
        raw = await self.model.detect(image, self.score_threshold)
        return adapt_detections(raw, self.score_threshold)


class DensityEstimator:
    """
    Density regression estimator.

    Prepares the fixed-size, channel-first input tensor and sums the
    returned density map.

    Attributes:
        model: Density regression model
        input_width, input_height: Model input size (default 1024x768)
    """

    kind = EstimatorKind.DENSITY_REGRESSION

    def __init__(
        self,
        model: DensityModel,
        input_width: int = 1024,
        input_height: int = 768,
    ) -> None:
        self.model = model
        self.input_width = input_width
        self.input_height = input_height

    async def estimate(
        self,
        image: AnalysisImage,
        detection: Optional[Estimate] = None,
    ) -> Estimate:
        tensor = await asyncio.to_thread(
            prepare_density_tensor,
            image,
            self.input_width,
            self.input_height,
        )
        raw = await self.model.predict(tensor)
        return adapt_density(raw)


class FaceEstimator:
    """
    Face demographic estimator.

    Attributes:
        model: Face analysis model
        child_age: Faces younger than this count as children
    """

    kind = EstimatorKind.FACE_DEMOGRAPHIC

    def __init__(self, model: FaceModel, child_age: float = 18.0) -> None:
        self.model = model
        self.child_age = child_age

    async def estimate(
        self,
        image: AnalysisImage,
        detection: Optional[Estimate] = None,
    ) -> Estimate:
        raw = await self.model.analyze(image)
        return adapt_faces(raw, self.child_age)


class ZeroShotEstimator:
    """
    Zero-shot crop estimator.

    Classifies up to `max_samples` person crops taken from the detection
    estimate of the same run. Its person_count is the number of crops
    classified, never a scene-wide count.

    Attributes:
        model: Zero-shot classification model
        labels: Candidate labels (man, woman, child)
        max_samples: Sampling cap
    """

    kind = EstimatorKind.ZERO_SHOT_CROP

    def __init__(
        self,
        model: ZeroShotModel,
        labels: Sequence[str] = ("man", "woman", "child"),
        max_samples: int = 20,
    ) -> None:
        if max_samples < 1:
            raise ValueError("max_samples must be at least 1")
        self.model = model
        self.labels = tuple(labels)
        self.max_samples = max_samples

    async def estimate(
        self,
        image: AnalysisImage,
        detection: Optional[Estimate] = None,
    ) -> Estimate:
        if detection is None:
            raise ValueError("ZeroShotEstimator requires a direct detection estimate")

        samples = select_person_samples(detection, self.max_samples)
        crop_labels = []
        for box in samples:
            crop = crop_box(image, box)
            ranked = await self.model.classify(crop, self.labels)
            crop_labels.append(best_label(ranked, self.labels))

        logger.debug(
            f"Zero-shot: classified {len(crop_labels)} of "
            f"{detection.person_count} detected people"
        )
        return adapt_zero_shot(crop_labels, self.labels)
