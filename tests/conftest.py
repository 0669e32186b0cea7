"""
Test Configuration
==================

Pytest fixtures and test configuration for CrowdCountFusion.
"""

import asyncio
from typing import Optional

import cv2
import numpy as np
import pytest

from crowd_fusion.imaging.image import AnalysisImage
from crowd_fusion.models.availability import EstimatorFailure, FailureReason
from crowd_fusion.models.estimate import Estimate, EstimatorKind


class StaticEstimator:
    """Estimator that returns a fixed estimate, optionally after a delay."""

    def __init__(self, estimate: Estimate, delay: float = 0.0) -> None:
        self.kind = estimate.kind
        self._estimate = estimate
        self.delay = delay
        self.calls = 0
        self.cancelled = False

    async def estimate(self, image: AnalysisImage, detection: Optional[Estimate] = None) -> Estimate:
        self.calls += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return self._estimate


class FailingEstimator:
    """Estimator that always raises."""

    def __init__(self, kind: EstimatorKind, error: Optional[Exception] = None) -> None:
        self.kind = kind
        self.error = error or RuntimeError("model exploded")
        self.calls = 0

    async def estimate(self, image: AnalysisImage, detection: Optional[Estimate] = None) -> Estimate:
        self.calls += 1
        raise self.error


class RecordingZeroShotEstimator:
    """Zero-shot stand-in that records the detection it was handed."""

    kind = EstimatorKind.ZERO_SHOT_CROP

    def __init__(self) -> None:
        self.seen_detection: Optional[Estimate] = None

    async def estimate(self, image: AnalysisImage, detection: Optional[Estimate] = None) -> Estimate:
        self.seen_detection = detection
        return make_estimate(EstimatorKind.ZERO_SHOT_CROP, 2)


def make_estimate(kind: EstimatorKind, count: int) -> Estimate:
    """Minimal estimate of `kind` with `count` people."""
    return Estimate(kind=kind, person_count=count)


def invalid_output(kind: EstimatorKind) -> EstimatorFailure:
    return EstimatorFailure(kind, FailureReason.INVALID_OUTPUT, "garbage")


@pytest.fixture
def rgb_pixels():
    """Provide a 120x160 RGB gradient image."""
    ys = np.linspace(0, 255, 120, dtype=np.uint8)[:, None]
    xs = np.linspace(0, 255, 160, dtype=np.uint8)[None, :]
    pixels = np.zeros((120, 160, 3), dtype=np.uint8)
    pixels[..., 0] = ys
    pixels[..., 1] = xs
    pixels[..., 2] = 128
    return pixels


@pytest.fixture
def sample_image(rgb_pixels):
    """Provide a decoded AnalysisImage."""
    return AnalysisImage.from_rgb(rgb_pixels)


@pytest.fixture
def png_bytes(rgb_pixels):
    """Provide the sample image encoded as PNG (BGR on disk, as OpenCV writes)."""
    ok, buffer = cv2.imencode(".png", cv2.cvtColor(rgb_pixels, cv2.COLOR_RGB2BGR))
    assert ok
    return buffer.tobytes()


@pytest.fixture
def sample_detections():
    """Provide raw detection output in the object detection call contract."""
    return [
        {"label": "person", "score": 0.98, "box": {"xmin": 10, "ymin": 10, "xmax": 40, "ymax": 90}},
        {"label": "person", "score": 0.91, "box": {"xmin": 50, "ymin": 12, "xmax": 80, "ymax": 95}},
        {"label": "person", "score": 0.72, "box": {"xmin": 90, "ymin": 8, "xmax": 120, "ymax": 88}},
        {"label": "person", "score": 0.45, "box": {"xmin": 130, "ymin": 5, "xmax": 150, "ymax": 60}},
        {"label": "dog", "score": 0.88, "box": {"xmin": 100, "ymin": 90, "xmax": 140, "ymax": 118}},
        {"label": "chair", "score": 0.71, "box": {"xmin": 0, "ymin": 95, "xmax": 20, "ymax": 119}},
    ]


@pytest.fixture
def sample_faces():
    """Provide raw face analysis output."""
    return [
        {"age": 34, "gender": "male", "box": {"xmin": 12, "ymin": 12, "xmax": 30, "ymax": 30}},
        {"age": 27, "gender": "Female", "box": {"xmin": 55, "ymin": 14, "xmax": 72, "ymax": 31}},
        {"age": 8, "gender": "male", "box": {"xmin": 92, "ymin": 10, "xmax": 108, "ymax": 26}},
    ]
