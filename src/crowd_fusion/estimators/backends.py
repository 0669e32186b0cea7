"""
Model Backends
==============

Black-box model call contracts and a deterministic mock backend.

Each estimator kind delegates to one external model. This module defines
the Protocol each model must satisfy and mock implementations that
return stable, predictable output WITHOUT loading any weights.

Design Rules:
    - Models return RAW output; normalization is the adapters' job
    - All calls are async; blocking work belongs in a worker thread
    - Mocks are deterministic for a given image
"""

import logging
from typing import Any, Dict, List, Protocol, Sequence

import numpy as np
import torch

from crowd_fusion.imaging.image import AnalysisImage


logger = logging.getLogger(__name__)


# =============================================================================
# Protocols
# =============================================================================

class DetectionModel(Protocol):
    """Object detector: (image, threshold) -> [{label, score, box}]."""

    async def detect(self, image: AnalysisImage, threshold: float) -> List[Dict[str, Any]]:
        ...


class DensityModel(Protocol):
    """Density regressor: [1, 3, H, W] tensor -> {"density": grid}."""

    async def predict(self, tensor: torch.Tensor) -> Dict[str, Any]:
        ...


class FaceModel(Protocol):
    """Face analyzer: image -> [{box, age, gender}]."""

    async def analyze(self, image: AnalysisImage) -> List[Dict[str, Any]]:
        ...


class ZeroShotModel(Protocol):
    """Zero-shot classifier: (crop, labels) -> [{label, score}]."""

    async def classify(self, crop: np.ndarray, labels: Sequence[str]) -> List[Dict[str, Any]]:
        ...


# =============================================================================
# Mock backend
# =============================================================================

def _grid_boxes(image: AnalysisImage, count: int) -> List[Dict[str, float]]:
    """Lay `count` non-overlapping boxes out on a grid across the image."""
    if count <= 0:
        return []
    cols = int(np.ceil(np.sqrt(count)))
    rows = int(np.ceil(count / cols))
    cell_w = image.width / cols
    cell_h = image.height / rows

    boxes = []
    for i in range(count):
        r, c = divmod(i, cols)
        boxes.append({
            "xmin": round(c * cell_w + cell_w * 0.1, 1),
            "ymin": round(r * cell_h + cell_h * 0.1, 1),
            "xmax": round(c * cell_w + cell_w * 0.9, 1),
            "ymax": round(r * cell_h + cell_h * 0.9, 1),
        })
    return boxes


class MockDetectionModel:
    """
    Deterministic mock object detector.

    Returns `person_count` person boxes laid out on a grid, plus one
    low-score box that any sane threshold filters out.

    Attributes:
        person_count: Number of person boxes to return
    """

    def __init__(self, person_count: int = 8) -> None:
        self.person_count = person_count
        logger.info(f"MockDetectionModel initialized: person_count={person_count}")

    async def detect(self, image: AnalysisImage, threshold: float) -> List[Dict[str, Any]]:
        detections = [
            {"label": "person", "score": 0.95 - 0.01 * (i % 10), "box": box}
            for i, box in enumerate(_grid_boxes(image, self.person_count))
        ]
        detections.append({
            "label": "dog",
            "score": 0.3,
            "box": {"xmin": 0.0, "ymin": 0.0, "xmax": 1.0, "ymax": 1.0},
        })
        return detections


class MockDensityModel:
    """
    Deterministic mock density regressor.

    Produces a smooth Gaussian blob whose sum equals `total`, at 1/8 of
    the input resolution like typical crowd counting networks.

    Attributes:
        total: Sum of the returned density grid
    """

    def __init__(self, total: float = 12.0) -> None:
        self.total = total
        logger.info(f"MockDensityModel initialized: total={total}")

    async def predict(self, tensor: torch.Tensor) -> Dict[str, Any]:
        _, _, height, width = tensor.shape
        gh, gw = max(1, height // 8), max(1, width // 8)

        ys = np.linspace(-1.0, 1.0, gh)[:, None]
        xs = np.linspace(-1.0, 1.0, gw)[None, :]
        blob = np.exp(-(xs ** 2 + ys ** 2) * 2.0)
        grid = blob / blob.sum() * self.total

        return {"density": grid.astype(np.float32)}


class MockFaceModel:
    """
    Deterministic mock face analyzer.

    Cycles through a fixed set of (age, gender) pairs.

    Attributes:
        face_count: Number of faces to return
    """

    _PROFILES = ((34.0, "male"), (29.0, "female"), (9.0, "female"), (52.0, "male"))

    def __init__(self, face_count: int = 5) -> None:
        self.face_count = face_count
        logger.info(f"MockFaceModel initialized: face_count={face_count}")

    async def analyze(self, image: AnalysisImage) -> List[Dict[str, Any]]:
        faces = []
        for i, box in enumerate(_grid_boxes(image, self.face_count)):
            age, gender = self._PROFILES[i % len(self._PROFILES)]
            faces.append({"age": age, "gender": gender, "box": box})
        return faces


class MockZeroShotModel:
    """
    Deterministic mock zero-shot classifier.

    The winning label is picked from the crop's pixel mean, so the same
    crop always gets the same label.
    """

    async def classify(self, crop: np.ndarray, labels: Sequence[str]) -> List[Dict[str, Any]]:
        winner = int(crop.mean()) % len(labels) if crop.size else 0
        return [
            {"label": label, "score": 0.8 if i == winner else 0.2 / max(1, len(labels) - 1)}
            for i, label in enumerate(labels)
        ]
