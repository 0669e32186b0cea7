"""
Transformers Backend
====================

Production model backend using Hugging Face `transformers` pipelines and a
TorchScript density network.

Models:
    - Object detection: `object-detection` pipeline (DETR by default)
    - Density regression: TorchScript module, [1, 3, 768, 1024] -> density map
    - Face demographics: OpenCV Haar face detector + `image-classification`
      pipelines for age and gender on each face crop
    - Zero-shot crops: `zero-shot-image-classification` pipeline (CLIP)

Design Rules:
    - Heavy imports happen at construction, inside the loader thread
    - Construction raises on misconfiguration (the registry marks the kind
      LOAD_FAILED)
    - Inference runs in a worker thread; the event loop is never blocked
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Sequence

import cv2
import numpy as np
import torch

from crowd_fusion.imaging.image import AnalysisImage


logger = logging.getLogger(__name__)


def _require_transformers():
    """Import transformers and PIL, failing with an install hint."""
    try:
        from PIL import Image
        from transformers import pipeline
    except ImportError:
        raise ImportError(
            "transformers and pillow are required for the transformers backend. "
            "Install with: pip install 'crowd-count-fusion[models]'"
        )
    return pipeline, Image


def _device_index(device: str) -> int:
    """Map a torch device string to the pipeline device index."""
    if device.startswith("cuda"):
        _, _, index = device.partition(":")
        return int(index) if index else 0
    return -1


class TransformersDetectionModel:
    """
    Object detector backed by a transformers `object-detection` pipeline.

    Attributes:
        model_id: Hugging Face model id
    """

    def __init__(self, model_id: str = "facebook/detr-resnet-50", device: str = "cpu") -> None:
        pipeline, self._Image = _require_transformers()
        self.model_id = model_id
        self._pipe = pipeline("object-detection", model=model_id, device=_device_index(device))
        logger.info(f"Detection model loaded: {model_id}")

    async def detect(self, image: AnalysisImage, threshold: float) -> List[Dict[str, Any]]:
        pil = self._Image.fromarray(image.pixels)
        return await asyncio.to_thread(self._pipe, pil, threshold=threshold)


class TorchScriptDensityModel:
    """
    Density regressor loaded from a TorchScript file.

    The module must accept a [1, 3, H, W] float tensor and return a density
    map whose sum is the people count.

    Attributes:
        model_path: Path to the TorchScript file
        device: Torch device string
    """

    def __init__(self, model_path: str, device: str = "cpu") -> None:
        path = Path(model_path)
        if not path.exists():
            raise FileNotFoundError(f"Density model not found: {model_path}")

        self.model_path = model_path
        self.device = torch.device(device)
        self._module = torch.jit.load(str(path), map_location=self.device)
        self._module.eval()
        logger.info(f"Density model loaded: {model_path} on {self.device}")

    def _forward(self, tensor: torch.Tensor) -> np.ndarray:
        with torch.no_grad():
            output = self._module(tensor.to(self.device))
        if isinstance(output, (tuple, list)):
            output = output[0]
        return output.detach().cpu().numpy()

    async def predict(self, tensor: torch.Tensor) -> Dict[str, Any]:
        grid = await asyncio.to_thread(self._forward, tensor)
        return {"density": grid}


_AGE_NUMBERS = re.compile(r"\d+(?:\.\d+)?")


def parse_age_label(label: str) -> float:
    """
    Convert an age classifier label to a single age.

    "20-29" -> 24.5, "more than 70" -> 70.0, "42" -> 42.0

    Raises:
        ValueError: If the label contains no number
    """
    numbers = [float(n) for n in _AGE_NUMBERS.findall(label)]
    if not numbers:
        raise ValueError(f"Age label has no number: {label!r}")
    if len(numbers) >= 2:
        return (numbers[0] + numbers[1]) / 2
    return numbers[0]


def parse_gender_label(label: str) -> str:
    """Normalize a gender classifier label to "male" or "female"."""
    value = label.strip().lower()
    if value in ("female", "woman", "women", "f"):
        return "female"
    if value in ("male", "man", "men", "m"):
        return "male"
    raise ValueError(f"Unknown gender label: {label!r}")


class TransformersFaceModel:
    """
    Face analyzer: OpenCV Haar cascade for faces, transformers classifiers
    for age and gender on each face crop.

    Attributes:
        age_model: Hugging Face age classifier id
        gender_model: Hugging Face gender classifier id
        min_face_size: Smallest face side in pixels
    """

    def __init__(
        self,
        age_model: str = "nateraw/vit-age-classifier",
        gender_model: str = "rizvandwiki/gender-classification",
        min_face_size: int = 30,
        device: str = "cpu",
    ) -> None:
        pipeline, self._Image = _require_transformers()

        cascade_path = Path(cv2.data.haarcascades) / "haarcascade_frontalface_default.xml"
        self._cascade = cv2.CascadeClassifier(str(cascade_path))
        if self._cascade.empty():
            raise RuntimeError(f"Failed to load face cascade: {cascade_path}")

        self.age_model = age_model
        self.gender_model = gender_model
        self.min_face_size = min_face_size
        self._age_pipe = pipeline("image-classification", model=age_model, device=_device_index(device))
        self._gender_pipe = pipeline("image-classification", model=gender_model, device=_device_index(device))
        logger.info(f"Face models loaded: age={age_model}, gender={gender_model}")

    def _analyze(self, pixels: np.ndarray) -> List[Dict[str, Any]]:
        gray = cv2.cvtColor(pixels, cv2.COLOR_RGB2GRAY)
        rects = self._cascade.detectMultiScale(
            gray,
            scaleFactor=1.1,
            minNeighbors=5,
            minSize=(self.min_face_size, self.min_face_size),
        )

        faces = []
        for (x, y, w, h) in rects:
            crop = self._Image.fromarray(pixels[y:y + h, x:x + w])
            age_top = self._age_pipe(crop, top_k=1)[0]
            gender_top = self._gender_pipe(crop, top_k=1)[0]
            faces.append({
                "age": parse_age_label(age_top["label"]),
                "gender": parse_gender_label(gender_top["label"]),
                "score": float(gender_top["score"]),
                "box": {
                    "xmin": float(x),
                    "ymin": float(y),
                    "xmax": float(x + w),
                    "ymax": float(y + h),
                },
            })
        return faces

    async def analyze(self, image: AnalysisImage) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._analyze, image.pixels)


class TransformersZeroShotModel:
    """
    Zero-shot crop classifier backed by a
    `zero-shot-image-classification` pipeline.
    """

    def __init__(self, model_id: str = "openai/clip-vit-base-patch32", device: str = "cpu") -> None:
        pipeline, self._Image = _require_transformers()
        self.model_id = model_id
        self._pipe = pipeline(
            "zero-shot-image-classification",
            model=model_id,
            device=_device_index(device),
        )
        logger.info(f"Zero-shot model loaded: {model_id}")

    async def classify(self, crop: np.ndarray, labels: Sequence[str]) -> List[Dict[str, Any]]:
        pil = self._Image.fromarray(np.ascontiguousarray(crop))
        return await asyncio.to_thread(self._pipe, pil, candidate_labels=list(labels))
