"""
Image Decoder
=============

Dedicated module for decoding uploaded images and preparing model inputs.

Design Rules:
    - This is the ONLY place in the codebase that decodes images
    - Validates shape and dtype
    - Fails fast on corrupt uploads
    - Density input preparation is bit-exact: RGB, channel-first,
      byte / 255, no mean/std normalization
"""

import base64
import binascii
import logging

import cv2
import numpy as np
import torch

from crowd_fusion.imaging.image import AnalysisImage
from crowd_fusion.models.estimate import Box


logger = logging.getLogger(__name__)


class ImageDecodeError(Exception):
    """Raised when image decoding fails."""
    pass


def decode_image_bytes(data: bytes) -> AnalysisImage:
    """
    Decode encoded image bytes (JPEG, PNG, ...) to an AnalysisImage.

    Args:
        data: Raw file contents

    Returns:
        AnalysisImage with RGB pixels

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    if not data:
        raise ImageDecodeError("Empty image upload")

    nparr = np.frombuffer(data, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise ImageDecodeError("Failed to decode image: cv2.imdecode returned None")

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape: {bgr.shape}")

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype: {bgr.dtype}")

    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    return AnalysisImage.from_rgb(rgb)


def decode_image_b64(image_b64: str) -> AnalysisImage:
    """
    Decode a base64-encoded image (optionally a data URL).

    Raises:
        ImageDecodeError: If base64 or image decoding fails
    """
    if image_b64.startswith("data:"):
        _, _, image_b64 = image_b64.partition(",")
    try:
        data = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Base64 decode failed: {e}")
    return decode_image_bytes(data)


def prepare_density_tensor(
    image: AnalysisImage,
    width: int = 1024,
    height: int = 768,
) -> torch.Tensor:
    """
    Build the density model input tensor.

    The image is resized to (width, height), kept in RGB order, scaled to
    [0, 1] by dividing each byte by 255 and laid out channel-first.

    Args:
        image: Image to prepare
        width: Model input width
        height: Model input height

    Returns:
        float32 tensor of shape [1, 3, height, width]
    """
    resized = cv2.resize(image.pixels, (width, height), interpolation=cv2.INTER_LINEAR)
    chw = np.transpose(resized.astype(np.float32) / 255.0, (2, 0, 1))
    return torch.from_numpy(np.ascontiguousarray(chw)).unsqueeze(0)


def crop_box(image: AnalysisImage, box: Box) -> np.ndarray:
    """
    Crop a box out of the image, clamped to the image bounds.

    Returns:
        RGB crop as np.ndarray (h, w, 3)

    Raises:
        ImageDecodeError: If the clamped box is empty
    """
    x0 = int(max(0, min(image.width, np.floor(box.xmin))))
    y0 = int(max(0, min(image.height, np.floor(box.ymin))))
    x1 = int(max(0, min(image.width, np.ceil(box.xmax))))
    y1 = int(max(0, min(image.height, np.ceil(box.ymax))))

    if x1 <= x0 or y1 <= y0:
        raise ImageDecodeError(f"Empty crop for box {box}")

    return image.pixels[y0:y1, x0:x1]
