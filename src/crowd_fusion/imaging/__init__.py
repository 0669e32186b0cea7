"""
Imaging Module
==============

Image decoding and model input preparation.

Components:
    - AnalysisImage: Immutable decoded RGB image
    - decode_image_bytes / decode_image_b64: Upload decoding
    - prepare_density_tensor: Bit-exact density model input
    - crop_box: Box crops for zero-shot classification
"""

from crowd_fusion.imaging.image import AnalysisImage
from crowd_fusion.imaging.decoder import (
    ImageDecodeError,
    crop_box,
    decode_image_b64,
    decode_image_bytes,
    prepare_density_tensor,
)

__all__ = [
    "AnalysisImage",
    "ImageDecodeError",
    "crop_box",
    "decode_image_b64",
    "decode_image_bytes",
    "prepare_density_tensor",
]
