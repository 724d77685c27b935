"""Mask decoding and alpha compositing for U2-Net outputs."""

from __future__ import annotations

from io import BytesIO
import logging
from typing import Tuple

import cv2
import numpy as np

from .errors import UnexpectedEmptyResult
from .preprocessing import PixelBuffer

logger = logging.getLogger(__name__)


def decode_mask(raw_output: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """
    Turn a raw model prediction into a uint8 mask of `size` (width, height).

    The prediction is scaled into 0..255 at the model's native resolution
    and then stretched to the target size without preserving aspect ratio.
    """
    mask = np.asarray(raw_output, dtype=np.float32).squeeze()
    if mask.ndim != 2:
        raise ValueError(f"Expected a single-channel prediction, got shape {np.shape(raw_output)}")

    mask = np.clip(mask * 255.0, 0.0, 255.0)
    width, height = size
    if mask.shape != (height, width):
        mask = cv2.resize(mask, (width, height), interpolation=cv2.INTER_LANCZOS4)
    return np.clip(np.rint(mask), 0, 255).astype(np.uint8)


def composite_alpha(image: PixelBuffer, mask: np.ndarray) -> PixelBuffer:
    """Return an RGBA copy of `image` whose alpha channel is `mask`."""
    if mask.shape != (image.height, image.width):
        raise ValueError(
            f"Mask shape {mask.shape} does not match image {image.height}x{image.width}"
        )
    rgba = image.ensure_alpha()
    rgba.data[..., 3] = mask
    return rgba


def encode_png(pixels: PixelBuffer) -> bytes:
    buf = BytesIO()
    pixels.to_image().save(buf, format="PNG")
    data = buf.getvalue()
    if not data:
        raise UnexpectedEmptyResult("Failed to process image")
    logger.debug("encoded %dx%d PNG (%d bytes)", pixels.width, pixels.height, len(data))
    return data
