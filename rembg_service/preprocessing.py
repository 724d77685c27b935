"""
Image decoding and tensor encoding for U2-Net.

Decoded images travel through the pipeline as interleaved `PixelBuffer`s.
`encode_tensor` resizes a buffer to the model's square resolution and
normalizes it into the planar NCHW float32 layout the ONNX graph expects,
following the descriptor's `NormalizationProfile`.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import IndeterminateDimensions, InvalidImage
from .profiles import ModelDescriptor, NormalizationProfile


@dataclass
class PixelBuffer:
    width: int
    height: int
    channels: int
    data: np.ndarray  # (height, width, channels) uint8, RGB or RGBA

    def __post_init__(self) -> None:
        if self.channels not in (3, 4):
            raise ValueError(f"PixelBuffer supports 3 or 4 channels, got {self.channels}")
        if self.data.dtype != np.uint8:
            raise ValueError(f"PixelBuffer data must be uint8, got {self.data.dtype}")
        if self.data.size != self.width * self.height * self.channels:
            raise ValueError(
                f"PixelBuffer length {self.data.size} does not match "
                f"{self.width}x{self.height}x{self.channels}"
            )
        self.data = self.data.reshape(self.height, self.width, self.channels)

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        """Convert any Pillow image to RGB, or RGBA when it carries transparency."""
        has_alpha = "A" in image.getbands() or "transparency" in image.info
        converted = image.convert("RGBA" if has_alpha else "RGB")
        data = np.asarray(converted, dtype=np.uint8)
        return cls(width=converted.width, height=converted.height, channels=data.shape[2], data=data)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.data)

    def ensure_alpha(self) -> "PixelBuffer":
        """Return an RGBA copy; an opaque alpha channel is added to RGB buffers."""
        if self.channels == 4:
            return PixelBuffer(self.width, self.height, 4, self.data.copy())
        alpha = np.full((self.height, self.width, 1), 255, dtype=np.uint8)
        return PixelBuffer(self.width, self.height, 4, np.concatenate([self.data, alpha], axis=2))


def decode_image(image_bytes: bytes) -> Image.Image:
    """Decode raw bytes with Pillow, forcing the pixel data to load."""
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise InvalidImage("Invalid image data") from exc
    return image


def probe_dimensions(image: Optional[Image.Image]) -> Tuple[int, int]:
    """Return (width, height), or raise when either cannot be determined."""
    width = getattr(image, "width", None)
    height = getattr(image, "height", None)
    if (width or 0) <= 0 or (height or 0) <= 0:
        raise IndeterminateDimensions(width, height)
    return width, height


def _normalize(pixels: np.ndarray, profile: NormalizationProfile) -> np.ndarray:
    values = pixels.astype(np.float32)
    if profile.divide_by_max:
        # An all-black frame would otherwise divide by zero.
        values /= float(values.max()) or 1.0
    mean = np.asarray(profile.mean, dtype=np.float32)
    std = np.asarray(profile.std, dtype=np.float32)
    return (values - mean) / std


def encode_tensor(pixels: PixelBuffer, descriptor: ModelDescriptor) -> np.ndarray:
    """
    Resize to the model resolution and normalize into a (1, 3, R, R) tensor.

    The resize fills the square exactly (aspect ratio is not kept) using
    Lanczos resampling, and any alpha channel is discarded afterwards.
    """
    size = descriptor.resolution
    resized = pixels.to_image().resize((size, size), Image.LANCZOS).convert("RGB")
    normalized = _normalize(np.asarray(resized), descriptor.normalization)
    planar = normalized.transpose(2, 0, 1)[list(descriptor.normalization.permutation)]
    return np.ascontiguousarray(planar[np.newaxis], dtype=np.float32)


def restore_pixels(tensor: np.ndarray, profile: NormalizationProfile, observed_max: float = 255.0) -> np.ndarray:
    """Invert `encode_tensor`'s normalization back to interleaved uint8 RGB."""
    planar = np.asarray(tensor, dtype=np.float32).reshape(3, tensor.shape[-2], tensor.shape[-1])
    source = np.empty_like(planar)
    source[list(profile.permutation)] = planar
    mean = np.asarray(profile.mean, dtype=np.float32)[:, None, None]
    std = np.asarray(profile.std, dtype=np.float32)[:, None, None]
    values = source * std + mean
    if profile.divide_by_max:
        values *= observed_max
    return np.clip(np.rint(values), 0, 255).astype(np.uint8).transpose(1, 2, 0)
