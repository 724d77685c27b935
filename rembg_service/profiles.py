"""
Model descriptors and normalization profiles for the two U2-Net variants.

The standard model (`u2net.onnx`) works at 320x320 and expects
ImageNet-style normalization of max-scaled pixels in BGR-like channel
order. The medium model (`u2net_med.onnx`) works at 1024x1024 and expects
`(value - 128) / 255` in straight RGB order. The two normalizations are
not interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from . import config
from .errors import InferenceFailure


@dataclass(frozen=True)
class NormalizationProfile:
    mean: Tuple[float, float, float]
    std: Tuple[float, float, float]
    # Tensor channel k is filled from source channel permutation[k].
    permutation: Tuple[int, int, int] = (0, 1, 2)
    divide_by_max: bool = False


@dataclass(frozen=True)
class ModelDescriptor:
    name: str
    path: Path
    url: Optional[str]
    md5: Optional[str]
    resolution: int
    normalization: NormalizationProfile
    input_name: str
    # None selects the numerically smallest output name at run time.
    output_name: Optional[str] = None


STANDARD_NORMALIZATION = NormalizationProfile(
    mean=(0.485, 0.456, 0.406),
    std=(0.229, 0.224, 0.225),
    permutation=(2, 0, 1),
    divide_by_max=True,
)

MEDIUM_NORMALIZATION = NormalizationProfile(
    mean=(128.0, 128.0, 128.0),
    std=(255.0, 255.0, 255.0),
)


def build_descriptors(settings: Optional[config.Settings] = None) -> Dict[str, ModelDescriptor]:
    """Return the `standard` and `medium` descriptors rooted at U2NET_HOME."""
    settings = settings or config.get_settings()
    home = Path(settings.u2net_home).expanduser().resolve()
    return {
        "standard": ModelDescriptor(
            name="standard",
            path=home / "u2net.onnx",
            url=settings.u2net_url,
            md5=settings.u2net_md5,
            resolution=320,
            normalization=STANDARD_NORMALIZATION,
            input_name="input.1",
        ),
        "medium": ModelDescriptor(
            name="medium",
            path=home / "u2net_med.onnx",
            url=settings.u2net_med_url,
            md5=settings.u2net_med_md5,
            resolution=1024,
            normalization=MEDIUM_NORMALIZATION,
            input_name="input",
            output_name="output",
        ),
    }


def _as_number(name: str) -> Optional[float]:
    try:
        return float(name)
    except ValueError:
        return None


def select_output_name(names: Iterable[str]) -> str:
    """
    Pick the output whose name is the numerically smallest.

    U2-Net exports its side outputs under numeric node names; the smallest
    one is the fused, most refined mask.
    """
    numeric = [(value, name) for name in names if (value := _as_number(name)) is not None]
    if not numeric:
        raise InferenceFailure("Model exposes no numerically named outputs")
    return min(numeric)[1]
