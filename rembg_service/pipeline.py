"""
High-level U2-Net background-removal pipeline.

`BackgroundRemover.remove` is the main entry point used by both the HTTP
API and the local CLI helper. It keeps orchestration simple:
ensure model -> encode tensor -> inference -> decode mask -> composite.
Both model variants share this code path; they only differ in their
`ModelDescriptor`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from PIL import Image

from . import config
from .errors import InferenceFailure
from .inference import InferenceInvoker, onnx_session_factory
from .model_loader import ModelProvisioner
from .postprocessing import composite_alpha, decode_mask, encode_png
from .preprocessing import PixelBuffer, decode_image, encode_tensor, probe_dimensions
from .profiles import ModelDescriptor, build_descriptors, select_output_name

logger = logging.getLogger(__name__)


class BackgroundRemover:
    def __init__(
        self,
        settings: Optional[config.Settings] = None,
        provisioner: Optional[ModelProvisioner] = None,
        invoker: Optional[InferenceInvoker] = None,
        descriptors: Optional[Dict[str, ModelDescriptor]] = None,
    ):
        self.settings = settings or config.get_settings()
        self.descriptors = descriptors or build_descriptors(self.settings)
        self.provisioner = provisioner or ModelProvisioner(
            self.descriptors.values(),
            timeout_seconds=self.settings.download_timeout_seconds,
        )
        self.invoker = invoker or InferenceInvoker(
            session_factory=onnx_session_factory(self.settings.onnx_providers),
            cache_size=self.settings.session_cache_size,
            timeout_seconds=self.settings.inference_timeout_seconds,
        )

    def descriptor(self, variant: Optional[str] = None) -> ModelDescriptor:
        variant = variant or self.settings.default_variant
        try:
            return self.descriptors[variant]
        except KeyError:
            raise ValueError(f"variant must be one of {' | '.join(self.descriptors)}") from None

    def prefetch(self, variant: Optional[str] = None) -> None:
        self.provisioner.prefetch(self.descriptor(variant))

    async def remove(self, image: Image.Image, variant: Optional[str] = None) -> PixelBuffer:
        """
        Return `image` as RGBA with the predicted foreground mask as alpha.

        Raises:
            IndeterminateDimensions: when the image size is unknown; inference is skipped.
            DownloadFailure: when the model file could not be provisioned.
            InferenceFailure: when the engine fails.
        """
        descriptor = self.descriptor(variant)
        model_path = await self.provisioner.ensure(descriptor)

        width, height = probe_dimensions(image)
        pixels = await asyncio.to_thread(PixelBuffer.from_image, image)
        tensor = await asyncio.to_thread(encode_tensor, pixels, descriptor)

        outputs = await self.invoker.run(model_path, tensor, descriptor.input_name)
        output_name = descriptor.output_name or select_output_name(outputs)
        if output_name not in outputs:
            raise InferenceFailure(f"Model output '{output_name}' missing; got {sorted(outputs)}")
        logger.debug(
            "remove: variant=%s size=%dx%d resolution=%d output=%s",
            descriptor.name,
            width,
            height,
            descriptor.resolution,
            output_name,
        )

        mask = await asyncio.to_thread(decode_mask, outputs[output_name], (width, height))
        return composite_alpha(pixels, mask)

    async def process_image_bytes(self, image_bytes: bytes, variant: Optional[str] = None) -> bytes:
        """Full pipeline from raw bytes to RGBA PNG bytes."""
        image = decode_image(image_bytes)
        result = await self.remove(image, variant)
        return await asyncio.to_thread(encode_png, result)
