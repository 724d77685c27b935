"""Failure conditions raised by the background-removal core."""

from __future__ import annotations


class BackgroundRemovalError(Exception):
    """Base class for every failure surfaced by the pipeline."""


class InvalidImage(BackgroundRemovalError, ValueError):
    """Raised when the input bytes cannot be decoded as an image."""


class IndeterminateDimensions(BackgroundRemovalError, ValueError):
    """Raised when the width or height of the input image is unknown."""

    def __init__(self, width: object, height: object):
        super().__init__(f"Width or height is undefined. Width: {width} & Height: {height}")
        self.width = width
        self.height = height


class DownloadFailure(BackgroundRemovalError):
    """Raised to every waiter when a model download attempt fails."""

    def __init__(self, model_name: str, reason: str):
        super().__init__(f"Failed to provision model '{model_name}': {reason}")
        self.model_name = model_name
        self.reason = reason


class InferenceFailure(BackgroundRemovalError):
    """Raised when the inference engine fails or times out."""


class UnexpectedEmptyResult(BackgroundRemovalError):
    """Raised when the pipeline produced no output image."""
