"""
Exception hierarchy for the detection pipeline.

Only ImageDecodeError escapes a pipeline call. Backend errors are consumed
by the loader and the output decoder, which degrade to fallback detections.
"""

from __future__ import annotations


class DetectionError(Exception):
    """Base class for detection pipeline errors."""


class ImageDecodeError(DetectionError, ValueError):
    """Raised when image bytes cannot be decoded into an RGB image."""


class BackendError(DetectionError):
    """Base class for inference backend failures."""


class ModelLoadError(BackendError):
    """Raised when the model asset or its runtime cannot be loaded."""


class ShapeMismatchError(BackendError):
    """Raised when model outputs do not match the requested buffer shapes."""


class RuntimeInferenceError(BackendError):
    """Raised when the interpreter fails while executing the model."""
