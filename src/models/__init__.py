"""
Typed models for the lesion detection pipeline.

Use the adapter methods to convert from config dicts and plain mappings.
"""

from .image import DecodedImage
from .detection import (
    BoundingBox,
    Detection,
    Label,
    LabelTable,
    DEFAULT_LABELS,
    detections_to_dicts,
)
from .errors import (
    DetectionError,
    ImageDecodeError,
    BackendError,
    ModelLoadError,
    ShapeMismatchError,
    RuntimeInferenceError,
)
from .config import (
    Config,
    ModelConfig,
    PreprocessConfig,
    DecoderConfig,
    FallbackConfig,
    RenderConfig,
)

__all__ = [
    # Image
    "DecodedImage",
    # Detection
    "BoundingBox",
    "Detection",
    "Label",
    "LabelTable",
    "DEFAULT_LABELS",
    "detections_to_dicts",
    # Errors
    "DetectionError",
    "ImageDecodeError",
    "BackendError",
    "ModelLoadError",
    "ShapeMismatchError",
    "RuntimeInferenceError",
    # Config
    "Config",
    "ModelConfig",
    "PreprocessConfig",
    "DecoderConfig",
    "FallbackConfig",
    "RenderConfig",
]
