"""
Pipeline module for the lesion detection system.

The pipeline orchestrates the full detection flow:
- Image decoding and tensor preprocessing
- Backend invocation through the output layout chain
- Fallback detections when inference is unavailable or yields nothing
"""

from .engine import DetectionPipeline, create_pipeline_from_config

__all__ = [
    "DetectionPipeline",
    "create_pipeline_from_config",
]
