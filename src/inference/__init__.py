"""
Inference module.

Backends execute the model and fill output buffers; they never decode.
"""

from .backend import InferenceBackend
from .tflite_backend import TFLiteBackend, load_backend

__all__ = ["InferenceBackend", "TFLiteBackend", "load_backend"]
