"""
Preprocessing module.

Turns raw photograph bytes into a decoded image plus a model-ready tensor.
"""

from .image import ImagePreprocessor, decode_image

__all__ = ["ImagePreprocessor", "decode_image"]
