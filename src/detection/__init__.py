"""
Lesion Detection - Detection Module

This module turns raw model outputs into labeled, scored boxes.
"""

from .decoder import OutputDecoder, read_count
from .fallback import FallbackDetectionGenerator
from .layouts import (
    BINDINGS,
    CLASSES_FIRST,
    DEFAULT_LAYOUTS,
    SCORES_FIRST,
    OutputBinding,
    OutputBuffers,
    OutputLayout,
    default_layouts,
    get_binding,
)

__all__ = [
    'OutputDecoder',
    'read_count',
    'FallbackDetectionGenerator',
    'BINDINGS',
    'CLASSES_FIRST',
    'DEFAULT_LAYOUTS',
    'SCORES_FIRST',
    'OutputBinding',
    'OutputBuffers',
    'OutputLayout',
    'default_layouts',
    'get_binding',
]
