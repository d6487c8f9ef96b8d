"""
Rendering module.

Maps detections from source-image pixels onto a display canvas and draws
the overlay.
"""

from .mapper import CanvasRect, CoordinateMapper
from .overlay import draw_detections, format_label, label_color, summarize

__all__ = [
    "CanvasRect",
    "CoordinateMapper",
    "draw_detections",
    "format_label",
    "label_color",
    "summarize",
]
