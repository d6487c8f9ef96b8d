"""
Overlay drawing for detection results.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from models.config import RenderConfig
from models.detection import Detection, Label

from .mapper import CoordinateMapper

# Colors (BGR)
COLOR_PIH = (54, 67, 244)          # Red
COLOR_PIE = (0, 152, 255)          # Orange
COLOR_SPOT = (176, 39, 156)        # Purple
COLOR_TEXT = (255, 255, 255)       # White

LABEL_COLORS: Dict[Label, Tuple[int, int, int]] = {
    Label.PIH: COLOR_PIH,
    Label.PIE: COLOR_PIE,
    Label.SPOT: COLOR_SPOT,
}


def label_color(label: Label) -> Tuple[int, int, int]:
    return LABEL_COLORS.get(label, COLOR_PIH)


def format_label(detection: Detection) -> str:
    """Caption drawn above a box, e.g. "PIE: 42%"."""
    return f"{detection.label.value}: {int(detection.score * 100)}%"


def summarize(detections: List[Detection]) -> str:
    n = len(detections)
    if n == 0:
        return "No issues found"
    return f"Found: {n} {'issue' if n == 1 else 'issues'}"


def draw_detections(
    canvas: np.ndarray,
    detections: List[Detection],
    cfg: Optional[RenderConfig] = None,
) -> np.ndarray:
    """
    Draw boxes and captions onto a BGR canvas in place.

    Each box is mapped with CoordinateMapper using the canvas size.

    Returns:
        The same canvas array.
    """
    cfg = cfg or RenderConfig()
    h, w = canvas.shape[:2]
    mapper = CoordinateMapper(canvas_width=w, canvas_height=h)

    font = cv2.FONT_HERSHEY_SIMPLEX
    thickness = 1

    for detection in detections:
        color = label_color(detection.label)
        x1, y1, x2, y2 = mapper.map_detection(detection).as_int_tuple()

        # Draw bounding box
        cv2.rectangle(canvas, (x1, y1), (x2, y2), color, cfg.stroke_width)

        caption = format_label(detection)
        (text_w, text_h), baseline = cv2.getTextSize(caption, font, cfg.font_scale, thickness)
        bg_top = y1 - text_h - baseline - 2

        # Label background, blended
        overlay = canvas.copy()
        cv2.rectangle(overlay, (x1, bg_top), (x1 + text_w + 8, y1), color, -1)
        cv2.addWeighted(overlay, cfg.label_alpha, canvas, 1 - cfg.label_alpha, 0, dst=canvas)

        # Label text
        cv2.putText(
            canvas,
            caption,
            (x1 + 4, y1 - baseline - 2),
            font,
            cfg.font_scale,
            COLOR_TEXT,
            thickness,
        )

    return canvas
