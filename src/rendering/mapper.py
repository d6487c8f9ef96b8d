"""
Mapping of detection boxes onto a display canvas.

The fit transform is computed per box, from the box's own extent, not once
per image. Two boxes on the same canvas can therefore get different scale
factors. The scale divides the canvas side by the box extent plus its start
coordinate, and the offset centres the scaled extent on the other axis.
Existing overlays depend on this exact geometry, so it is not replaced by a
whole-image letterbox. A zero denominator is treated as 1.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from models.detection import BoundingBox, Detection


@dataclass(frozen=True)
class CanvasRect:
    """
    A box in canvas coordinates plus the transform that produced it.

    Attributes:
        left, top, right, bottom: Mapped corners.
        scale_x, scale_y: Scale applied to source coordinates.
        offset_x, offset_y: Offset added after scaling.
    """
    left: float
    top: float
    right: float
    bottom: float
    scale_x: float
    scale_y: float
    offset_x: float = 0.0
    offset_y: float = 0.0

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.left, self.top, self.right, self.bottom)

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        return (int(self.left), int(self.top), int(self.right), int(self.bottom))


def _fit_extent(extent: float, start: float) -> float:
    """Fit denominator: extent + start (the far corner), or 1 for empty extents."""
    if extent <= 0:
        return 1.0
    denom = extent + start
    # A box ending exactly at 0 would divide by zero
    return denom if denom != 0 else 1.0


@dataclass(frozen=True)
class CoordinateMapper:
    """Maps source-image pixel boxes into a canvas_width x canvas_height canvas."""
    canvas_width: float
    canvas_height: float

    def __post_init__(self):
        if self.canvas_width <= 0 or self.canvas_height <= 0:
            raise ValueError(
                f"Canvas size must be positive, got {self.canvas_width}x{self.canvas_height}"
            )

    @property
    def aspect_ratio(self) -> float:
        return self.canvas_width / self.canvas_height

    def map_box(self, bbox: BoundingBox) -> CanvasRect:
        x1, y1, x2, y2 = bbox.as_tuple()
        box_w = x2 - x1
        box_h = y2 - y1

        box_ar = box_w / box_h if box_w > 0 and box_h > 0 else 1.0

        offset_x = 0.0
        offset_y = 0.0
        if self.aspect_ratio > box_ar:
            # Canvas is relatively wider: fit on the y axis
            scale = self.canvas_height / _fit_extent(box_h, y1)
            offset_x = (self.canvas_width - box_w * scale) / 2
        else:
            # Canvas is relatively taller: fit on the x axis
            scale = self.canvas_width / _fit_extent(box_w, x1)
            offset_y = (self.canvas_height - box_h * scale) / 2

        return CanvasRect(
            left=x1 * scale + offset_x,
            top=y1 * scale + offset_y,
            right=x2 * scale + offset_x,
            bottom=y2 * scale + offset_y,
            scale_x=scale,
            scale_y=scale,
            offset_x=offset_x,
            offset_y=offset_y,
        )

    def map_detection(self, detection: Detection) -> CanvasRect:
        return self.map_box(detection.bbox)

    def map_all(self, detections: List[Detection]) -> List[CanvasRect]:
        return [self.map_box(d.bbox) for d in detections]
