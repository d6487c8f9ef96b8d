"""
Detection models for lesion detection results.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class Label(str, Enum):
    """Detection labels."""
    PIH = "PIH"
    PIE = "PIE"
    SPOT = "Spot"
    UNKNOWN = "Unknown"
    # Only produced by the fixed-label fallback variant
    ACNE = "Acne"


DEFAULT_LABELS: Dict[int, Label] = {
    1: Label.PIH,
    2: Label.PIE,
    3: Label.SPOT,
}


class LabelTable:
    """
    Maps model class ids to labels.

    Class ids arrive as floats from the model output tensors and are
    truncated to int before lookup. Ids missing from the table resolve
    to Label.UNKNOWN.
    """

    def __init__(self, labels: Optional[Mapping[int, Label]] = None):
        self._labels: Dict[int, Label] = dict(labels if labels is not None else DEFAULT_LABELS)

    def resolve(self, class_id: float) -> Label:
        if not math.isfinite(class_id):
            return Label.UNKNOWN
        return self._labels.get(int(class_id), Label.UNKNOWN)

    @property
    def labels(self) -> List[Label]:
        """Known labels in class id order."""
        return [self._labels[k] for k in sorted(self._labels)]

    @classmethod
    def from_dict(cls, d: Mapping[Any, str]) -> "LabelTable":
        """
        Adapter: Create from a config mapping of class id to label name.

        Raises:
            ValueError: If a name is not a known label.
        """
        labels: Dict[int, Label] = {}
        for class_id, name in d.items():
            try:
                labels[int(class_id)] = Label(name)
            except ValueError:
                raise ValueError(f"Unknown label '{name}' for class id {class_id}") from None
        return cls(labels)

    def to_dict(self) -> Dict[int, str]:
        return {k: v.value for k, v in sorted(self._labels.items())}

    def __len__(self) -> int:
        return len(self._labels)


@dataclass(frozen=True)
class BoundingBox:
    """
    A bounding box in source-image pixel coordinates.

    Corners are stored as produced by the model; x1 < x2 and y1 < y2 are
    not guaranteed, so width and height may be negative.

    Attributes:
        x1: Left edge x coordinate.
        y1: Top edge y coordinate.
        x2: Right edge x coordinate.
        y2: Bottom edge y coordinate.
    """
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x1, self.y1, self.x2, self.y2)

    @classmethod
    def from_tuple(cls, t) -> "BoundingBox":
        """Create from (x1, y1, x2, y2) sequence."""
        if len(t) != 4:
            raise ValueError(f"Bounding box needs 4 coordinates, got {len(t)}")
        return cls(x1=float(t[0]), y1=float(t[1]), x2=float(t[2]), y2=float(t[3]))

    @classmethod
    def from_normalized(cls, coords, width: int, height: int) -> "BoundingBox":
        """Project normalized [0, 1] model coordinates into pixel space."""
        return cls(
            x1=float(coords[0]) * width,
            y1=float(coords[1]) * height,
            x2=float(coords[2]) * width,
            y2=float(coords[3]) * height,
        )


_DETECTION_KEYS = frozenset({"box", "label", "score", "is_fallback"})


@dataclass(frozen=True)
class Detection:
    """
    A single detection handed to the rendering layer.

    Attributes:
        bbox: Bounding box in source-image pixel coordinates.
        label: Resolved label.
        score: Confidence score. Not clamped to [0, 1].
        is_fallback: True only for synthetic detections.
    """
    bbox: BoundingBox
    label: Label
    score: float
    is_fallback: bool = False

    @property
    def box(self) -> Tuple[float, float, float, float]:
        return self.bbox.as_tuple()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "box": list(self.box),
            "label": self.label.value,
            "score": self.score,
            "is_fallback": self.is_fallback,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Detection":
        """
        Adapter: Create from a detection mapping.

        Raises:
            ValueError: On unknown or missing keys, or an unknown label.
        """
        unknown = set(d) - _DETECTION_KEYS
        if unknown:
            raise ValueError(f"Unknown detection keys: {sorted(unknown)}")
        missing = {"box", "label", "score"} - set(d)
        if missing:
            raise ValueError(f"Missing detection keys: {sorted(missing)}")
        return cls(
            bbox=BoundingBox.from_tuple(d["box"]),
            label=Label(d["label"]),
            score=float(d["score"]),
            is_fallback=bool(d.get("is_fallback", False)),
        )


def detections_to_dicts(detections: List[Detection]) -> List[Dict[str, Any]]:
    """Adapter: Convert detections to plain dicts (e.g. for JSON output)."""
    return [d.to_dict() for d in detections]
