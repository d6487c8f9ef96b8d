"""
Output tensor layouts for SSD-style detection models.

Detection models exported to TFLite emit four outputs (boxes, scores, class
ids, count), but exporters disagree on batching and on the output order.
An OutputLayout is one concrete shape hypothesis; an OutputBinding maps the
four logical outputs to interpreter output indices.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

Shape = Tuple[int, ...]


@dataclass(frozen=True)
class OutputBuffers:
    """Zero-filled buffers allocated for one layout attempt."""
    boxes: np.ndarray
    scores: np.ndarray
    classes: np.ndarray
    count: Optional[np.ndarray] = None


@dataclass(frozen=True)
class OutputLayout:
    """
    One output shape hypothesis.

    Attributes:
        name: Identifier used in logs.
        boxes: Boxes shape: (1, N, 4), (N, 4) or (4,).
        scores: Scores shape, indexed like the boxes.
        classes: Class id shape, indexed like the scores.
        count: Count shape: () scalar, (1,), (1, 1), or None when the
            model has no count output and every slot is read.
    """
    name: str
    boxes: Shape
    scores: Shape
    classes: Shape
    count: Optional[Shape] = None

    def __post_init__(self):
        if not 1 <= len(self.boxes) <= 3 or self.boxes[-1] != 4:
            raise ValueError(f"Layout {self.name}: boxes shape must end in 4, got {self.boxes}")
        if len(self.boxes) == 3 and self.boxes[0] != 1:
            raise ValueError(f"Layout {self.name}: batched boxes must have batch size 1")
        if self.scores != self.classes:
            raise ValueError(f"Layout {self.name}: scores and classes shapes differ")
        if self.count is not None and len(self.count) > 2:
            raise ValueError(f"Layout {self.name}: count rank must be 0, 1 or 2")

    @property
    def box_rank(self) -> int:
        return len(self.boxes)

    @property
    def capacity(self) -> int:
        """Maximum number of detections the buffers hold."""
        if self.box_rank == 1:
            return 1
        return self.boxes[-2]

    def allocate(self) -> OutputBuffers:
        return OutputBuffers(
            boxes=np.zeros(self.boxes, dtype=np.float32),
            scores=np.zeros(self.scores, dtype=np.float32),
            classes=np.zeros(self.classes, dtype=np.float32),
            count=np.zeros(self.count, dtype=np.float32) if self.count is not None else None,
        )


@dataclass(frozen=True)
class OutputBinding:
    """Interpreter output index of each logical output."""
    boxes: int = 0
    scores: int = 1
    classes: int = 2
    count: int = 3

    def bind(self, buffers: OutputBuffers) -> Dict[int, np.ndarray]:
        outputs = {
            self.boxes: buffers.boxes,
            self.scores: buffers.scores,
            self.classes: buffers.classes,
        }
        if buffers.count is not None:
            outputs[self.count] = buffers.count
        return outputs


SCORES_FIRST = OutputBinding(boxes=0, scores=1, classes=2, count=3)
CLASSES_FIRST = OutputBinding(boxes=0, classes=1, scores=2, count=3)

BINDINGS: Dict[str, OutputBinding] = {
    "scores_first": SCORES_FIRST,
    "classes_first": CLASSES_FIRST,
}


def get_binding(name: str) -> OutputBinding:
    try:
        return BINDINGS[name]
    except KeyError:
        raise ValueError(
            f"Unknown output binding '{name}', expected one of: {', '.join(BINDINGS)}"
        ) from None


def default_layouts(capacity: int = 100) -> Tuple[OutputLayout, ...]:
    """Shape hypotheses in the order they are tried."""
    return (
        OutputLayout(
            name="batched",
            boxes=(1, capacity, 4),
            scores=(1, capacity),
            classes=(1, capacity),
            count=(1,),
        ),
        OutputLayout(
            name="unbatched",
            boxes=(capacity, 4),
            scores=(capacity,),
            classes=(capacity,),
            count=(),
        ),
        OutputLayout(
            name="single_row",
            boxes=(1, 4),
            scores=(1,),
            classes=(1,),
            count=(1,),
        ),
        OutputLayout(
            name="single",
            boxes=(4,),
            scores=(1,),
            classes=(1,),
            count=None,
        ),
    )


DEFAULT_LAYOUTS = default_layouts()
