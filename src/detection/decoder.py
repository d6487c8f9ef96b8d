"""
Decoding of raw detection model outputs.

The decoder tries each OutputLayout in order against the backend. The first
layout whose buffers the backend accepts is parsed into detections. Any of
these ends in fallback detections instead of an empty result:
- every layout raises ShapeMismatchError
- the backend raises RuntimeInferenceError
- the parsed result is empty (zero count, nothing above threshold, or only
  rows with NaN or infinite values)
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from inference.backend import InferenceBackend
from models.detection import BoundingBox, Detection, LabelTable
from models.errors import RuntimeInferenceError, ShapeMismatchError

from .fallback import FallbackDetectionGenerator
from .layouts import DEFAULT_LAYOUTS, SCORES_FIRST, OutputBinding, OutputBuffers, OutputLayout

logger = logging.getLogger(__name__)

# (normalized box, score, class id)
Row = Tuple[np.ndarray, float, float]


def read_count(count: Optional[np.ndarray], capacity: int) -> int:
    """
    Number of valid detection slots, clamped to [0, capacity].

    A missing count output means every slot is read.
    """
    if count is None:
        return capacity
    if count.ndim == 0:
        value = float(count)
    elif count.ndim == 1:
        value = float(count[0])
    else:
        value = float(count[0][0])
    if not math.isfinite(value):
        return 0
    return max(0, min(int(value), capacity))


def _rows_batched(buffers: OutputBuffers, count: int) -> Iterator[Row]:
    # boxes [1, N, 4], scores/classes [1, N]
    for i in range(count):
        yield buffers.boxes[0][i], float(buffers.scores[0][i]), float(buffers.classes[0][i])


def _rows_unbatched(buffers: OutputBuffers, count: int) -> Iterator[Row]:
    # boxes [N, 4], scores/classes [N]
    for i in range(count):
        yield buffers.boxes[i], float(buffers.scores[i]), float(buffers.classes[i])


def _rows_single(buffers: OutputBuffers, count: int) -> Iterator[Row]:
    # boxes [4], scores/classes [1]
    if count > 0:
        yield buffers.boxes, float(buffers.scores[0]), float(buffers.classes[0])


_PARSERS: Dict[int, Callable[[OutputBuffers, int], Iterator[Row]]] = {
    3: _rows_batched,
    2: _rows_unbatched,
    1: _rows_single,
}


class OutputDecoder:
    """
    Turns backend outputs into thresholded detections in source-image pixels.

    Layouts are tried strictly in order, one blocking backend call each.
    """

    def __init__(
        self,
        fallback: FallbackDetectionGenerator,
        conf_threshold: float = 0.3,
        binding: OutputBinding = SCORES_FIRST,
        layouts: Sequence[OutputLayout] = DEFAULT_LAYOUTS,
        label_table: Optional[LabelTable] = None,
    ) -> None:
        if not layouts:
            raise ValueError("OutputDecoder needs at least one output layout")
        self.fallback = fallback
        self.conf_threshold = conf_threshold
        self.binding = binding
        self.layouts = tuple(layouts)
        self.label_table = label_table or LabelTable()

    def decode(
        self,
        backend: InferenceBackend,
        input_tensor: np.ndarray,
        width: int,
        height: int,
    ) -> List[Detection]:
        """
        Run the layout chain and return detections.

        Args:
            backend: Loaded inference backend.
            input_tensor: Preprocessed model input.
            width: Original image width, used to scale x coordinates.
            height: Original image height, used to scale y coordinates.

        Returns:
            A non-empty list.
        """
        for layout in self.layouts:
            try:
                detections = self._attempt(backend, layout, input_tensor, width, height)
            except ShapeMismatchError as e:
                logger.debug("Output layout %s rejected: %s", layout.name, e)
                continue
            except RuntimeInferenceError as e:
                logger.warning("Inference failed with layout %s: %s", layout.name, e)
                return self.fallback.generate(width, height)

            if not detections:
                logger.info(
                    "Layout %s produced no detections above %.2f; using fallback",
                    layout.name,
                    self.conf_threshold,
                )
                return self.fallback.generate(width, height)

            logger.info("Decoded %d detections with layout %s", len(detections), layout.name)
            return detections

        logger.warning("All %d output layouts failed; using fallback", len(self.layouts))
        return self.fallback.generate(width, height)

    def _attempt(
        self,
        backend: InferenceBackend,
        layout: OutputLayout,
        input_tensor: np.ndarray,
        width: int,
        height: int,
    ) -> List[Detection]:
        buffers = layout.allocate()
        backend.run(input_tensor, self.binding.bind(buffers))
        return self.parse(layout, buffers, width, height)

    def parse(
        self,
        layout: OutputLayout,
        buffers: OutputBuffers,
        width: int,
        height: int,
    ) -> List[Detection]:
        """Parse filled buffers for one layout. Does not fall back."""
        count = read_count(buffers.count, layout.capacity)
        rows = _PARSERS[layout.box_rank](buffers, count)

        detections: List[Detection] = []
        for box, score, class_id in rows:
            if not score > self.conf_threshold:
                continue
            if not math.isfinite(score) or not np.all(np.isfinite(box)):
                logger.debug("Skipping row with non-finite values: box=%s score=%s", box, score)
                continue
            detections.append(
                Detection(
                    bbox=BoundingBox.from_normalized(box, width, height),
                    label=self.label_table.resolve(class_id),
                    score=score,
                )
            )
        return detections
