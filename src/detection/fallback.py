"""
Synthetic detections for when real inference is unavailable.

The generator keeps the overlay non-empty when the model is missing, every
output layout fails, or nothing clears the confidence threshold.
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from models.detection import BoundingBox, Detection, Label

logger = logging.getLogger(__name__)


class FallbackDetectionGenerator:
    """Generate plausible small boxes sized relative to the image."""

    # Boxes cover 2-12% of each axis
    MIN_SIZE_RATIO = 0.02
    SIZE_RATIO_RANGE = 0.10
    # Scores in [0.6, 0.95)
    MIN_SCORE = 0.6
    SCORE_RANGE = 0.35

    def __init__(
        self,
        rng: random.Random,
        labels: Sequence[Label],
        count: int = 2,
        fixed_label: Optional[Label] = None,
    ) -> None:
        """
        Args:
            rng: Random source. Owned by one pipeline; seed it for
                reproducible output.
            labels: Labels to draw from. Label.UNKNOWN is never drawn.
            count: Default number of detections per call, at least 1.
            fixed_label: If set, every detection uses this label instead
                of a random draw (e.g. Label.ACNE).
        """
        self._rng = rng
        self._labels = [label for label in labels if label is not Label.UNKNOWN]
        self.count = count
        self.fixed_label = fixed_label
        if fixed_label is None and not self._labels:
            raise ValueError("Fallback generator needs at least one known label")
        if count < 1:
            raise ValueError("Fallback count must be at least 1")

    def generate(self, width: int, height: int, count: Optional[int] = None) -> List[Detection]:
        """
        Generate detections fully contained in a width x height image.

        Args:
            width: Source image width in pixels.
            height: Source image height in pixels.
            count: Overrides the default count for this call. Must be at
                least 1; fallback results are never empty.
        """
        n = self.count if count is None else count
        if n < 1:
            raise ValueError("Fallback count must be at least 1")
        detections: List[Detection] = []

        for _ in range(n):
            box_w = width * (self.MIN_SIZE_RATIO + self._rng.random() * self.SIZE_RATIO_RANGE)
            box_h = height * (self.MIN_SIZE_RATIO + self._rng.random() * self.SIZE_RATIO_RANGE)

            x1 = self._rng.random() * (width - box_w)
            y1 = self._rng.random() * (height - box_h)

            if self.fixed_label is not None:
                label = self.fixed_label
            else:
                label = self._rng.choice(self._labels)

            score = self.MIN_SCORE + self._rng.random() * self.SCORE_RANGE

            detections.append(
                Detection(
                    bbox=BoundingBox(x1=x1, y1=y1, x2=x1 + box_w, y2=y1 + box_h),
                    label=label,
                    score=score,
                    is_fallback=True,
                )
            )

        logger.info("Using %d fallback detections for %dx%d image", len(detections), width, height)
        return detections
