"""
Inference backend interface.

A backend executes the model once per call and fills caller-allocated output
buffers, bound by output index. It does not interpret the outputs; decoding
and label resolution happen in detection.decoder.
"""

from __future__ import annotations

from typing import Mapping, Protocol

import numpy as np


class InferenceBackend(Protocol):
    def run(self, input_tensor: np.ndarray, outputs: Mapping[int, np.ndarray]) -> None:
        """
        Run the model and copy each bound output into its buffer in place.

        Raises:
            ShapeMismatchError: If an output does not match its buffer shape.
            RuntimeInferenceError: If the interpreter fails.
        """
        ...

    def close(self) -> None:
        ...
