"""
TensorFlow Lite inference backend.

Uses tflite_runtime if installed. Without it, or without a model asset, the
pipeline still runs and serves fallback detections.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Tuple

import numpy as np

from models.config import ModelConfig
from models.errors import ModelLoadError, RuntimeInferenceError, ShapeMismatchError

from .backend import InferenceBackend

logger = logging.getLogger(__name__)


def _is_integer(dtype: Any) -> bool:
    return np.issubdtype(np.dtype(dtype), np.integer)


def _quantization(details: Mapping[str, Any]) -> Tuple[float, int]:
    scale, zero_point = details.get("quantization", (0.0, 0))
    return float(scale), int(zero_point)


def _quantize(tensor: np.ndarray, details: Mapping[str, Any]) -> np.ndarray:
    """Cast to the input dtype; integer inputs are quantized with scale and zero point."""
    dtype = np.dtype(details["dtype"])
    if not _is_integer(dtype):
        return tensor.astype(dtype, copy=False)
    scale, zero_point = _quantization(details)
    info = np.iinfo(dtype)
    return np.clip(np.round(tensor / scale + zero_point), info.min, info.max).astype(dtype)


def _dequantize(tensor: np.ndarray, details: Mapping[str, Any]) -> np.ndarray:
    if not _is_integer(tensor.dtype):
        return tensor
    scale, zero_point = _quantization(details)
    if scale == 0:
        return tensor
    return (tensor.astype(np.float32) - zero_point) * scale


class TFLiteBackend(InferenceBackend):
    """
    Wraps a TFLite interpreter behind the InferenceBackend contract.

    The interpreter is not safe for concurrent invocation; run() holds a lock
    for the whole set/invoke/get sequence.
    """

    def __init__(self, interpreter: Any):
        self._interpreter = interpreter
        self._lock = threading.Lock()
        self._input_details = interpreter.get_input_details()
        self._output_details = interpreter.get_output_details()

        details = self._input_details[0]
        if _is_integer(details["dtype"]) and _quantization(details)[0] == 0:
            raise ModelLoadError(
                f"Model input is {np.dtype(details['dtype']).name} without quantization parameters"
            )

    @classmethod
    def load(cls, model_path: str, num_threads: int = 4) -> "TFLiteBackend":
        """
        Load a .tflite model and allocate its tensors.

        Raises:
            ModelLoadError: If the runtime is missing or the model is unusable.
        """
        try:
            from tflite_runtime.interpreter import Interpreter  # type: ignore
        except ImportError as e:
            raise ModelLoadError(
                "tflite_runtime is not installed. Install with `pip install tflite-runtime` "
                "or set model.backend to 'none'."
            ) from e

        try:
            interpreter = Interpreter(model_path=model_path, num_threads=num_threads)
            interpreter.allocate_tensors()
        except (ValueError, OSError, RuntimeError) as e:
            raise ModelLoadError(f"Failed to load model {model_path}: {e}") from e

        backend = cls(interpreter)
        logger.info("TFLite model loaded: %s (threads=%d)", model_path, num_threads)
        return backend

    @property
    def is_open(self) -> bool:
        return self._interpreter is not None

    def run(self, input_tensor: np.ndarray, outputs: Mapping[int, np.ndarray]) -> None:
        with self._lock:
            if self._interpreter is None:
                raise RuntimeInferenceError("Interpreter has been closed")

            details = self._input_details[0]
            try:
                self._interpreter.set_tensor(details["index"], _quantize(input_tensor, details))
                self._interpreter.invoke()
            except (ValueError, RuntimeError) as e:
                raise RuntimeInferenceError(f"Inference failed: {e}") from e

            for index, buffer in outputs.items():
                if index >= len(self._output_details):
                    raise ShapeMismatchError(
                        f"Output {index} requested but model has {len(self._output_details)} outputs"
                    )
                output = self._output_details[index]
                tensor = _dequantize(self._interpreter.get_tensor(output["index"]), output)
                if tuple(tensor.shape) != tuple(buffer.shape):
                    raise ShapeMismatchError(
                        f"Output {index} has shape {tuple(tensor.shape)}, "
                        f"expected {tuple(buffer.shape)}"
                    )
                np.copyto(buffer, tensor, casting="unsafe")

    def close(self) -> None:
        with self._lock:
            if self._interpreter is not None:
                self._interpreter = None
                logger.info("TFLite interpreter released")


def load_backend(cfg: ModelConfig) -> Optional[InferenceBackend]:
    """
    Create the configured backend.

    Returns None when the backend is disabled or fails to load; callers
    treat None as "backend unavailable".
    """
    if cfg.backend == "none":
        logger.info("Inference backend disabled; using fallback detections")
        return None
    if cfg.backend != "tflite":
        raise ValueError(f"Unknown model backend: {cfg.backend}")

    try:
        return TFLiteBackend.load(cfg.path, num_threads=cfg.num_threads)
    except ModelLoadError as e:
        logger.error("Error loading model: %s", e)
        return None
