"""
Detection pipeline for captured photographs.

This module composes preprocessing, backend invocation, output decoding and
fallback generation into one synchronous call:

    image bytes -> decode -> input tensor -> layout chain -> detections

Only image decoding can fail the call. A missing model, a model whose outputs
match no known layout, an interpreter error, or an empty result all degrade
to fallback detections.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import List, Optional

from detection.decoder import OutputDecoder
from detection.fallback import FallbackDetectionGenerator
from detection.layouts import default_layouts, get_binding
from inference.backend import InferenceBackend
from inference.tflite_backend import load_backend
from models.config import Config
from models.detection import Detection, Label, LabelTable
from preprocess.image import ImagePreprocessor, decode_image


class DetectionPipeline:
    """
    Single-flight detection pipeline.

    Calls to detect() are serialized; the backend interpreter is not safe for
    concurrent invocation. The pipeline owns its backend and releases it on
    close(), so it is best used as a context manager:

        with create_pipeline_from_config(config) as pipeline:
            detections = pipeline.detect(image_bytes)
    """

    def __init__(
        self,
        preprocessor: ImagePreprocessor,
        decoder: OutputDecoder,
        backend: Optional[InferenceBackend] = None,
    ):
        self.preprocessor = preprocessor
        self.decoder = decoder
        self._backend = backend
        self._lock = threading.Lock()

    @property
    def fallback(self) -> FallbackDetectionGenerator:
        return self.decoder.fallback

    @property
    def backend_available(self) -> bool:
        return self._backend is not None

    def detect(self, data: bytes) -> List[Detection]:
        """
        Run detection on encoded image bytes.

        Returns:
            Detections in source-image pixel coordinates, never empty.

        Raises:
            ImageDecodeError: If the bytes are not a decodable image.
        """
        with self._lock:
            image = decode_image(data)

            if self._backend is None:
                logging.info("Model not loaded; using fallback detections")
                return self.fallback.generate(image.width, image.height)

            input_tensor = self.preprocessor.build_tensor(image)
            logging.debug(
                f"Running inference: original_size={image.width}x{image.height}, "
                f"input_shape={input_tensor.shape}"
            )
            return self.decoder.decode(self._backend, input_tensor, image.width, image.height)

    def detect_file(self, path: str) -> List[Detection]:
        """Read an image file and run detect() on its bytes."""
        with open(path, "rb") as f:
            data = f.read()
        return self.detect(data)

    def close(self) -> None:
        """Release the backend. Safe to call multiple times."""
        with self._lock:
            if self._backend is not None:
                self._backend.close()
                self._backend = None
                logging.info("Detection pipeline closed")

    def __enter__(self) -> "DetectionPipeline":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def create_pipeline_from_config(
    config: Config,
    backend: Optional[InferenceBackend] = None,
    rng: Optional[random.Random] = None,
) -> DetectionPipeline:
    """
    Factory function to create a DetectionPipeline from typed config.

    Args:
        config: Application configuration.
        backend: Pre-built backend. If None, one is loaded from config.model;
            a failed load leaves the pipeline without a backend.
        rng: Random source for fallback detections. Defaults to a
            random.Random seeded with config.fallback.seed.
    """
    label_table = LabelTable.from_dict(config.labels)

    if rng is None:
        rng = random.Random(config.fallback.seed)

    fixed_label = Label(config.fallback.fixed_label) if config.fallback.fixed_label else None
    fallback = FallbackDetectionGenerator(
        rng=rng,
        labels=label_table.labels,
        count=config.fallback.count,
        fixed_label=fixed_label,
    )

    decoder = OutputDecoder(
        fallback=fallback,
        conf_threshold=float(config.decoder.conf_threshold),
        binding=get_binding(config.decoder.output_binding),
        layouts=default_layouts(int(config.decoder.max_detections)),
        label_table=label_table,
    )

    preprocessor = ImagePreprocessor(
        input_size=tuple(config.preprocess.input_size),
        layout=config.preprocess.layout,
    )

    if backend is None:
        backend = load_backend(config.model)

    pipeline = DetectionPipeline(preprocessor, decoder, backend)
    logging.info(
        f"Detection pipeline ready: backend={'loaded' if pipeline.backend_available else 'unavailable'}, "
        f"threshold={decoder.conf_threshold}, binding={config.decoder.output_binding}"
    )
    return pipeline
