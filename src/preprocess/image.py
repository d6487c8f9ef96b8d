"""
Image decoding and input tensor construction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from models.errors import ImageDecodeError
from models.image import DecodedImage

logger = logging.getLogger(__name__)

LAYOUTS = ("nchw", "nhwc")


def decode_image(data: bytes) -> DecodedImage:
    """
    Decode encoded image bytes (JPEG, PNG, ...) into an RGB image.

    Grayscale and alpha inputs are converted to 3 channels.

    Raises:
        ImageDecodeError: If the bytes are empty or not a supported image.
    """
    if not data:
        raise ImageDecodeError("Failed to decode image: no data")

    buf = np.frombuffer(data, dtype=np.uint8)
    try:
        bgr = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"Failed to decode image: {e}") from e
    if bgr is None or bgr.size == 0:
        raise ImageDecodeError("Failed to decode image")

    rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
    image = DecodedImage.from_numpy(rgb)
    logger.debug("Decoded image: %dx%d", image.width, image.height)
    return image


@dataclass(frozen=True)
class ImagePreprocessor:
    """
    Builds the model input tensor from a decoded image.

    Attributes:
        input_size: Model input resolution as (width, height).
        layout: "nchw" for [1, 3, H, W] or "nhwc" for [1, H, W, 3].
    """
    input_size: Tuple[int, int] = (512, 512)
    layout: str = "nchw"

    def __post_init__(self):
        if self.layout not in LAYOUTS:
            raise ValueError(f"layout must be one of: {', '.join(LAYOUTS)}")
        if len(self.input_size) != 2 or any(int(v) <= 0 for v in self.input_size):
            raise ValueError("input_size must be [width, height] with positive values")

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        w, h = self.input_size
        if self.layout == "nchw":
            return (1, 3, h, w)
        return (1, h, w, 3)

    def build_tensor(self, image: DecodedImage) -> np.ndarray:
        """Resize, normalize to [0, 1] and lay out the pixels as float32."""
        w, h = self.input_size
        resized = cv2.resize(image.pixels, (int(w), int(h)), interpolation=cv2.INTER_LINEAR)
        tensor = resized.astype(np.float32) / 255.0
        if self.layout == "nchw":
            tensor = tensor.transpose(2, 0, 1)
        return np.ascontiguousarray(tensor[None])

    def process(self, data: bytes) -> Tuple[DecodedImage, np.ndarray]:
        """Decode bytes and build the input tensor in one step."""
        image = decode_image(data)
        return image, self.build_tensor(image)
