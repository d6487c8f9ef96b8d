"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import cv2
import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text(f"""
model:
  backend: "none"
  path: "assets/model_float32.tflite"
  num_threads: 2

preprocess:
  input_size: [512, 512]
  layout: "nchw"

decoder:
  conf_threshold: 0.3
  output_binding: "scores_first"
  max_detections: 100

fallback:
  count: 2
  seed: 7

log_path: "{(tmp_path / 'logs' / 'test.log').as_posix()}"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "model": {
            "backend": "tflite",
            "path": "assets/model_float32.tflite",
            "num_threads": 4,
        },
        "preprocess": {
            "input_size": [512, 512],
            "layout": "nchw",
        },
        "decoder": {
            "conf_threshold": 0.3,
            "output_binding": "scores_first",
            "max_detections": 100,
        },
        "fallback": {
            "count": 2,
        },
        "labels": {1: "PIH", 2: "PIE", 3: "Spot"},
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def photo_bgr():
    """A 1000x800 BGR test image with some structure."""
    img = np.full((800, 1000, 3), 180, dtype=np.uint8)
    cv2.circle(img, (300, 200), 40, (60, 60, 200), -1)
    cv2.rectangle(img, (600, 500), (700, 560), (40, 120, 40), -1)
    return img


@pytest.fixture
def jpeg_bytes(photo_bgr):
    ok, buf = cv2.imencode(".jpg", photo_bgr)
    assert ok
    return buf.tobytes()


@pytest.fixture
def png_bytes(photo_bgr):
    ok, buf = cv2.imencode(".png", photo_bgr)
    assert ok
    return buf.tobytes()
