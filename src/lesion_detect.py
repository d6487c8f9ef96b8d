"""
Command-line driver for the lesion detection pipeline.

Runs the detector on one photograph, prints the detections as JSON and
optionally writes an annotated copy of the image.

Usage:
    python src/lesion_detect.py photo.jpg --config config/config.yaml --output out.jpg

Arguments:
    image: Path to the photograph
    --config: Path to configuration file
    --canvas: Overlay canvas size as WIDTHxHEIGHT (defaults to image size)
    --output: Write the annotated canvas to this path
    --seed: Seed for fallback detections (overrides config)
"""

import os
import sys
import argparse
import json
import logging
import yaml
import cv2
from typing import Dict, Any, Tuple, Optional

from models.config import Config
from models.detection import Label, detections_to_dicts
from models.errors import ImageDecodeError
from detection.layouts import BINDINGS
from ops.logging import setup_logging
from pipeline.engine import create_pipeline_from_config
from rendering.overlay import draw_detections, summarize


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base and return base."""
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _deep_merge(base[k], v)
        else:
            base[k] = v
    return base


def _read_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration with layering:
    - `config/default.yaml` (checked in)
    - `config/config.yaml` (local overrides)
    - plus any explicitly provided `--config` path (treated as overrides)

    Raises:
        OSError, yaml.YAMLError: If a present config file cannot be read.
    """
    config_dir = os.path.dirname(config_path)

    base_path = os.path.join(config_dir, "default.yaml")
    base_cfg = _read_yaml(base_path) if os.path.exists(base_path) else {}

    local_overrides_path = os.path.join(config_dir, "config.yaml")
    local_cfg = _read_yaml(local_overrides_path) if os.path.exists(local_overrides_path) else {}

    merged = _deep_merge(base_cfg, local_cfg)

    # Finally apply explicit config_path if it's not one of the files above
    explicit = os.path.abspath(config_path)
    if os.path.exists(config_path) and explicit not in (
        os.path.abspath(local_overrides_path),
        os.path.abspath(base_path),
    ):
        merged = _deep_merge(merged, _read_yaml(config_path))

    return merged


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate configuration structure and values.

    Args:
        config: Configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    required_sections = ['model', 'decoder', 'log_path', 'log_level']
    for section in required_sections:
        if section not in config:
            return False, f"Missing required configuration section: {section}"

    # Model
    model = config.get('model') or {}
    backend = model.get('backend', 'tflite')
    if backend not in ('tflite', 'none'):
        return False, "model.backend must be one of: tflite, none"
    if backend == 'tflite':
        if not isinstance(model.get('path'), str) or not model.get('path'):
            return False, "model.path is required when model.backend is 'tflite'"
    if 'num_threads' in model:
        if not isinstance(model['num_threads'], int) or model['num_threads'] <= 0:
            return False, "model.num_threads must be a positive integer"

    # Preprocess (optional)
    preprocess = config.get('preprocess') or {}
    if 'input_size' in preprocess:
        size = preprocess['input_size']
        if not isinstance(size, list) or len(size) != 2:
            return False, "preprocess.input_size must be a list of [width, height]"
        if not all(isinstance(x, int) and x > 0 for x in size):
            return False, "preprocess.input_size values must be positive integers"
    if preprocess.get('layout', 'nchw') not in ('nchw', 'nhwc'):
        return False, "preprocess.layout must be one of: nchw, nhwc"

    # Decoder
    decoder = config.get('decoder') or {}
    if 'conf_threshold' not in decoder:
        return False, "Missing decoder.conf_threshold"
    if not _is_number(decoder['conf_threshold']):
        return False, "decoder.conf_threshold must be a number"
    if decoder.get('output_binding', 'scores_first') not in BINDINGS:
        return False, f"decoder.output_binding must be one of: {', '.join(BINDINGS)}"
    if 'max_detections' in decoder:
        md = decoder['max_detections']
        if not isinstance(md, int) or md <= 0:
            return False, "decoder.max_detections must be a positive integer"

    # Fallback (optional)
    fallback = config.get('fallback') or {}
    if 'count' in fallback:
        if not isinstance(fallback['count'], int) or fallback['count'] < 1:
            return False, "fallback.count must be a positive integer"
    if fallback.get('fixed_label') is not None:
        if fallback['fixed_label'] not in [label.value for label in Label]:
            return False, f"fallback.fixed_label is not a known label: {fallback['fixed_label']}"
    if fallback.get('seed') is not None and not isinstance(fallback['seed'], int):
        return False, "fallback.seed must be an integer"

    # Labels (optional)
    labels = config.get('labels')
    if labels is not None:
        if not isinstance(labels, dict) or not labels:
            return False, "labels must be a non-empty mapping of class id to label"
        known = [label.value for label in Label]
        for class_id, name in labels.items():
            try:
                int(class_id)
            except (TypeError, ValueError):
                return False, f"labels key must be an integer class id: {class_id}"
            if name not in known:
                return False, f"labels value is not a known label: {name}"

    # Render (optional)
    render = config.get('render') or {}
    if 'label_alpha' in render:
        alpha = render['label_alpha']
        if not _is_number(alpha) or not (0 <= alpha <= 1):
            return False, "render.label_alpha must be between 0 and 1"

    valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if config['log_level'] not in valid_log_levels:
        return False, f"log_level must be one of: {', '.join(valid_log_levels)}"

    return True, None


def parse_canvas(value: str) -> Tuple[int, int]:
    """Parse a WIDTHxHEIGHT canvas size."""
    try:
        w, h = (int(v) for v in value.lower().split("x"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"canvas must be WIDTHxHEIGHT, got '{value}'")
    if w <= 0 or h <= 0:
        raise argparse.ArgumentTypeError("canvas width and height must be positive")
    return w, h


def main(argv=None) -> int:
    """Main application function."""
    parser = argparse.ArgumentParser(description='Lesion Detection - photo analysis')
    parser.add_argument('image', type=str,
                        help='Path to the photograph')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to configuration file')
    parser.add_argument('--canvas', type=parse_canvas, default=None,
                        help='Overlay canvas size as WIDTHxHEIGHT')
    parser.add_argument('--output', type=str, default=None,
                        help='Write the annotated canvas to this path')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for fallback detections')
    args = parser.parse_args(argv)

    try:
        raw_config = load_config(args.config)
    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Failed to load configuration: {e}")
        return 1

    is_valid, error_msg = validate_config(raw_config)
    if not is_valid:
        logging.error(f"Configuration validation failed: {error_msg}")
        return 1

    config = Config.from_dict(raw_config)
    if args.seed is not None:
        config.fallback.seed = args.seed

    setup_logging(config.log_path, config.log_level)

    with create_pipeline_from_config(config) as pipeline:
        try:
            detections = pipeline.detect_file(args.image)
        except ImageDecodeError as e:
            logging.error(f"Error loading image {args.image}: {e}")
            return 1
        except OSError as e:
            logging.error(f"Cannot read {args.image}: {e}")
            return 1

    print(json.dumps(detections_to_dicts(detections), indent=2))
    logging.info(summarize(detections))

    if args.output:
        canvas = cv2.imread(args.image, cv2.IMREAD_COLOR)
        if args.canvas is not None:
            canvas = cv2.resize(canvas, args.canvas)
        draw_detections(canvas, detections, config.render)
        if not cv2.imwrite(args.output, canvas):
            logging.error(f"Failed to write annotated image to {args.output}")
            return 1
        logging.info(f"Annotated image written to {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
