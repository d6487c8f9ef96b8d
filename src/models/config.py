"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ModelConfig:
    """Model asset and interpreter configuration."""
    backend: str = "tflite"
    path: str = "assets/model_float32.tflite"
    num_threads: int = 4

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            backend=d.get("backend", "tflite"),
            path=d.get("path", "assets/model_float32.tflite"),
            num_threads=d.get("num_threads", 4),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "path": self.path,
            "num_threads": self.num_threads,
        }


@dataclass
class PreprocessConfig:
    """Input tensor configuration."""
    input_size: List[int] = field(default_factory=lambda: [512, 512])
    layout: str = "nchw"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PreprocessConfig":
        return cls(
            input_size=d.get("input_size", [512, 512]),
            layout=d.get("layout", "nchw"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_size": self.input_size,
            "layout": self.layout,
        }


@dataclass
class DecoderConfig:
    """
    Output decoding configuration.

    output_binding must match the concrete model. A wrong binding swaps
    score and class id semantics without raising.
    """
    conf_threshold: float = 0.3
    output_binding: str = "scores_first"
    max_detections: int = 100

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DecoderConfig":
        return cls(
            conf_threshold=d.get("conf_threshold", 0.3),
            output_binding=d.get("output_binding", "scores_first"),
            max_detections=d.get("max_detections", 100),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conf_threshold": self.conf_threshold,
            "output_binding": self.output_binding,
            "max_detections": self.max_detections,
        }


@dataclass
class FallbackConfig:
    """Synthetic detection configuration."""
    count: int = 2
    fixed_label: Optional[str] = None
    seed: Optional[int] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FallbackConfig":
        return cls(
            count=d.get("count", 2),
            fixed_label=d.get("fixed_label"),
            seed=d.get("seed"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"count": self.count}
        if self.fixed_label is not None:
            d["fixed_label"] = self.fixed_label
        if self.seed is not None:
            d["seed"] = self.seed
        return d


@dataclass
class RenderConfig:
    """Overlay drawing configuration."""
    stroke_width: int = 3
    label_alpha: float = 0.7
    font_scale: float = 0.5

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RenderConfig":
        return cls(
            stroke_width=d.get("stroke_width", 3),
            label_alpha=d.get("label_alpha", 0.7),
            font_scale=d.get("font_scale", 0.5),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stroke_width": self.stroke_width,
            "label_alpha": self.label_alpha,
            "font_scale": self.font_scale,
        }


def _default_labels() -> Dict[int, str]:
    return {1: "PIH", 2: "PIE", 3: "Spot"}


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    model: ModelConfig = field(default_factory=ModelConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    labels: Dict[int, str] = field(default_factory=_default_labels)
    log_path: str = "logs/lesion_detector.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        labels = d.get("labels")
        return cls(
            model=ModelConfig.from_dict(d.get("model", {})),
            preprocess=PreprocessConfig.from_dict(d.get("preprocess", {})),
            decoder=DecoderConfig.from_dict(d.get("decoder", {})),
            fallback=FallbackConfig.from_dict(d.get("fallback", {})),
            render=RenderConfig.from_dict(d.get("render", {})),
            # YAML keys may arrive as strings
            labels={int(k): v for k, v in labels.items()} if labels else _default_labels(),
            log_path=d.get("log_path", "logs/lesion_detector.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "model": self.model.to_dict(),
            "preprocess": self.preprocess.to_dict(),
            "decoder": self.decoder.to_dict(),
            "fallback": self.fallback.to_dict(),
            "render": self.render.to_dict(),
            "labels": dict(self.labels),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
