"""
Configuration management for siftpair
"""

from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, List, Optional
import copy
import os

import yaml


DEFAULT_CONFIG = {
    "extraction": {
        "num_threads": -1,
        "use_gpu": False,
        "gpu_index": "-1",
        "max_image_size": 3200,
        "max_num_features": 8192,
        "first_octave": -1,
        "num_octaves": 4,
        "octave_resolution": 3,
        "peak_threshold": 0.02 / 3,
        "edge_threshold": 10.0,
        "estimate_affine_shape": False,
        "max_num_orientations": 2,
        "upright": False,
        "darkness_adaptivity": False,
        "domain_size_pooling": False,
        "dsp_min_scale": 1.0 / 6.0,
        "dsp_max_scale": 3.0,
        "dsp_num_scales": 10,
        "normalization": "L1_ROOT"
    },
    "matching": {
        "num_threads": -1,
        "use_gpu": False,
        "gpu_index": "-1",
        "max_ratio": 0.8,
        "max_distance": 0.7,
        "cross_check": True,
        "max_num_matches": 32768,
        "max_error": 4.0,
        "confidence": 0.999,
        "min_num_trials": 30,
        "max_num_trials": 10000,
        "min_inlier_ratio": 0.25,
        "min_num_inliers": 15,
        "multiple_models": False,
        "guided_matching": False,
        "border": 0,
        "guided_max_ratio": 0.9,
        "max_h_inlier_ratio": 0.8,
        "random_seed": None
    }
}

NORMALIZATIONS = ("L1_ROOT", "L2")


class InvalidOptionsError(ValueError):
    """Raised when an options struct fails its pre-flight check."""


def parse_gpu_indices(gpu_index: str) -> List[int]:
    """Parse a comma-separated GPU index list such as "0,1,2"."""
    try:
        indices = [int(token) for token in str(gpu_index).split(",")]
    except ValueError:
        raise InvalidOptionsError(f"Invalid gpu_index list: {gpu_index!r}")
    if any(index < -1 for index in indices):
        raise InvalidOptionsError(f"Invalid gpu_index list: {gpu_index!r}")
    if -1 in indices and len(indices) > 1:
        raise InvalidOptionsError("gpu_index -1 cannot be combined with other indices")
    return indices


def _require(condition: bool, message: str):
    if not condition:
        raise InvalidOptionsError(message)


class _OptionsMixin:
    """Shared construction helpers for the options dataclasses."""

    _section = ""

    @classmethod
    def from_dict(cls, values: Optional[Dict[str, Any]] = None):
        """Build options from a (partial) mapping merged over the defaults."""
        values = dict(values or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidOptionsError(
                f"Unknown {cls._section} options: {', '.join(unknown)}")
        merged = copy.deepcopy(DEFAULT_CONFIG[cls._section])
        merged.update(values)
        return cls(**merged)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ExtractionOptions(_OptionsMixin):
    """Options consumed by the feature detector."""

    _section = "extraction"

    num_threads: int = -1
    use_gpu: bool = False
    gpu_index: str = "-1"
    max_image_size: int = 3200
    max_num_features: int = 8192
    first_octave: int = -1
    num_octaves: int = 4
    octave_resolution: int = 3
    peak_threshold: float = 0.02 / 3
    edge_threshold: float = 10.0
    estimate_affine_shape: bool = False
    max_num_orientations: int = 2
    upright: bool = False
    darkness_adaptivity: bool = False
    domain_size_pooling: bool = False
    dsp_min_scale: float = 1.0 / 6.0
    dsp_max_scale: float = 3.0
    dsp_num_scales: int = 10
    normalization: str = "L1_ROOT"

    def check(self) -> "ExtractionOptions":
        """Validate the options, raising InvalidOptionsError on failure."""
        _require(self.num_threads == -1 or self.num_threads > 0,
                 "num_threads must be -1 or positive")
        parse_gpu_indices(self.gpu_index)
        _require(self.max_image_size > 0, "max_image_size must be positive")
        _require(self.max_num_features > 0, "max_num_features must be positive")
        _require(self.first_octave >= -1, "first_octave must be >= -1")
        _require(self.num_octaves > 0, "num_octaves must be positive")
        _require(self.octave_resolution > 0, "octave_resolution must be positive")
        _require(self.peak_threshold > 0, "peak_threshold must be positive")
        _require(self.edge_threshold > 0, "edge_threshold must be positive")
        _require(self.max_num_orientations > 0,
                 "max_num_orientations must be positive")
        _require(0 < self.dsp_min_scale <= self.dsp_max_scale,
                 "dsp scales must satisfy 0 < dsp_min_scale <= dsp_max_scale")
        _require(self.dsp_num_scales > 0, "dsp_num_scales must be positive")
        _require(self.normalization in NORMALIZATIONS,
                 f"normalization must be one of {NORMALIZATIONS}")
        return self

    def resolved_num_threads(self) -> int:
        return resolve_num_threads(self.num_threads)


@dataclass(frozen=True)
class MatchingOptions(_OptionsMixin):
    """Options consumed by matching and geometric verification."""

    _section = "matching"

    num_threads: int = -1
    use_gpu: bool = False
    gpu_index: str = "-1"
    max_ratio: float = 0.8
    max_distance: float = 0.7
    cross_check: bool = True
    max_num_matches: int = 32768
    max_error: float = 4.0
    confidence: float = 0.999
    min_num_trials: int = 30
    max_num_trials: int = 10000
    min_inlier_ratio: float = 0.25
    min_num_inliers: int = 15
    multiple_models: bool = False
    guided_matching: bool = False
    border: int = 0
    guided_max_ratio: float = 0.9
    max_h_inlier_ratio: float = 0.8
    random_seed: Optional[int] = None

    def check(self) -> "MatchingOptions":
        """Validate the options, raising InvalidOptionsError on failure."""
        _require(self.num_threads == -1 or self.num_threads > 0,
                 "num_threads must be -1 or positive")
        parse_gpu_indices(self.gpu_index)
        _require(0 < self.max_ratio <= 1, "max_ratio must be in (0, 1]")
        _require(self.max_distance > 0, "max_distance must be positive")
        _require(self.max_num_matches > 0, "max_num_matches must be positive")
        _require(self.max_error > 0, "max_error must be positive")
        _require(0 < self.confidence < 1, "confidence must be in (0, 1)")
        _require(self.min_num_trials > 0, "min_num_trials must be positive")
        _require(self.min_num_trials <= self.max_num_trials,
                 "min_num_trials must not exceed max_num_trials")
        _require(0 < self.min_inlier_ratio <= 1,
                 "min_inlier_ratio must be in (0, 1]")
        _require(self.min_num_inliers >= 0, "min_num_inliers must be >= 0")
        _require(self.border >= 0, "border must be >= 0")
        _require(0 < self.guided_max_ratio <= 1, "guided_max_ratio must be in (0, 1]")
        _require(0 < self.max_h_inlier_ratio <= 1,
                 "max_h_inlier_ratio must be in (0, 1]")
        _require(self.random_seed is None or self.random_seed >= 0,
                 "random_seed must be None or >= 0")
        return self

    def resolved_num_threads(self) -> int:
        return resolve_num_threads(self.num_threads)


def resolve_num_threads(num_threads: int) -> int:
    """Map -1 to the available hardware concurrency."""
    if num_threads > 0:
        return num_threads
    return os.cpu_count() or 1


def load_config(config_path: str) -> Dict[str, Any]:
    """Load a YAML config and merge it over DEFAULT_CONFIG."""
    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise InvalidOptionsError(f"Config file {config_path} must contain a mapping")

    config = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in raw.items():
        if section not in config:
            raise InvalidOptionsError(f"Unknown config section: {section}")
        values = values or {}
        if not isinstance(values, dict):
            raise InvalidOptionsError(f"Config section {section} must be a mapping")
        config[section].update(values)
    return config


def load_options(config_path: str):
    """Load a YAML config and return validated (ExtractionOptions, MatchingOptions)."""
    config = load_config(config_path)
    extraction = ExtractionOptions.from_dict(config["extraction"]).check()
    matching = MatchingOptions.from_dict(config["matching"]).check()
    return extraction, matching
