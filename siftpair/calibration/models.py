"""Two-view geometric model types and per-type fitting/residual dispatch."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

import numpy as np

from siftpair.calibration.epipolar import (
    essential_to_fundamental, fit_essential, fit_fundamental, symmetric_epipolar_distance
)
from siftpair.calibration.homography import fit_homography, symmetric_transfer_error


class ModelType(Enum):
    FUNDAMENTAL = "fundamental"
    ESSENTIAL = "essential"
    HOMOGRAPHY = "homography"
    UNCALIBRATED = "uncalibrated"


SAMPLE_SIZES = {
    ModelType.FUNDAMENTAL: 8,
    ModelType.ESSENTIAL: 8,
    ModelType.HOMOGRAPHY: 4,
    ModelType.UNCALIBRATED: 8,
}


def make_fit_func(model_type: ModelType, camera1: Optional[np.ndarray] = None,
                  camera2: Optional[np.ndarray] = None) -> Callable:
    """Return ``fit(pts1, pts2) -> matrix or None`` for the model type."""
    if model_type in (ModelType.FUNDAMENTAL, ModelType.UNCALIBRATED):
        return fit_fundamental
    if model_type == ModelType.HOMOGRAPHY:
        return fit_homography
    if model_type == ModelType.ESSENTIAL:
        require_cameras(camera1, camera2)
        return lambda pts1, pts2: fit_essential(pts1, pts2, camera1, camera2)
    raise ValueError(f"Unknown model type: {model_type}")


def compute_residuals(model_type: ModelType, matrix: np.ndarray, pts1: np.ndarray,
                      pts2: np.ndarray, camera1: Optional[np.ndarray] = None,
                      camera2: Optional[np.ndarray] = None) -> np.ndarray:
    """Residuals in pixels of correspondences under a fitted model.

    Epipolar models use the symmetric epipolar distance, homographies the
    symmetric transfer error. Inputs broadcast like the underlying metrics.
    """
    if model_type in (ModelType.FUNDAMENTAL, ModelType.UNCALIBRATED):
        return symmetric_epipolar_distance(matrix, pts1, pts2)
    if model_type == ModelType.HOMOGRAPHY:
        return symmetric_transfer_error(matrix, pts1, pts2)
    if model_type == ModelType.ESSENTIAL:
        require_cameras(camera1, camera2)
        F = essential_to_fundamental(matrix, camera1, camera2)
        return symmetric_epipolar_distance(F, pts1, pts2)
    raise ValueError(f"Unknown model type: {model_type}")


def require_cameras(camera1, camera2):
    if camera1 is None or camera2 is None:
        raise ValueError("Essential matrix estimation requires both camera matrices")
    if np.asarray(camera1).shape != (3, 3) or np.asarray(camera2).shape != (3, 3):
        raise ValueError("Camera matrices must be 3x3")


@dataclass
class GeometricModel:
    """Fitted two-view model with its inlier mask over a match list.

    ``inlier_mask`` is always aligned with ``matches``. ``secondary`` holds a
    second independent model when multiple models were requested.
    """
    model_type: ModelType
    matrix: np.ndarray
    matches: np.ndarray
    inlier_mask: np.ndarray
    num_trials: int = 0
    camera1: Optional[np.ndarray] = None
    camera2: Optional[np.ndarray] = None
    mean_residual: float = 0.0
    median_residual: float = 0.0
    inlier_ratio: float = 0.0
    secondary: Optional["GeometricModel"] = None
    guided: bool = False
    num_inliers: int = field(init=False)

    def __post_init__(self):
        self.inlier_mask = np.asarray(self.inlier_mask, dtype=bool)
        if len(self.inlier_mask) != len(self.matches):
            raise ValueError("Inlier mask must be aligned with the match list")
        self.num_inliers = int(self.inlier_mask.sum())

    @property
    def inlier_matches(self) -> np.ndarray:
        return self.matches[self.inlier_mask]

    def residuals(self, pts1: np.ndarray, pts2: np.ndarray) -> np.ndarray:
        return compute_residuals(self.model_type, self.matrix, pts1, pts2,
                                 self.camera1, self.camera2)

    def replace_matches(self, matches: np.ndarray, inlier_mask: np.ndarray,
                        residuals: np.ndarray):
        """Swap in a new match set; the model matrix is left untouched."""
        inlier_mask = np.asarray(inlier_mask, dtype=bool)
        if len(inlier_mask) != len(matches):
            raise ValueError("Inlier mask must be aligned with the match list")
        inlier_residuals = residuals[inlier_mask]
        self.matches, self.inlier_mask = matches, inlier_mask
        self.num_inliers = int(inlier_mask.sum())
        self.inlier_ratio = self.num_inliers / len(matches) if len(matches) else 0.0
        self.mean_residual, self.median_residual = residual_stats(inlier_residuals)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'model_type': self.model_type.value,
            'matrix': self.matrix.tolist(),
            'num_matches': int(len(self.matches)),
            'num_inliers': self.num_inliers,
            'inlier_ratio': float(self.inlier_ratio),
            'mean_residual': float(self.mean_residual),
            'median_residual': float(self.median_residual),
            'num_trials': int(self.num_trials),
            'guided': self.guided,
            'inlier_matches': self.inlier_matches.tolist(),
        }
        if self.secondary is not None:
            result['secondary'] = self.secondary.to_dict()
        return result


def residual_stats(residuals: np.ndarray):
    """Mean and median of a residual vector, zero when empty."""
    if len(residuals) == 0:
        return 0.0, 0.0
    return float(np.mean(residuals)), float(np.median(residuals))
