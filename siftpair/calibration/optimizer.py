"""Two-view model refinement using Levenberg-Marquardt."""

import numpy as np
from scipy.optimize import least_squares
from typing import Optional

from siftpair.calibration.epipolar import (
    essential_to_fundamental, project_to_essential, to_homogeneous
)
from siftpair.calibration.homography import transform_points
from siftpair.calibration.models import ModelType


def _epipolar_residuals(F: np.ndarray, pts1: np.ndarray, pts2: np.ndarray) -> np.ndarray:
    x1 = to_homogeneous(pts1)
    x2 = to_homogeneous(pts2)
    lines2 = x1 @ F.T
    lines1 = x2 @ F
    numerator = np.sum(x2 * lines2, axis=-1)
    d2 = numerator / np.maximum(np.hypot(lines2[:, 0], lines2[:, 1]), 1e-12)
    d1 = numerator / np.maximum(np.hypot(lines1[:, 0], lines1[:, 1]), 1e-12)
    return np.concatenate([d1, d2])


def _transfer_residuals(H: np.ndarray, pts1: np.ndarray, pts2: np.ndarray) -> np.ndarray:
    forward = transform_points(pts1, H) - pts2
    backward = transform_points(pts2, np.linalg.inv(H)) - pts1
    return np.concatenate([forward.ravel(), backward.ravel()])


class ModelOptimizer:
    """Refine a fitted model matrix on its inlier correspondences."""

    def __init__(self, max_iters: int = 100):
        self.max_iters = max_iters

    def optimize(self, model_type: ModelType, matrix: np.ndarray, pts1: np.ndarray,
                 pts2: np.ndarray, camera1: Optional[np.ndarray] = None,
                 camera2: Optional[np.ndarray] = None) -> Optional[np.ndarray]:
        """Return the refined matrix, or None if the problem is underdetermined."""
        if len(pts1) < 9:
            return None

        scale = np.linalg.norm(matrix)
        if scale < 1e-12:
            return None
        params = (matrix / scale).ravel()

        def residuals(p):
            M = p.reshape(3, 3)
            if model_type == ModelType.HOMOGRAPHY:
                if abs(np.linalg.det(M)) < 1e-12:
                    return np.full(4 * len(pts1), 1e6)
                return _transfer_residuals(M, pts1, pts2)
            if model_type == ModelType.ESSENTIAL:
                M = essential_to_fundamental(M, camera1, camera2)
            return _epipolar_residuals(M, pts1, pts2)

        result = least_squares(residuals, params, method='lm', max_nfev=self.max_iters)
        if not np.all(np.isfinite(result.x)):
            return None
        return self._finalize(model_type, result.x.reshape(3, 3))

    def _finalize(self, model_type: ModelType, M: np.ndarray) -> np.ndarray:
        """Restore the constraints of the model type lost during optimization."""
        if model_type == ModelType.ESSENTIAL:
            M = project_to_essential(M)
        elif model_type != ModelType.HOMOGRAPHY:
            U, S, Vt = np.linalg.svd(M)
            M = U @ np.diag([S[0], S[1], 0.0]) @ Vt
        return M / np.linalg.norm(M)
