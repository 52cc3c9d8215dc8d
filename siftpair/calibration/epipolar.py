"""Fundamental and essential matrix fitting and epipolar distances."""

import cv2
import numpy as np
from typing import Optional


def to_homogeneous(points: np.ndarray) -> np.ndarray:
    return np.concatenate([points, np.ones(points.shape[:-1] + (1,))], axis=-1)


def fit_fundamental(pts1: np.ndarray, pts2: np.ndarray) -> Optional[np.ndarray]:
    """Normalized 8-point fundamental matrix with rank-2 enforcement."""
    if len(pts1) < 8:
        return None

    try:
        F, _ = cv2.findFundamentalMat(np.ascontiguousarray(pts1, dtype=np.float64),
                                      np.ascontiguousarray(pts2, dtype=np.float64),
                                      cv2.FM_8POINT)
    except cv2.error:
        return None

    if F is None or F.shape != (3, 3) or not np.all(np.isfinite(F)):
        return None
    return F


def project_to_essential(E: np.ndarray) -> np.ndarray:
    """Closest matrix with two equal singular values and a zero one."""
    U, S, Vt = np.linalg.svd(E)
    s = (S[0] + S[1]) / 2.0
    return U @ np.diag([s, s, 0.0]) @ Vt


def essential_to_fundamental(E: np.ndarray, K1: np.ndarray, K2: np.ndarray) -> np.ndarray:
    return np.linalg.inv(K2).T @ E @ np.linalg.inv(K1)


def fit_essential(pts1: np.ndarray, pts2: np.ndarray,
                  K1: np.ndarray, K2: np.ndarray) -> Optional[np.ndarray]:
    """Essential matrix from pixel correspondences and camera intrinsics."""
    F = fit_fundamental(pts1, pts2)
    if F is None:
        return None
    E = project_to_essential(K2.T @ F @ K1)
    norm = np.linalg.norm(E)
    if norm < 1e-12:
        return None
    return E / norm


def symmetric_epipolar_distance(F: np.ndarray, pts1: np.ndarray,
                                pts2: np.ndarray) -> np.ndarray:
    """Larger of the point-to-epipolar-line distances in both images.

    Inputs broadcast, so (N, 1, 2) against (1, M, 2) yields an (N, M) table.
    """
    x1 = to_homogeneous(pts1)
    x2 = to_homogeneous(pts2)
    lines2 = x1 @ F.T
    lines1 = x2 @ F
    numerator = np.abs(np.sum(x2 * lines2, axis=-1))

    with np.errstate(divide='ignore', invalid='ignore'):
        d2 = numerator / np.hypot(lines2[..., 0], lines2[..., 1])
        d1 = numerator / np.hypot(lines1[..., 0], lines1[..., 1])
    errors = np.maximum(d1, d2)
    return np.where(np.isfinite(errors), errors, np.inf)
