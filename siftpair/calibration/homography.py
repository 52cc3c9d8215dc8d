"""Homography fitting and transfer error."""

import cv2
import numpy as np
from typing import Optional


def fit_homography(src_points: np.ndarray, dst_points: np.ndarray) -> Optional[np.ndarray]:
    """Least-squares homography mapping src_points onto dst_points.

    Four points give the minimal DLT solution; more points are fit jointly.
    Returns None for degenerate configurations.
    """
    if len(src_points) < 4 or len(dst_points) < 4:
        return None

    try:
        H, _ = cv2.findHomography(np.ascontiguousarray(src_points, dtype=np.float64),
                                  np.ascontiguousarray(dst_points, dtype=np.float64), 0)
    except cv2.error:
        return None

    if H is None or not np.all(np.isfinite(H)) or abs(np.linalg.det(H)) < 1e-12:
        return None
    return H


def transform_points(points: np.ndarray, H: np.ndarray) -> np.ndarray:
    """Transform points (..., 2) using homography matrix."""
    points_homogeneous = np.concatenate([points, np.ones(points.shape[:-1] + (1,))], axis=-1)
    transformed = points_homogeneous @ H.T
    with np.errstate(divide='ignore', invalid='ignore'):
        return transformed[..., :2] / transformed[..., 2:]


def symmetric_transfer_error(H: np.ndarray, pts1: np.ndarray,
                             pts2: np.ndarray) -> np.ndarray:
    """Larger of the forward and backward transfer errors in pixels.

    Inputs broadcast, so (N, 1, 2) against (1, M, 2) yields an (N, M) table.
    """
    H_inv = np.linalg.inv(H)
    forward = np.linalg.norm(transform_points(pts1, H) - pts2, axis=-1)
    backward = np.linalg.norm(transform_points(pts2, H_inv) - pts1, axis=-1)
    errors = np.maximum(forward, backward)
    return np.where(np.isfinite(errors), errors, np.inf)
