"""Descriptor distance computation and nearest-neighbor search."""

from typing import Optional, Tuple

import numpy as np


def unit_rows(descriptors: np.ndarray) -> np.ndarray:
    """L2-normalize descriptor rows as float32; all-zero rows stay zero."""
    desc = np.asarray(descriptors, dtype=np.float32)
    norms = np.linalg.norm(desc, axis=1, keepdims=True)
    return np.divide(desc, norms, out=np.zeros_like(desc), where=norms > 0)


def descriptor_distances(desc1: np.ndarray, desc2: np.ndarray) -> np.ndarray:
    """Angular distance between every pair of descriptors.

    Descriptors are normalized to unit length and the distance is the angle
    between them in radians, so the values lie in [0, pi].
    """
    dots = unit_rows(desc1) @ unit_rows(desc2).T
    return np.arccos(np.clip(dots, -1.0, 1.0))


def border_mask(n: int, m: int, border: int) -> Optional[np.ndarray]:
    """Admissible (i, j) pairs for two sets split into two regions at `border`.

    Indices below `border` form the first region, the rest the second one.
    Only pairs from different regions are admissible. Returns None when the
    border is disabled.
    """
    if border <= 0:
        return None
    region1 = np.arange(n) >= border
    region2 = np.arange(m) >= border
    return region1[:, None] != region2[None, :]


def apply_mask(distances: np.ndarray, mask: Optional[np.ndarray]) -> np.ndarray:
    """Set inadmissible distances to infinity."""
    if mask is None:
        return distances
    return np.where(mask, distances, np.inf)


def nearest_neighbors(distances: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Best index plus best and second-best distance for every row.

    Rows without an admissible (finite) candidate get best index -1. Ties
    resolve to the lowest column index.
    """
    n, m = distances.shape
    if m == 0:
        return (np.full(n, -1, dtype=np.int64),
                np.full(n, np.inf), np.full(n, np.inf))

    rows = np.arange(n)
    best_idx = np.argmin(distances, axis=1).astype(np.int64)
    best_dist = distances[rows, best_idx].astype(np.float64)

    if m > 1:
        masked = distances.copy()
        masked[rows, best_idx] = np.inf
        second_dist = masked.min(axis=1).astype(np.float64)
    else:
        second_dist = np.full(n, np.inf)

    best_idx[~np.isfinite(best_dist)] = -1
    return best_idx, best_dist, second_dist
