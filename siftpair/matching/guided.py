"""Guided matching restricted to geometrically consistent keypoint pairs."""

import logging
from typing import Optional

import numpy as np

from siftpair.calibration.models import GeometricModel
from siftpair.config import MatchingOptions
from siftpair.features.types import DescriptorSet, empty_matches, matched_points
from siftpair.matching.distance import (
    apply_mask, border_mask, descriptor_distances
)
from siftpair.matching.matcher import check_compatible, match_distance_matrix

logger = logging.getLogger(__name__)


GUIDED_BLOCK_SIZE = 256


def admissible_mask(model: GeometricModel, points1: np.ndarray, points2: np.ndarray,
                    max_error: float, block_size: int = GUIDED_BLOCK_SIZE) -> np.ndarray:
    """(N, M) table of keypoint pairs whose residual is within max_error.

    Residuals are evaluated ``block_size`` rows of points1 at a time, so the
    float temporaries stay at (block_size, M) instead of (N, M).
    """
    points1 = np.asarray(points1, dtype=np.float64)
    points2 = np.asarray(points2, dtype=np.float64)[None, :, :]
    mask = np.zeros((len(points1), points2.shape[1]), dtype=bool)
    for start in range(0, len(points1), block_size):
        block = points1[start:start + block_size, None, :]
        mask[start:start + block_size] = model.residuals(block, points2) <= max_error
    return mask


def guided_distances(options: MatchingOptions, model: GeometricModel,
                     set1: DescriptorSet, set2: DescriptorSet,
                     distances: np.ndarray) -> np.ndarray:
    """Mask a descriptor distance table to admissible pairs only."""
    mask = admissible_mask(model, set1.points, set2.points, options.max_error)
    seam = border_mask(len(set1), len(set2), options.border)
    if seam is not None:
        mask &= seam
    return apply_mask(distances, mask)


def assign_guided_matches(model: GeometricModel, matches: np.ndarray,
                          set1: DescriptorSet, set2: DescriptorSet) -> GeometricModel:
    """Overwrite the model's match data with a complete guided match set."""
    if len(matches):
        pts1, pts2 = matched_points(matches, set1, set2)
        residuals = model.residuals(pts1, pts2)
    else:
        residuals = np.zeros(0)
    model.replace_matches(matches, np.ones(len(matches), dtype=bool), residuals)
    model.guided = True
    return model


def match_guided(options: MatchingOptions, set1: DescriptorSet, set2: DescriptorSet,
                 model: GeometricModel, distances: Optional[np.ndarray] = None) -> GeometricModel:
    """
    Re-match two descriptor sets under a fitted model.

    Only keypoint pairs whose residual under the model is at most
    ``max_error`` compete as neighbors, and the ratio test uses the relaxed
    ``guided_max_ratio``. The model matrix is not re-estimated.

    Args:
        options: Matching options
        set1: Full descriptor set of the first image
        set2: Full descriptor set of the second image
        model: Model whose match data is replaced
        distances: Precomputed descriptor distance table (optional)

    Returns:
        The same model instance with its matches and inlier mask replaced
    """
    options.check()
    check_compatible(set1, set2)

    if len(set1) == 0 or len(set2) == 0:
        matches = empty_matches()
    else:
        if distances is None:
            distances = descriptor_distances(set1.descriptors, set2.descriptors)
        distances = guided_distances(options, model, set1, set2, distances)
        matches = match_distance_matrix(options, distances, max_ratio=options.guided_max_ratio)

    logger.debug(f"Guided matching found {len(matches)} matches "
                 f"(previously {model.num_inliers} inliers)")
    return assign_guided_matches(model, matches, set1, set2)
