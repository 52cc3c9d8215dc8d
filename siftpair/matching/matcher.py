"""Nearest-neighbor descriptor matching on the CPU."""

import logging
from typing import Optional, Tuple

import numpy as np

from siftpair.config import MatchingOptions
from siftpair.features.types import DescriptorSet, empty_matches
from siftpair.matching.distance import (
    apply_mask, border_mask, descriptor_distances, nearest_neighbors
)

logger = logging.getLogger(__name__)

Neighbors = Tuple[np.ndarray, np.ndarray, np.ndarray]


def distance_ratios(best_dist: np.ndarray, second_dist: np.ndarray) -> np.ndarray:
    """Best to second-best distance ratio; a missing second neighbor gives 0."""
    ratios = np.ones_like(best_dist)
    with np.errstate(invalid='ignore'):
        np.divide(best_dist, second_dist, out=ratios, where=second_dist > 0)
    return ratios


def passes_ratio_test(neighbors: Neighbors, max_ratio: float,
                      max_distance: float) -> Tuple[np.ndarray, np.ndarray]:
    """Rows whose best neighbor passes the ratio and distance tests."""
    best_idx, best_dist, second_dist = neighbors
    ratios = distance_ratios(best_dist, second_dist)
    accepted = (best_idx >= 0) & (best_dist <= max_distance) & (ratios <= max_ratio)
    return accepted, ratios


def filter_matches(options: MatchingOptions, forward: Neighbors,
                   reverse: Optional[Neighbors] = None,
                   max_ratio: Optional[float] = None) -> np.ndarray:
    """Turn nearest-neighbor results into a match list.

    Args:
        options: Validated matching options
        forward: Neighbors of every descriptor of the first set in the second
        reverse: Neighbors of every descriptor of the second set in the first,
            required when cross checking is enabled
        max_ratio: Ratio threshold overriding ``options.max_ratio``

    Returns:
        (K, 2) match list ordered by first index, at most
        ``options.max_num_matches`` long
    """
    if max_ratio is None:
        max_ratio = options.max_ratio

    accepted, ratios = passes_ratio_test(forward, max_ratio, options.max_distance)
    idx1 = np.nonzero(accepted)[0]
    idx2 = forward[0][idx1]

    if options.cross_check:
        if reverse is None:
            raise ValueError("Cross checking requires reverse neighbors")
        reverse_accepted, _ = passes_ratio_test(reverse, max_ratio, options.max_distance)
        mutual = reverse_accepted[idx2] & (reverse[0][idx2] == idx1)
        idx1, idx2 = idx1[mutual], idx2[mutual]

    if len(idx1) > options.max_num_matches:
        strongest = np.argsort(ratios[idx1], kind='stable')[:options.max_num_matches]
        keep = np.sort(strongest)
        idx1, idx2 = idx1[keep], idx2[keep]

    if len(idx1) == 0:
        return empty_matches()
    return np.column_stack([idx1, idx2]).astype(np.int64)


def match_distance_matrix(options: MatchingOptions, distances: np.ndarray,
                          max_ratio: Optional[float] = None) -> np.ndarray:
    """Match two sets given their (masked) distance matrix."""
    forward = nearest_neighbors(distances)
    reverse = nearest_neighbors(distances.T) if options.cross_check else None
    return filter_matches(options, forward, reverse, max_ratio=max_ratio)


def check_compatible(set1: DescriptorSet, set2: DescriptorSet):
    if set1.dim != set2.dim:
        raise ValueError(f"Descriptor dimensions differ: {set1.dim} vs {set2.dim}")


def match_descriptors(options: MatchingOptions, set1: DescriptorSet,
                      set2: DescriptorSet) -> np.ndarray:
    """Match the descriptors of two sets with ratio test and cross check."""
    options.check()
    check_compatible(set1, set2)
    if len(set1) == 0 or len(set2) == 0:
        return empty_matches()

    distances = descriptor_distances(set1.descriptors, set2.descriptors)
    distances = apply_mask(distances, border_mask(len(set1), len(set2), options.border))
    matches = match_distance_matrix(options, distances)
    logger.debug(f"Matched {len(matches)} of {len(set1)}x{len(set2)} features")
    return matches

