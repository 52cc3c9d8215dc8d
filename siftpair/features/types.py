"""Keypoint, descriptor and match containers."""

from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Keypoint:
    """Detected feature location with scale and orientation in radians."""
    x: float
    y: float
    scale: float = 0.0
    orientation: float = 0.0


class Match(NamedTuple):
    """Index pair into the first and second descriptor sets."""
    idx1: int
    idx2: int


class DescriptorSet:
    """Keypoints and quantized descriptors of one image.

    Keypoints are stored as an (N, 4) float32 array of
    ``[x, y, scale, orientation]`` and descriptors as an (N, D) uint8 array.
    Row ``i`` of both arrays describes the same feature; the row index is the
    identifier used in match lists.
    """

    def __init__(self, keypoints: np.ndarray, descriptors: np.ndarray):
        keypoints = np.array(keypoints, dtype=np.float32)
        if keypoints.size == 0:
            keypoints = keypoints.reshape(0, 4)
        if keypoints.ndim != 2 or keypoints.shape[1] != 4:
            raise ValueError(f"Keypoints must have shape (N, 4), got {keypoints.shape}")

        descriptors = np.asarray(descriptors)
        if descriptors.ndim != 2:
            raise ValueError(f"Descriptors must have shape (N, D), got {descriptors.shape}")
        if descriptors.shape[1] == 0:
            raise ValueError("Descriptor dimension must be positive")
        if len(keypoints) != len(descriptors):
            raise ValueError(
                f"Got {len(keypoints)} keypoints but {len(descriptors)} descriptors")
        if descriptors.dtype.kind == 'f' and descriptors.size:
            if not np.all(np.isfinite(descriptors)):
                raise ValueError("Descriptor values must be finite")
            if np.any(descriptors != np.round(descriptors)):
                raise ValueError("Descriptor values must be integers")
        if descriptors.size and (descriptors.min() < 0 or descriptors.max() > 255):
            raise ValueError("Descriptor values must be in [0, 255]")
        if np.any(keypoints[:, 2] < 0):
            raise ValueError("Keypoint scale must be non-negative")

        self.keypoints = keypoints
        self.descriptors = descriptors.astype(np.uint8)
        self.keypoints.setflags(write=False)
        self.descriptors.setflags(write=False)

    @classmethod
    def empty(cls, dim: int = 128) -> "DescriptorSet":
        """Create a set without features but with a fixed descriptor dimension."""
        return cls(np.zeros((0, 4), dtype=np.float32), np.zeros((0, dim), dtype=np.uint8))

    @classmethod
    def from_keypoints(cls, keypoints: Sequence[Keypoint],
                       descriptors: np.ndarray) -> "DescriptorSet":
        """Create a set from a list of Keypoint objects."""
        rows = [[kp.x, kp.y, kp.scale, kp.orientation] for kp in keypoints]
        return cls(np.array(rows, dtype=np.float32).reshape(-1, 4), descriptors)

    def __len__(self) -> int:
        return len(self.keypoints)

    def __repr__(self) -> str:
        return f"DescriptorSet(num_features={len(self)}, dim={self.dim})"

    @property
    def dim(self) -> int:
        return self.descriptors.shape[1]

    @property
    def points(self) -> np.ndarray:
        """Keypoint image coordinates as an (N, 2) array."""
        return self.keypoints[:, :2]

    def keypoint(self, index: int) -> Keypoint:
        x, y, scale, orientation = (float(v) for v in self.keypoints[index])
        return Keypoint(x, y, scale, orientation)

    def keypoint_list(self) -> List[Keypoint]:
        return [self.keypoint(i) for i in range(len(self))]


def empty_matches() -> np.ndarray:
    """Return an empty (0, 2) match list."""
    return np.zeros((0, 2), dtype=np.int64)


def as_match_list(matches) -> np.ndarray:
    """Coerce matches (array or iterable of index pairs) to an (K, 2) int array."""
    array = np.asarray(list(matches) if not isinstance(matches, np.ndarray) else matches,
                       dtype=np.int64)
    if array.size == 0:
        return empty_matches()
    if array.ndim != 2 or array.shape[1] != 2:
        raise ValueError(f"Match list must have shape (K, 2), got {array.shape}")
    return array


def iter_matches(matches: np.ndarray) -> Iterable[Match]:
    for idx1, idx2 in matches:
        yield Match(int(idx1), int(idx2))


def matched_points(matches: np.ndarray, set1: DescriptorSet,
                   set2: DescriptorSet) -> Tuple[np.ndarray, np.ndarray]:
    """Return the (K, 2) float64 coordinates of matched keypoints in both sets."""
    pts1 = set1.points[matches[:, 0]].astype(np.float64)
    pts2 = set2.points[matches[:, 1]].astype(np.float64)
    return pts1, pts2


def concatenate_sets(first: DescriptorSet,
                     second: DescriptorSet) -> Tuple[DescriptorSet, int]:
    """Concatenate two sets and return the result with the border offset."""
    if first.dim != second.dim:
        raise ValueError(f"Descriptor dimensions differ: {first.dim} vs {second.dim}")
    combined = DescriptorSet(np.vstack([first.keypoints, second.keypoints]),
                             np.vstack([first.descriptors, second.descriptors]))
    return combined, len(first)
