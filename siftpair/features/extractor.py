"""SIFT keypoint and descriptor extraction."""

import logging
from typing import List, Optional, Sequence

import cv2
import numpy as np

from siftpair.config import ExtractionOptions
from siftpair.features.types import DescriptorSet
from siftpair.utils.parallel import parallel_map

logger = logging.getLogger(__name__)

DESCRIPTOR_DIM = 128


def normalize_descriptors(descriptors: np.ndarray, normalization: str = "L1_ROOT") -> np.ndarray:
    """L1-normalize then square-root (L1_ROOT), or L2-normalize (L2)."""
    desc = np.asarray(descriptors, dtype=np.float32)
    if normalization == "L1_ROOT":
        norms = np.sum(np.abs(desc), axis=1, keepdims=True)
        desc = np.divide(desc, norms, out=np.zeros_like(desc), where=norms > 0)
        return np.sqrt(desc)
    if normalization == "L2":
        norms = np.linalg.norm(desc, axis=1, keepdims=True)
        return np.divide(desc, norms, out=np.zeros_like(desc), where=norms > 0)
    raise ValueError(f"Unknown normalization: {normalization}")


def quantize_descriptors(descriptors: np.ndarray) -> np.ndarray:
    """Map unit-length float descriptors to [0, 255] integers."""
    return np.minimum(np.round(512.0 * descriptors), 255).astype(np.uint8)


class SiftDetector:
    """Extract SIFT features from an image with OpenCV."""

    def __init__(self, options: Optional[ExtractionOptions] = None):
        self.options = (options or ExtractionOptions()).check()
        if self.options.estimate_affine_shape:
            raise ValueError("Affine shape estimation is not available with OpenCV SIFT")
        if self.options.darkness_adaptivity:
            raise ValueError("Darkness adaptivity is not available with OpenCV SIFT")
        if self.options.use_gpu:
            raise ValueError("OpenCV SIFT extraction runs on the CPU only")

        # OpenCV divides contrastThreshold by the number of layers and halves it.
        contrast_threshold = 2.0 * self.options.peak_threshold * self.options.octave_resolution
        self.sift = cv2.SIFT_create(nfeatures=0,
                                    nOctaveLayers=self.options.octave_resolution,
                                    contrastThreshold=contrast_threshold,
                                    edgeThreshold=self.options.edge_threshold)

    def detect(self, image: np.ndarray) -> DescriptorSet:
        """Detect keypoints and compute quantized descriptors."""
        gray = self._prepare_image(image)
        scale = 1.0
        max_size = max(gray.shape[:2])
        if max_size > self.options.max_image_size:
            scale = self.options.max_image_size / max_size
            gray = cv2.resize(gray, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)

        keypoints = self._select_keypoints(self.sift.detect(gray, None))
        if not keypoints:
            return DescriptorSet.empty(DESCRIPTOR_DIM)

        keypoints, descriptors = self._compute_descriptors(gray, keypoints)
        descriptors = quantize_descriptors(
            normalize_descriptors(descriptors, self.options.normalization))

        rows = np.array([[kp.pt[0] / scale, kp.pt[1] / scale, 0.5 * kp.size / scale,
                          np.deg2rad(kp.angle)] for kp in keypoints], dtype=np.float32)
        logger.debug(f"Extracted {len(rows)} features")
        return DescriptorSet(rows, descriptors)

    def detect_many(self, images: Sequence[np.ndarray]) -> List[DescriptorSet]:
        """Detect features in several images on ``num_threads`` workers.

        Every task gets its own OpenCV detector; results keep the input order.
        """
        return parallel_map(lambda image: SiftDetector(self.options).detect(image),
                            images, self.options.resolved_num_threads())

    def _prepare_image(self, image: np.ndarray) -> np.ndarray:
        if image is None:
            raise ValueError("Image is None")
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if image.dtype != np.uint8:
            image = cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        return image

    def _select_keypoints(self, keypoints) -> List[cv2.KeyPoint]:
        """Apply orientation handling and keep the largest-scale features."""
        keypoints = [kp for kp in keypoints if self._in_octave_range(kp)]
        if self.options.upright:
            for kp in keypoints:
                kp.angle = 0.0

        per_location = {}
        selected = []
        for kp in keypoints:
            location = (round(kp.pt[0], 2), round(kp.pt[1], 2), round(kp.size, 2))
            limit = 1 if self.options.upright else self.options.max_num_orientations
            if per_location.get(location, 0) < limit:
                per_location[location] = per_location.get(location, 0) + 1
                selected.append(kp)

        selected.sort(key=lambda kp: kp.size, reverse=True)
        return selected[:self.options.max_num_features]

    def _in_octave_range(self, kp: cv2.KeyPoint) -> bool:
        octave = kp.octave & 0xFF
        if octave >= 128:
            octave -= 256
        first = self.options.first_octave
        return first <= octave < first + self.options.num_octaves

    def _compute_descriptors(self, gray: np.ndarray, keypoints: List[cv2.KeyPoint]):
        if not self.options.domain_size_pooling:
            keypoints, descriptors = self.sift.compute(gray, keypoints)
            return list(keypoints), descriptors

        # Domain-size pooling: average descriptors over a range of patch scales.
        scales = np.linspace(self.options.dsp_min_scale, self.options.dsp_max_scale,
                             self.options.dsp_num_scales)
        pooled = np.zeros((len(keypoints), DESCRIPTOR_DIM), dtype=np.float32)
        for dsp_scale in scales:
            scaled = [cv2.KeyPoint(kp.pt[0], kp.pt[1], kp.size * float(dsp_scale), kp.angle,
                                   kp.response, kp.octave, kp.class_id) for kp in keypoints]
            _, descriptors = self.sift.compute(gray, scaled)
            pooled += normalize_descriptors(descriptors, "L2")
        return keypoints, pooled / len(scales)
