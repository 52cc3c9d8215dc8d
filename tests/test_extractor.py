"""Tests for SIFT feature extraction."""

import cv2
import pytest
import numpy as np
from siftpair.config import ExtractionOptions
from siftpair.features.extractor import (
    SiftDetector, normalize_descriptors, quantize_descriptors
)
from siftpair.matching.backend import CPUBackend


def textured_image(seed=0, width=320, height=240):
    """Random blobs and rectangles giving plenty of SIFT responses."""
    rng = np.random.default_rng(seed)
    image = np.full((height, width, 3), 127, dtype=np.uint8)
    for _ in range(60):
        center = (int(rng.integers(0, width)), int(rng.integers(0, height)))
        color = tuple(int(c) for c in rng.integers(0, 256, 3))
        if rng.random() < 0.5:
            cv2.circle(image, center, int(rng.integers(3, 15)), color, -1)
        else:
            corner = (center[0] + int(rng.integers(5, 25)), center[1] + int(rng.integers(5, 25)))
            cv2.rectangle(image, center, corner, color, -1)
    return cv2.GaussianBlur(image, (3, 3), 0)


class TestSiftDetector:
    """Test keypoint detection and descriptor computation."""

    def test_detect(self):
        descriptor_set = SiftDetector().detect(textured_image())
        assert len(descriptor_set) > 20
        assert descriptor_set.dim == 128
        assert descriptor_set.descriptors.dtype == np.uint8
        assert np.all(descriptor_set.keypoints[:, 2] > 0)

    def test_max_num_features(self):
        options = ExtractionOptions(max_num_features=10)
        descriptor_set = SiftDetector(options).detect(textured_image())
        assert len(descriptor_set) == 10

    def test_upright(self):
        options = ExtractionOptions(upright=True)
        descriptor_set = SiftDetector(options).detect(textured_image())
        assert np.all(descriptor_set.keypoints[:, 3] == 0)

    def test_downscaled_coordinates(self):
        """Keypoints of a downscaled image are reported in input coordinates."""
        options = ExtractionOptions(max_image_size=160)
        descriptor_set = SiftDetector(options).detect(textured_image())
        assert descriptor_set.points[:, 0].max() > 160

    def test_blank_image(self):
        descriptor_set = SiftDetector().detect(np.zeros((100, 100), dtype=np.uint8))
        assert len(descriptor_set) == 0
        assert descriptor_set.dim == 128

    def test_domain_size_pooling(self):
        options = ExtractionOptions(domain_size_pooling=True, dsp_num_scales=3)
        descriptor_set = SiftDetector(options).detect(textured_image())
        assert len(descriptor_set) > 20

    def test_unsupported_options(self):
        with pytest.raises(ValueError):
            SiftDetector(ExtractionOptions(estimate_affine_shape=True))
        with pytest.raises(ValueError):
            SiftDetector(ExtractionOptions(darkness_adaptivity=True))

    def test_use_gpu_rejected(self):
        with pytest.raises(ValueError):
            SiftDetector(ExtractionOptions(use_gpu=True))

    def test_octave_range(self):
        """Keypoints outside [first_octave, first_octave + num_octaves) are dropped."""
        default = SiftDetector()
        from_base = SiftDetector(ExtractionOptions(first_octave=0, num_octaves=2))

        upsampled = cv2.KeyPoint(10.0, 10.0, 2.0, 0.0, 0.1, 0xFF)
        base = cv2.KeyPoint(10.0, 10.0, 4.0, 0.0, 0.1, 0)
        coarse = cv2.KeyPoint(10.0, 10.0, 32.0, 0.0, 0.1, 3)

        assert default._in_octave_range(upsampled)
        assert default._in_octave_range(base)
        assert not default._in_octave_range(coarse)
        assert not from_base._in_octave_range(upsampled)
        assert from_base._in_octave_range(base)

    def test_first_octave_limits_features(self):
        image = textured_image()
        all_octaves = SiftDetector().detect(image)
        without_upsampling = SiftDetector(ExtractionOptions(first_octave=0)).detect(image)
        assert 0 < len(without_upsampling) < len(all_octaves)

    def test_detect_many(self):
        """Batch detection keeps order and agrees with single-image detection."""
        images = [textured_image(seed) for seed in range(3)]
        detector = SiftDetector(ExtractionOptions(num_threads=2))
        sets = detector.detect_many(images)

        assert len(sets) == 3
        for image, descriptor_set in zip(images, sets):
            expected = detector.detect(image)
            np.testing.assert_array_equal(descriptor_set.keypoints, expected.keypoints)
            np.testing.assert_array_equal(descriptor_set.descriptors, expected.descriptors)

    def test_none_image(self):
        with pytest.raises(ValueError):
            SiftDetector().detect(None)

    def test_backend_detect_and_match(self):
        """A shifted image matches the original through the backend."""
        backend = CPUBackend()
        image = textured_image()
        shifted = np.roll(image, 12, axis=1)
        matches = backend.match_raw(backend.detect(image), backend.detect(shifted))
        assert len(matches) > 10


class TestNormalization:
    """Test descriptor normalization and quantization."""

    def test_l2(self):
        desc = normalize_descriptors(np.array([[3.0, 4.0]]), "L2")
        np.testing.assert_allclose(desc, [[0.6, 0.8]], rtol=1e-6)

    def test_l1_root(self):
        desc = normalize_descriptors(np.array([[1.0, 3.0]]), "L1_ROOT")
        np.testing.assert_allclose(desc, [[0.5, np.sqrt(0.75)]], rtol=1e-6)
        np.testing.assert_allclose(np.linalg.norm(desc), 1.0, rtol=1e-6)

    def test_zero_rows(self):
        assert np.all(normalize_descriptors(np.zeros((2, 4))) == 0)

    def test_unknown(self):
        with pytest.raises(ValueError):
            normalize_descriptors(np.ones((1, 4)), "L3")

    def test_quantize(self):
        quantized = quantize_descriptors(np.array([[0.0, 0.1, 0.6, 1.0]]))
        assert quantized.tolist() == [[0, 51, 255, 255]]
        assert quantized.dtype == np.uint8
