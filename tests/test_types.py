"""Tests for keypoint and descriptor containers."""

import pytest
import numpy as np
from siftpair.features.types import (
    DescriptorSet, Keypoint, Match, as_match_list, concatenate_sets, iter_matches,
    matched_points
)


class TestDescriptorSet:
    """Test DescriptorSet validation and accessors."""

    def test_valid_set(self):
        """Test creating a small descriptor set."""
        keypoints = np.array([[1.0, 2.0, 1.5, 0.1], [3.0, 4.0, 2.5, -0.2]])
        descriptors = np.array([[0, 255, 3], [10, 20, 30]])
        descriptor_set = DescriptorSet(keypoints, descriptors)

        assert len(descriptor_set) == 2
        assert descriptor_set.dim == 3
        assert descriptor_set.keypoints.dtype == np.float32
        assert descriptor_set.descriptors.dtype == np.uint8
        np.testing.assert_allclose(descriptor_set.points, [[1, 2], [3, 4]])

    def test_keypoint_access(self):
        descriptor_set = DescriptorSet([[1.0, 2.0, 1.5, 0.25]], [[7, 8]])
        assert descriptor_set.keypoint(0) == Keypoint(1.0, 2.0, 1.5, 0.25)
        assert descriptor_set.keypoint_list() == [Keypoint(1.0, 2.0, 1.5, 0.25)]

    def test_from_keypoints(self):
        keypoints = [Keypoint(5.0, 6.0, 1.0, 0.0), Keypoint(7.0, 8.0, 2.0, 1.0)]
        descriptor_set = DescriptorSet.from_keypoints(keypoints, np.zeros((2, 4), np.uint8))
        assert len(descriptor_set) == 2
        assert descriptor_set.keypoint(1) == keypoints[1]

    def test_empty_keeps_dimension(self):
        descriptor_set = DescriptorSet.empty(64)
        assert len(descriptor_set) == 0
        assert descriptor_set.dim == 64

    def test_length_mismatch(self):
        """Keypoint and descriptor counts must agree."""
        with pytest.raises(ValueError):
            DescriptorSet(np.zeros((3, 4)), np.zeros((2, 128), np.uint8))

    def test_bad_shapes(self):
        with pytest.raises(ValueError):
            DescriptorSet(np.zeros((3, 3)), np.zeros((3, 128), np.uint8))
        with pytest.raises(ValueError):
            DescriptorSet(np.zeros((3, 4)), np.zeros((3, 0), np.uint8))

    def test_descriptor_range(self):
        with pytest.raises(ValueError):
            DescriptorSet(np.zeros((1, 4)), np.array([[256, 0]]))
        with pytest.raises(ValueError):
            DescriptorSet(np.zeros((1, 4)), np.array([[-1, 0]]))

    @pytest.mark.parametrize("value", [1.7, np.nan, np.inf])
    def test_descriptor_values_must_be_integers(self, value):
        """Fractional and non-finite values are rejected, not truncated."""
        with pytest.raises(ValueError):
            DescriptorSet(np.zeros((1, 4)), np.array([[value, 0.0]]))

    def test_whole_float_descriptors(self):
        descriptor_set = DescriptorSet(np.zeros((1, 4)), np.array([[3.0, 255.0]]))
        assert descriptor_set.descriptors.tolist() == [[3, 255]]

    def test_negative_scale(self):
        with pytest.raises(ValueError):
            DescriptorSet(np.array([[0.0, 0.0, -1.0, 0.0]]), np.zeros((1, 8), np.uint8))

    def test_arrays_read_only(self):
        """Sets do not alias or expose writable arrays."""
        keypoints = np.zeros((2, 4), dtype=np.float32)
        descriptor_set = DescriptorSet(keypoints, np.zeros((2, 8), np.uint8))
        keypoints[0, 0] = 42.0

        assert descriptor_set.keypoints[0, 0] == 0.0
        with pytest.raises(ValueError):
            descriptor_set.keypoints[0, 0] = 1.0


class TestMatches:
    """Test match list helpers."""

    def test_as_match_list(self):
        matches = as_match_list([(0, 1), (2, 3)])
        assert matches.shape == (2, 2)
        assert matches.dtype == np.int64
        assert as_match_list([]).shape == (0, 2)

    def test_as_match_list_bad_shape(self):
        with pytest.raises(ValueError):
            as_match_list(np.zeros((3, 3), dtype=np.int64))

    def test_iter_matches(self):
        matches = list(iter_matches(np.array([[0, 5], [1, 6]])))
        assert matches == [Match(0, 5), Match(1, 6)]
        assert matches[1].idx2 == 6

    def test_matched_points(self):
        set1 = DescriptorSet([[1, 1, 1, 0], [2, 2, 1, 0]], np.zeros((2, 4), np.uint8))
        set2 = DescriptorSet([[5, 5, 1, 0], [6, 6, 1, 0]], np.zeros((2, 4), np.uint8))
        pts1, pts2 = matched_points(np.array([[1, 0]]), set1, set2)
        np.testing.assert_allclose(pts1, [[2, 2]])
        np.testing.assert_allclose(pts2, [[5, 5]])
        assert pts1.dtype == np.float64


class TestConcatenate:
    """Test concatenating two sets for intra-set matching."""

    def test_concatenate_sets(self):
        first = DescriptorSet(np.zeros((3, 4)), np.ones((3, 8), np.uint8))
        second = DescriptorSet(np.ones((2, 4)), np.zeros((2, 8), np.uint8))
        combined, border = concatenate_sets(first, second)

        assert border == 3
        assert len(combined) == 5
        assert np.all(combined.descriptors[:3] == 1)
        assert np.all(combined.descriptors[3:] == 0)

    def test_concatenate_dimension_mismatch(self):
        with pytest.raises(ValueError):
            concatenate_sets(DescriptorSet.empty(8), DescriptorSet.empty(16))
