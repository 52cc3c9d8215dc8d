"""Tests for adaptive RANSAC."""

import pytest
import numpy as np
from siftpair.calibration.ransac import (
    MAX_TRIALS, RANSAC, clamp_num_trials, compute_num_trials
)


def line_data(seed=42, n=60, num_outliers=15):
    """Points on y = 2x + 1 with a block of gross outliers."""
    rng = np.random.default_rng(seed)
    x = np.linspace(0, 10, n)
    y = 2 * x + 1 + rng.normal(0, 0.1, n)
    y[:num_outliers] += rng.uniform(20, 50, num_outliers)
    return np.column_stack([x, y])


def fit_line(points):
    if len(points) < 2:
        return None
    A = np.column_stack([points[:, 0], np.ones(len(points))])
    slope, intercept = np.linalg.lstsq(A, points[:, 1], rcond=None)[0]
    return slope, intercept


def line_residuals(data, model):
    slope, intercept = model
    return np.abs(data[:, 1] - (slope * data[:, 0] + intercept))


class TestNumTrials:
    """Test the adaptive trial count."""

    def test_known_value(self):
        assert compute_num_trials(0.99, 4, 0.5) == 72

    def test_monotone_in_confidence(self):
        counts = [compute_num_trials(c, 8, 0.5) for c in (0.9, 0.99, 0.999, 0.9999)]
        assert counts == sorted(counts)
        assert counts[0] < counts[-1]

    def test_monotone_in_inlier_ratio(self):
        counts = [compute_num_trials(0.999, 8, r) for r in (0.2, 0.4, 0.6, 0.8)]
        assert counts == sorted(counts, reverse=True)

    def test_edge_cases(self):
        assert compute_num_trials(0.999, 4, 1.0) == 1
        assert compute_num_trials(0.999, 4, 0.0) == MAX_TRIALS
        assert compute_num_trials(1.0, 4, 0.5) == MAX_TRIALS

    def test_clamp(self):
        """Trial bounds take precedence over the estimate."""
        assert clamp_num_trials(5, 30, 10000) == 30
        assert clamp_num_trials(MAX_TRIALS, 30, 10000) == 10000
        assert clamp_num_trials(500, 30, 10000) == 500


class TestRANSAC:
    """Test RANSAC algorithm."""

    def test_ransac_initialization(self):
        """Test RANSAC defaults."""
        ransac = RANSAC()
        assert ransac.threshold == 4.0
        assert ransac.confidence == 0.999
        assert ransac.min_num_trials == 30
        assert ransac.max_num_trials == 10000
        assert ransac.min_samples == 8

    def test_ransac_line_fitting(self):
        """Test RANSAC with line fitting."""
        data = line_data()
        ransac = RANSAC(threshold=0.5, min_samples=2, random_seed=0)
        report = ransac.fit(data, fit_line, line_residuals)

        assert report.success
        slope, intercept = report.model
        assert slope == pytest.approx(2.0, abs=0.05)
        assert intercept == pytest.approx(1.0, abs=0.2)
        assert report.num_inliers == 45
        assert not report.inlier_mask[:15].any()

    def test_trials_within_bounds(self):
        data = line_data()
        ransac = RANSAC(threshold=0.5, min_samples=2, min_num_trials=50,
                        max_num_trials=200, random_seed=1)
        report = ransac.fit(data, fit_line, line_residuals)
        assert 50 <= report.num_trials <= 200

    def test_budget_capped(self):
        """An unreachable model stops at max_num_trials."""
        data = line_data()
        ransac = RANSAC(threshold=0.5, min_samples=2, min_num_trials=10,
                        max_num_trials=40, random_seed=0)
        report = ransac.fit(data, lambda rows: None, line_residuals)
        assert not report.success
        assert report.num_trials == 40

    def test_deterministic_with_seed(self):
        data = line_data()
        first = RANSAC(threshold=0.5, min_samples=2, random_seed=7).fit(
            data, fit_line, line_residuals)
        second = RANSAC(threshold=0.5, min_samples=2, random_seed=7).fit(
            data, fit_line, line_residuals)
        assert first.num_trials == second.num_trials
        np.testing.assert_array_equal(first.inlier_mask, second.inlier_mask)

    def test_too_few_samples(self):
        """Fewer rows than the sample size gives no model."""
        ransac = RANSAC(min_samples=8)
        report = ransac.fit(np.zeros((5, 4)), fit_line, line_residuals)
        assert not report.success
        assert report.num_trials == 0
        assert report.num_inliers == 0
