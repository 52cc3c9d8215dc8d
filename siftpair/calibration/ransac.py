"""RANSAC implementation for robust estimation."""

import math
import sys
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np


MAX_TRIALS = sys.maxsize


def compute_num_trials(confidence: float, sample_size: int, inlier_ratio: float) -> int:
    """Number of trials needed to draw one all-inlier sample with `confidence`.

    Implements ``log(1 - confidence) / log(1 - inlier_ratio ** sample_size)``.
    """
    nom = 1.0 - confidence
    if nom <= 0:
        return MAX_TRIALS
    if inlier_ratio <= 0:
        return MAX_TRIALS

    denom = 1.0 - inlier_ratio ** sample_size
    if denom <= 0:
        return 1
    if denom >= 1:
        return MAX_TRIALS

    return int(math.ceil(math.log(nom) / math.log(denom)))


def clamp_num_trials(num_trials: int, min_num_trials: int, max_num_trials: int) -> int:
    """Trial bounds always take precedence over the ratio-derived estimate."""
    return max(min_num_trials, min(max_num_trials, num_trials))


@dataclass
class RANSACReport:
    model: Optional[object]
    inlier_mask: np.ndarray
    residuals: np.ndarray
    num_inliers: int
    num_trials: int

    @property
    def success(self) -> bool:
        return self.model is not None


class RANSAC:
    """Adaptive RANSAC with local optimization.

    The trial budget starts from ``min_inlier_ratio`` and is recomputed from
    the best observed inlier ratio each time a better model is found. Ties in
    inlier count keep the earlier model.
    """

    def __init__(self, threshold: float = 4.0, confidence: float = 0.999,
                 min_num_trials: int = 30, max_num_trials: int = 10000,
                 min_inlier_ratio: float = 0.25, min_samples: int = 8,
                 random_seed: Optional[int] = None, local_optimization: bool = True):
        self.threshold = threshold
        self.confidence = confidence
        self.min_num_trials = min_num_trials
        self.max_num_trials = max_num_trials
        self.min_inlier_ratio = min_inlier_ratio
        self.min_samples = min_samples
        self.random_seed = random_seed
        self.local_optimization = local_optimization

    def num_trials_for(self, inlier_ratio: float) -> int:
        return clamp_num_trials(
            compute_num_trials(self.confidence, self.min_samples, inlier_ratio),
            self.min_num_trials, self.max_num_trials)

    def fit(self, data: np.ndarray, model_func: Callable,
            score_func: Callable) -> RANSACReport:
        """Fit model using RANSAC.

        Args:
            data: (N, K) array, one row per observation
            model_func: Fits a model to a subset of rows, returns None if degenerate
            score_func: Residual of every row under a model

        Returns:
            RANSACReport of the best model, or an unsuccessful report
        """
        n_samples = len(data)
        best_model = None
        best_inliers = np.zeros(n_samples, dtype=bool)
        best_residuals = np.full(n_samples, np.inf)
        best_score = 0

        if n_samples < self.min_samples:
            return RANSACReport(None, best_inliers, best_residuals, 0, 0)

        rng = np.random.default_rng(self.random_seed)
        budget = self.num_trials_for(self.min_inlier_ratio)

        trials = 0
        while trials < budget:
            trials += 1
            indices = rng.choice(n_samples, self.min_samples, replace=False)

            model = model_func(data[indices])
            if model is None:
                continue

            residuals = score_func(data, model)
            inliers = residuals <= self.threshold
            score = int(np.sum(inliers))

            if score <= best_score:
                continue

            if self.local_optimization and score > self.min_samples:
                model, residuals, inliers, score = self._refine(
                    data, model_func, score_func, model, residuals, inliers, score)

            best_model, best_residuals = model, residuals
            best_inliers, best_score = inliers, score
            budget = self.num_trials_for(best_score / n_samples)

        return RANSACReport(best_model, best_inliers, best_residuals, best_score, trials)

    def _refine(self, data, model_func, score_func, model, residuals, inliers, score):
        """Refit on all inliers and keep the refit while it does not lose support."""
        refined = model_func(data[inliers])
        if refined is None:
            return model, residuals, inliers, score

        refined_residuals = score_func(data, refined)
        refined_inliers = refined_residuals <= self.threshold
        refined_score = int(np.sum(refined_inliers))
        if refined_score < score:
            return model, residuals, inliers, score
        return refined, refined_residuals, refined_inliers, refined_score
