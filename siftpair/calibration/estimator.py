"""Robust two-view geometry estimation from descriptor matches."""

import dataclasses
import logging
from typing import Optional

import numpy as np

from siftpair.calibration.models import (
    GeometricModel, ModelType, SAMPLE_SIZES, compute_residuals, make_fit_func,
    require_cameras, residual_stats
)
from siftpair.calibration.optimizer import ModelOptimizer
from siftpair.calibration.ransac import RANSAC
from siftpair.config import MatchingOptions
from siftpair.features.types import DescriptorSet, as_match_list, matched_points

logger = logging.getLogger(__name__)


class TwoViewEstimator:
    """Estimate a verified two-view model for the matches of an image pair."""

    def __init__(self, options: Optional[MatchingOptions] = None):
        self.options = (options or MatchingOptions()).check()
        self.optimizer = ModelOptimizer()

    def estimate(self, matches, set1: DescriptorSet, set2: DescriptorSet,
                 model_type: ModelType = ModelType.FUNDAMENTAL,
                 camera1: Optional[np.ndarray] = None,
                 camera2: Optional[np.ndarray] = None) -> Optional[GeometricModel]:
        """
        Estimate the best supported model for a match list.

        Args:
            matches: (K, 2) index pairs into set1 and set2
            set1: Descriptor set of the first image
            set2: Descriptor set of the second image
            model_type: Kind of two-view model to estimate
            camera1: 3x3 intrinsics of the first camera (ESSENTIAL only)
            camera2: 3x3 intrinsics of the second camera (ESSENTIAL only)

        Returns:
            The verified model, or None if no model reaches min_num_inliers
        """
        self.options.check()
        if model_type == ModelType.ESSENTIAL:
            require_cameras(camera1, camera2)

        matches = as_match_list(matches)
        pts1, pts2 = matched_points(matches, set1, set2)
        candidates = np.ones(len(matches), dtype=bool)
        seed = self.options.random_seed

        model = self._estimate_subset(model_type, matches, pts1, pts2, candidates,
                                      camera1, camera2, seed)
        if model is None:
            logger.debug(f"No verified {model_type.value} geometry from {len(matches)} matches")
            return None

        if self.options.multiple_models:
            remaining = ~model.inlier_mask
            second_seed = None if seed is None else seed + 1
            model.secondary = self._estimate_subset(model_type, matches, pts1, pts2,
                                                    remaining, camera1, camera2, second_seed)

        logger.debug(f"Verified {model.model_type.value} geometry with "
                     f"{model.num_inliers}/{len(matches)} inliers in {model.num_trials} trials")
        return model

    def _estimate_subset(self, model_type, matches, pts1, pts2, candidates,
                         camera1, camera2, seed) -> Optional[GeometricModel]:
        if model_type == ModelType.UNCALIBRATED:
            return self._estimate_uncalibrated(matches, pts1, pts2, candidates, seed)
        return self._run_ransac(model_type, matches, pts1, pts2, candidates,
                                camera1, camera2, seed)

    def _estimate_uncalibrated(self, matches, pts1, pts2, candidates, seed):
        """Fit F and H; planar scenes are reported as homographies."""
        f_model = self._run_ransac(ModelType.FUNDAMENTAL, matches, pts1, pts2,
                                   candidates, None, None, seed)
        h_model = self._run_ransac(ModelType.HOMOGRAPHY, matches, pts1, pts2,
                                   candidates, None, None, seed)

        if f_model is None:
            return h_model
        if (h_model is not None and
                h_model.num_inliers / f_model.num_inliers > self.options.max_h_inlier_ratio):
            return h_model
        return dataclasses.replace(f_model, model_type=ModelType.UNCALIBRATED)

    def _run_ransac(self, model_type, matches, pts1, pts2, candidates,
                    camera1, camera2, seed) -> Optional[GeometricModel]:
        options = self.options
        sample_size = SAMPLE_SIZES[model_type]
        subset = np.nonzero(candidates)[0]
        if len(subset) < sample_size:
            return None

        fit = make_fit_func(model_type, camera1, camera2)
        ransac = RANSAC(threshold=options.max_error,
                        confidence=options.confidence,
                        min_num_trials=options.min_num_trials,
                        max_num_trials=options.max_num_trials,
                        min_inlier_ratio=options.min_inlier_ratio,
                        min_samples=sample_size,
                        random_seed=seed)

        def score(rows, matrix):
            return compute_residuals(model_type, matrix, rows[:, :2], rows[:, 2:],
                                     camera1, camera2)

        data = np.hstack([pts1[subset], pts2[subset]])
        report = ransac.fit(data, lambda rows: fit(rows[:, :2], rows[:, 2:]), score)

        if not report.success or report.num_inliers < options.min_num_inliers:
            return None

        refined = self.optimizer.optimize(model_type, report.model,
                                          data[report.inlier_mask, :2],
                                          data[report.inlier_mask, 2:], camera1, camera2)
        if refined is not None:
            residuals = score(data, refined)
            inliers = residuals <= options.max_error
            if inliers.sum() >= report.num_inliers:
                report.model, report.residuals = refined, residuals
                report.inlier_mask, report.num_inliers = inliers, int(inliers.sum())

        inlier_mask = np.zeros(len(matches), dtype=bool)
        inlier_mask[subset] = report.inlier_mask
        mean_residual, median_residual = residual_stats(report.residuals[report.inlier_mask])

        return GeometricModel(model_type=model_type,
                              matrix=report.model,
                              matches=matches,
                              inlier_mask=inlier_mask,
                              num_trials=report.num_trials,
                              camera1=camera1,
                              camera2=camera2,
                              mean_residual=mean_residual,
                              median_residual=median_residual,
                              inlier_ratio=report.num_inliers / len(subset))
