"""
siftpair Core Processor
Main entry point for matching and verifying image pairs
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from siftpair.calibration.estimator import TwoViewEstimator
from siftpair.calibration.models import GeometricModel, ModelType
from siftpair.config import MatchingOptions
from siftpair.features.types import DescriptorSet
from siftpair.matching.backend import CPUBackend, DeviceBackend, FeatureBackend
from siftpair.utils.metrics import PerformanceMetrics
from siftpair.utils.parallel import parallel_map

logger = logging.getLogger(__name__)


@dataclass
class TwoViewResult:
    """Outcome of matching and verifying one image pair."""
    matches: np.ndarray
    model: Optional[GeometricModel] = None
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def verified(self) -> bool:
        return self.model is not None

    @property
    def num_inliers(self) -> int:
        return self.model.num_inliers if self.model is not None else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'num_matches': int(len(self.matches)),
            'verified': self.verified,
            'num_inliers': self.num_inliers,
            'model': self.model.to_dict() if self.model is not None else None,
            'timings_ms': {name: round(ms, 2) for name, ms in self.timings.items()},
        }


class PairMatcher:
    """Match descriptor sets and verify them against a two-view model"""

    def __init__(self, options: Optional[MatchingOptions] = None,
                 backend: Optional[FeatureBackend] = None,
                 model_type: ModelType = ModelType.FUNDAMENTAL):
        """
        Initialize the pair matcher

        Args:
            options: Matching options (defaults if omitted)
            backend: Matching backend. By default a DeviceBackend on the first
                ``gpu_index`` device when ``use_gpu`` is set, else a CPUBackend
            model_type: Default two-view model to verify against
        """
        self.options = (options or MatchingOptions()).check()
        self._owned_context = None
        self.backend = backend or self._default_backend()
        self.estimator = TwoViewEstimator(self.options)
        self.model_type = model_type

    def _default_backend(self) -> FeatureBackend:
        if not self.options.use_gpu:
            return CPUBackend(self.options)

        # torch is only required once use_gpu is set.
        from siftpair.matching.device import create_device_matchers
        contexts = create_device_matchers(self.options)
        for context in contexts[1:]:
            context.release()
        self._owned_context = contexts[0]
        return DeviceBackend(self._owned_context)

    def close(self):
        """Release the device context created for the default backend, if any."""
        if self._owned_context is not None:
            self._owned_context.release()
            self._owned_context = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def process_pair(self, set1: DescriptorSet, set2: DescriptorSet,
                     model_type: Optional[ModelType] = None,
                     camera1: Optional[np.ndarray] = None,
                     camera2: Optional[np.ndarray] = None) -> TwoViewResult:
        """
        Match, verify and optionally guided-match one pair

        Args:
            set1: Descriptor set of the first image
            set2: Descriptor set of the second image
            model_type: Overrides the default model type
            camera1: Intrinsics of the first camera (essential model)
            camera2: Intrinsics of the second camera (essential model)

        Returns:
            TwoViewResult with the raw matches and the verified model, if any
        """
        model_type = model_type or self.model_type
        metrics = PerformanceMetrics()

        with metrics.measure('matching'):
            matches = self.backend.match_raw(set1, set2)

        with metrics.measure('estimation'):
            model = self.estimator.estimate(matches, set1, set2, model_type,
                                            camera1=camera1, camera2=camera2)

        if model is not None and self.options.guided_matching:
            with metrics.measure('guided_matching'):
                model = self.backend.match_guided(set1, set2, model)

        if model is None:
            logger.info(f"Pair not verified ({len(matches)} matches)")
        else:
            logger.info(f"Pair verified: {model.num_inliers} inliers "
                        f"({model.model_type.value}, {len(matches)} matches)")

        return TwoViewResult(matches=matches, model=model, timings=metrics.get_summary())

    def process_pairs(self, pairs: Sequence[Tuple[DescriptorSet, DescriptorSet]],
                      model_type: Optional[ModelType] = None) -> List[TwoViewResult]:
        """Process independent pairs, in parallel when the backend allows it."""
        num_threads = self.options.resolved_num_threads() if self.backend.parallel else 1
        logger.info(f"Processing {len(pairs)} pairs on {num_threads} threads")
        return parallel_map(lambda pair: self.process_pair(pair[0], pair[1], model_type),
                            pairs, num_threads)
