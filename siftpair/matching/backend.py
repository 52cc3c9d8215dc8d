"""Uniform detection/matching interface over the CPU and device matchers."""

from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from siftpair.calibration.models import GeometricModel
from siftpair.config import ExtractionOptions, MatchingOptions
from siftpair.features.extractor import SiftDetector
from siftpair.features.types import DescriptorSet
from siftpair.matching.cpu import CPUMatcher


class FeatureBackend(ABC):
    """Detection and raw matching capability.

    Subclasses must implement detect(), match_raw() and match_guided().
    ``parallel`` tells callers whether pairs may be processed concurrently.
    """

    parallel = False

    def __init__(self, extraction_options: Optional[ExtractionOptions] = None):
        self.extraction_options = extraction_options or ExtractionOptions()
        self._detector = None

    def detect(self, image: np.ndarray) -> DescriptorSet:
        if self._detector is None:
            self._detector = SiftDetector(self.extraction_options)
        return self._detector.detect(image)

    @abstractmethod
    def match_raw(self, set1: DescriptorSet, set2: DescriptorSet) -> np.ndarray:
        """Ratio-tested (and optionally cross-checked) candidate matches."""
        ...

    @abstractmethod
    def match_guided(self, set1: DescriptorSet, set2: DescriptorSet,
                     model: GeometricModel) -> GeometricModel:
        """Replace the model's matches with guided matches."""
        ...


class CPUBackend(FeatureBackend):
    """Backend running on the host thread pool."""

    parallel = True

    def __init__(self, options: Optional[MatchingOptions] = None,
                 extraction_options: Optional[ExtractionOptions] = None):
        super().__init__(extraction_options)
        self.matcher = CPUMatcher(options)

    @property
    def num_threads(self) -> int:
        return self.matcher.num_threads

    def match_raw(self, set1, set2):
        return self.matcher.match(set1, set2)

    def match_guided(self, set1, set2, model):
        return self.matcher.match_guided(set1, set2, model)


class DeviceBackend(FeatureBackend):
    """Backend using one created device matcher context.

    Pairs are processed sequentially because the context is single-owner.
    """

    def __init__(self, context, extraction_options: Optional[ExtractionOptions] = None):
        super().__init__(extraction_options)
        if not context.is_created:
            raise ValueError("Device matcher context must be created before use")
        self.context = context

    def match_raw(self, set1, set2):
        return self.context.match(set1, set2)

    def match_guided(self, set1, set2, model):
        return self.context.match_guided(model, set1, set2)
