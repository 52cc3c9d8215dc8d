"""Thread-parallel CPU matcher."""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from siftpair.calibration.models import GeometricModel
from siftpair.config import MatchingOptions
from siftpair.features.types import DescriptorSet
from siftpair.matching.guided import match_guided
from siftpair.matching.matcher import match_descriptors
from siftpair.utils.parallel import parallel_map


class CPUMatcher:
    """Descriptor matcher running on the host.

    A single pair is matched on the calling thread; lists of pairs are
    distributed over a pool of ``num_threads`` workers (-1 uses every core).
    Each task only reads its inputs, so no locking is involved.
    """

    def __init__(self, options: Optional[MatchingOptions] = None):
        self.options = (options or MatchingOptions()).check()
        self.num_threads = self.options.resolved_num_threads()

    def match(self, set1: DescriptorSet, set2: DescriptorSet) -> np.ndarray:
        return match_descriptors(self.options, set1, set2)

    def match_guided(self, set1: DescriptorSet, set2: DescriptorSet,
                     model: GeometricModel) -> GeometricModel:
        return match_guided(self.options, set1, set2, model)

    def match_pairs(self, pairs: Sequence[Tuple[DescriptorSet, DescriptorSet]]) -> List[np.ndarray]:
        """Match many pairs in parallel; results keep the input order."""
        return parallel_map(lambda pair: self.match(*pair), pairs, self.num_threads)
