"""
siftpair - descriptor matching and two-view geometric verification.
"""

from siftpair.config import (
    DEFAULT_CONFIG, ExtractionOptions, InvalidOptionsError, MatchingOptions, load_options
)
from siftpair.features.types import DescriptorSet, Keypoint, Match
from siftpair.calibration.models import GeometricModel, ModelType
from siftpair.calibration.estimator import TwoViewEstimator
from siftpair.matching.matcher import match_descriptors
from siftpair.matching.guided import match_guided
from siftpair.core import PairMatcher, TwoViewResult

__all__ = [
    'DEFAULT_CONFIG',
    'ExtractionOptions',
    'MatchingOptions',
    'InvalidOptionsError',
    'load_options',
    'DescriptorSet',
    'Keypoint',
    'Match',
    'GeometricModel',
    'ModelType',
    'TwoViewEstimator',
    'match_descriptors',
    'match_guided',
    'PairMatcher',
    'TwoViewResult',
]
__version__ = '1.0.0'
