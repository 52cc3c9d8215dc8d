"""Persistent device matcher context backed by torch."""

import logging
from typing import Dict, List, Optional

import numpy as np
import torch

from siftpair.calibration.models import GeometricModel
from siftpair.config import MatchingOptions, parse_gpu_indices
from siftpair.features.types import DescriptorSet, empty_matches
from siftpair.matching.distance import border_mask
from siftpair.matching.guided import admissible_mask, assign_guided_matches
from siftpair.matching.matcher import check_compatible, filter_matches

logger = logging.getLogger(__name__)


class DeviceUnavailableError(RuntimeError):
    """Raised when a device matcher context cannot be created."""


class MissingUploadError(RuntimeError):
    """Raised when a slot is used before any descriptors were uploaded to it."""


class DeviceMatcherContext:
    """Brute-force matcher holding descriptors resident on one device.

    The context keeps the last uploaded descriptor set of each slot, so
    passing ``None`` for a set reuses the previous upload (e.g. matching new
    images against a fixed one). A context must only be used by one caller
    at a time; this is not enforced.

    Usage:
        with DeviceMatcherContext(options, device_index=0) as context:
            matches = context.match(set1, set2)
            matches = context.match(None, set3)
    """

    def __init__(self, options: Optional[MatchingOptions] = None,
                 device_index: int = -1, device: Optional[str] = None):
        self.options = (options or MatchingOptions()).check()
        self.device_index = device_index
        self.requested_device = device
        self.device = None
        self._slots: Dict[int, Optional[dict]] = {0: None, 1: None}

    def create(self) -> bool:
        """Acquire the device; returns False if it is unavailable."""
        device = self._resolve_device()
        if device is None:
            logger.warning(f"Device for gpu_index {self.device_index} is unavailable")
            return False
        self.device = device
        self._slots = {0: None, 1: None}
        logger.info(f"Created device matcher on {self.device}")
        return True

    def _resolve_device(self) -> Optional[torch.device]:
        if self.requested_device is not None:
            try:
                device = torch.device(self.requested_device)
            except RuntimeError:
                return None
            if device.type == 'cuda' and not torch.cuda.is_available():
                return None
            return device

        cuda_count = torch.cuda.device_count() if torch.cuda.is_available() else 0
        if self.device_index == -1:
            return torch.device('cuda', 0) if cuda_count else torch.device('cpu')
        if 0 <= self.device_index < cuda_count:
            return torch.device('cuda', self.device_index)
        return None

    def release(self):
        """Drop uploaded buffers and the device handle."""
        is_cuda = self.device is not None and self.device.type == 'cuda'
        self._slots = {0: None, 1: None}
        self.device = None
        if is_cuda:
            torch.cuda.empty_cache()

    @property
    def is_created(self) -> bool:
        return self.device is not None

    def __enter__(self):
        if not self.create():
            raise DeviceUnavailableError(f"Cannot create device matcher for "
                                         f"gpu_index {self.device_index}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def upload(self, slot: int, descriptor_set: DescriptorSet):
        """Copy one descriptor set into device memory."""
        if not self.is_created:
            raise DeviceUnavailableError("Device matcher context was not created")
        descriptors = torch.from_numpy(descriptor_set.descriptors.astype(np.float32))
        descriptors = torch.nn.functional.normalize(descriptors.to(self.device), dim=1)
        self._slots[slot] = {
            'set': descriptor_set,
            'descriptors': descriptors,
            'keypoints': torch.from_numpy(descriptor_set.keypoints.copy()).to(self.device),
        }

    def _slot(self, slot: int) -> dict:
        uploaded = self._slots.get(slot)
        if uploaded is None:
            raise MissingUploadError(f"No descriptors uploaded for slot {slot}")
        return uploaded

    def _prepare(self, set1: Optional[DescriptorSet], set2: Optional[DescriptorSet]):
        if set1 is not None:
            self.upload(0, set1)
        if set2 is not None:
            self.upload(1, set2)
        first, second = self._slot(0), self._slot(1)
        check_compatible(first['set'], second['set'])
        return first, second

    def _distances(self, first: dict, second: dict) -> torch.Tensor:
        dots = first['descriptors'] @ second['descriptors'].T
        distances = torch.arccos(torch.clamp(dots, -1.0, 1.0))
        seam = border_mask(len(first['set']), len(second['set']), self.options.border)
        if seam is not None:
            distances = self._mask(distances, seam)
        return distances

    def _mask(self, distances: torch.Tensor, mask: np.ndarray) -> torch.Tensor:
        mask = torch.from_numpy(mask).to(self.device)
        return torch.where(mask, distances, torch.full_like(distances, float('inf')))

    def _match_table(self, distances: torch.Tensor, max_ratio: Optional[float] = None) -> np.ndarray:
        forward = _nearest_neighbors(distances)
        reverse = _nearest_neighbors(distances.T) if self.options.cross_check else None
        return filter_matches(self.options, forward, reverse, max_ratio=max_ratio)

    def match(self, set1: Optional[DescriptorSet] = None,
              set2: Optional[DescriptorSet] = None) -> np.ndarray:
        """Match the uploaded descriptors, uploading any set that is given."""
        first, second = self._prepare(set1, set2)
        if len(first['set']) == 0 or len(second['set']) == 0:
            return empty_matches()
        return self._match_table(self._distances(first, second))

    def match_guided(self, model: GeometricModel, set1: Optional[DescriptorSet] = None,
                     set2: Optional[DescriptorSet] = None) -> GeometricModel:
        """Guided matching on the uploaded sets; see matching.guided.match_guided."""
        first, second = self._prepare(set1, set2)
        if len(first['set']) == 0 or len(second['set']) == 0:
            matches = empty_matches()
        else:
            points1 = first['keypoints'][:, :2].cpu().numpy()
            points2 = second['keypoints'][:, :2].cpu().numpy()
            distances = self._distances(first, second)
            distances = self._mask(distances, admissible_mask(model, points1, points2,
                                                              self.options.max_error))
            matches = self._match_table(distances, max_ratio=self.options.guided_max_ratio)
        return assign_guided_matches(model, matches, first['set'], second['set'])


def _nearest_neighbors(distances: torch.Tensor):
    """Device counterpart of distance.nearest_neighbors."""
    n, m = distances.shape
    k = min(2, m)
    values, indices = torch.topk(distances, k, dim=1, largest=False)
    best_idx = indices[:, 0].cpu().numpy().astype(np.int64)
    best_dist = values[:, 0].double().cpu().numpy()
    if k == 2:
        second_dist = values[:, 1].double().cpu().numpy()
    else:
        second_dist = np.full(n, np.inf)
    best_idx[~np.isfinite(best_dist)] = -1
    return best_idx, best_dist, second_dist


def create_device_matchers(options: MatchingOptions,
                           device: Optional[str] = None) -> List[DeviceMatcherContext]:
    """Create one context per index of the comma-separated ``gpu_index`` list."""
    options.check()
    contexts = []
    for index in parse_gpu_indices(options.gpu_index):
        context = DeviceMatcherContext(options, device_index=index, device=device)
        if not context.create():
            for created in contexts:
                created.release()
            raise DeviceUnavailableError(f"Cannot create device matcher for gpu_index {index}")
        contexts.append(context)
    return contexts
