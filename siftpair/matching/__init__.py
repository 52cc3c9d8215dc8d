"""
Descriptor matching backends.

The device matcher lives in ``siftpair.matching.device`` and needs torch.
"""
