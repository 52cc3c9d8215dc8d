"""Feature text files and JSON result output."""

import json
from pathlib import Path
from typing import Dict, List, Union

import numpy as np

from siftpair.features.types import DescriptorSet


def save_features_to_text(path: Union[str, Path], descriptor_set: DescriptorSet):
    """
    Write keypoints and descriptors in the text feature format.

    The first line holds ``NUM_FEATURES DIM``, followed by one line per
    feature: ``X Y SCALE ORIENTATION D_1 ... D_DIM``. Floats are written with
    9 significant digits, enough to reproduce float32 values exactly.
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        f.write(f"{len(descriptor_set)} {descriptor_set.dim}\n")
        for keypoint, descriptor in zip(descriptor_set.keypoints, descriptor_set.descriptors):
            values = [f"{float(v):.9g}" for v in keypoint]
            values.extend(str(int(d)) for d in descriptor)
            f.write(" ".join(values) + "\n")


def load_features_from_text(path: Union[str, Path]) -> DescriptorSet:
    """Load keypoints and descriptors from the text feature format."""
    with open(path, 'r') as f:
        header = f.readline().split()
        if len(header) != 2:
            raise ValueError(f"Invalid feature file header in {path}")
        num_features, dim = int(header[0]), int(header[1])
        if num_features < 0 or dim <= 0:
            raise ValueError(f"Invalid feature count or dimension in {path}")

        rows = [line.split() for line in f if line.strip()]

    if len(rows) != num_features:
        raise ValueError(f"Expected {num_features} features in {path}, found {len(rows)}")
    if num_features == 0:
        return DescriptorSet.empty(dim)

    if any(len(row) != 4 + dim for row in rows):
        raise ValueError(f"Every feature line in {path} needs {4 + dim} values")

    keypoints = np.array([[float(v) for v in row[:4]] for row in rows], dtype=np.float32)
    descriptors = np.array([[int(v) for v in row[4:]] for row in rows], dtype=np.int64)
    if descriptors.min() < 0 or descriptors.max() > 255:
        raise ValueError(f"Descriptor values in {path} must be in [0, 255]")

    return DescriptorSet(keypoints, descriptors.astype(np.uint8))


class JSONWriter:
    """Write verification results to JSON."""

    @staticmethod
    def save_results(output: Union[Dict, List], output_path: str, indent: int = 2):
        """Save results to JSON file."""
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            json.dump(output, f, indent=indent)

    @staticmethod
    def load_results(input_path: str) -> Union[Dict, List]:
        """Load results from JSON file."""
        with open(input_path, 'r') as f:
            return json.load(f)
