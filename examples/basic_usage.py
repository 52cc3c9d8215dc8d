"""Basic usage example for siftpair."""

import cv2
from siftpair.config import ExtractionOptions, MatchingOptions
from siftpair.core import PairMatcher
from siftpair.matching.backend import CPUBackend
from siftpair.utils.io_handler import save_features_to_text


def main():
    """Detect, match and verify one image pair."""
    # Load images
    image_paths = ["test_data/frames/frame_000.jpg", "test_data/frames/frame_001.jpg"]
    images = [cv2.imread(path) for path in image_paths]

    for path, image in zip(image_paths, images):
        if image is None:
            print(f"Error: Could not load image from {path}")
            return

    options = MatchingOptions(guided_matching=True)
    backend = CPUBackend(options, ExtractionOptions(max_num_features=4096))

    # Extract features
    print("Extracting features...")
    sets = [backend.detect(image) for image in images]
    for path, descriptor_set in zip(image_paths, sets):
        print(f"{path}: {len(descriptor_set)} features")
        save_features_to_text(f"output/{path.split('/')[-1]}.txt", descriptor_set)

    # Match and verify
    print("Matching and verifying...")
    matcher = PairMatcher(options, backend=backend)
    result = matcher.process_pair(sets[0], sets[1])

    print(f"Raw matches: {len(result.matches)}")
    if result.verified:
        print(f"Verified {result.model.model_type.value} with {result.num_inliers} inliers")
    else:
        print("Pair could not be verified")


if __name__ == "__main__":
    main()
