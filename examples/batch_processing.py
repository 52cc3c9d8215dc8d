"""Batch verification of all pairs in a directory of feature files."""

from itertools import combinations
from pathlib import Path

from siftpair.config import load_options
from siftpair.core import PairMatcher
from siftpair.utils.io_handler import load_features_from_text, JSONWriter
from siftpair.utils.logger import setup_logger


def main():
    """Verify every pair of feature files."""
    logger = setup_logger('batch_processor')

    _, matching_options = load_options("examples/config.yaml")
    matcher = PairMatcher(matching_options)

    # Get all feature files
    features_dir = Path("test_data/features")
    feature_files = sorted(features_dir.glob("*.txt"))
    logger.info(f"Loading {len(feature_files)} feature files...")
    sets = {path.stem: load_features_from_text(path) for path in feature_files}

    names = list(combinations(sets, 2))
    results = matcher.process_pairs([(sets[a], sets[b]) for a, b in names])

    output = []
    for (name1, name2), result in zip(names, results):
        entry = result.to_dict()
        entry['image1'], entry['image2'] = name1, name2
        output.append(entry)
        status = "verified" if result.verified else "rejected"
        logger.info(f"{name1} - {name2}: {status} ({result.num_inliers} inliers)")

    # Save results
    JSONWriter.save_results(output, "output/batch_results.json")
    logger.info("Batch processing complete!")


if __name__ == "__main__":
    main()
