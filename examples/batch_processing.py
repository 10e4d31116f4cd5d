"""Batch example: build a visual vocabulary from descriptor files."""

import sys
import numpy as np
from pathlib import Path
from robustcore.config import load_config
from robustcore.clustering import ApproximateKMeans
from robustcore.utils.logger import create_session_log_file, setup_logger_from_config


def load_descriptors(descriptor_dir):
    """Stack every .npy descriptor matrix in a directory."""
    files = sorted(Path(descriptor_dir).glob("*.npy"))
    return files, [np.load(str(path)) for path in files]


def main():
    """Cluster descriptors from many images into one vocabulary."""
    config = load_config(sys.argv[1] if len(sys.argv) > 1 else None)
    if config['logging']['file'] is None:
        config['logging']['file'] = create_session_log_file('output/logs')
    logger = setup_logger_from_config(config, 'batch_processor')

    files, descriptors = load_descriptors("test_data/descriptors")
    if not descriptors:
        logger.warning("No descriptor files found")
        return

    logger.info(f"Loaded {len(files)} descriptor files")
    features = np.vstack(descriptors).astype(np.float32)

    kmeans = ApproximateKMeans.from_config(config, verbose=True, logger=logger)
    vocabulary_size = min(500, len(features))
    logger.info(f"Building vocabulary of {vocabulary_size} words from {len(features)} descriptors...")

    state = kmeans.cluster_state(features, vocabulary_size)

    output_path = Path("output/vocabulary.npy")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    np.save(str(output_path), state.centers)
    logger.info(f"Compactness {state.compactness:.4f} after {state.iterations} iterations")
    logger.info("Batch processing complete!")


if __name__ == "__main__":
    main()
