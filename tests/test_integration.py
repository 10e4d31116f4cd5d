"""Integration tests for complete pipeline."""

import numpy as np

from robustcore.config import load_config
from robustcore.clustering import ApproximateKMeans
from robustcore.ransac import MSAC, HomographyModel, RansacParams
from robustcore.ransac.optimizer import transform_points
from robustcore.utils.logger import setup_logger_from_config
from robustcore.utils.metrics import AccuracyMetrics


CONFIG_YAML = """
ransac:
  max_distance: 1.0
  max_trials: 500
  recompute_from_inliers: true
kmeans:
  num_trials: 2
  index:
    type: bruteforce
logging:
  level: DEBUG
"""


class TestIntegration:
    """Test configuration driven pipelines."""

    def test_homography_pipeline(self, tmp_path):
        """Test calibration pipeline from a YAML config."""
        path = tmp_path / 'config.yaml'
        path.write_text(CONFIG_YAML)
        config = load_config(path)

        H = np.array([[0.9, 0.1, 20.0], [-0.05, 1.05, -10.0], [0.0, 1e-4, 1.0]])
        rng = np.random.default_rng(3)
        src = rng.uniform(0, 400, (60, 2))
        dst = transform_points(src, H)
        dst[:10] += rng.uniform(20, 60, (10, 2))
        points = np.stack([src, dst], axis=2)

        result = MSAC(RansacParams.from_config(config)).fit(points, HomographyModel(), rng=0)

        assert result.found
        assert not result.inliers[:10].any()
        assert result.inliers[10:].all()

    def test_vocabulary_pipeline(self, tmp_path):
        """Test clustering pipeline from a YAML config."""
        path = tmp_path / 'config.yaml'
        path.write_text(CONFIG_YAML)
        config = load_config(path)
        logger = setup_logger_from_config(config, 'robustcore.test_pipeline')

        rng = np.random.default_rng(0)
        words = rng.uniform(-50, 50, (6, 16))
        features = np.vstack([w + rng.normal(0, 0.5, (100, 16)) for w in words]).astype(np.float32)
        labels = np.repeat(np.arange(6), 100)

        kmeans = ApproximateKMeans.from_config(config, logger=logger)
        state = kmeans.cluster_state(features, 6, rng=1)

        assert state.centers.shape == (6, 16)
        assert state.centers.dtype == np.float32
        assert state.valid_mask.all()
        assert AccuracyMetrics.clustering_accuracy(state.assignments, labels) >= 0.99
