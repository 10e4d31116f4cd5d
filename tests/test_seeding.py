"""Tests for cluster center initialization."""

import numpy as np

from robustcore.clustering.seeding import kmeans_plus_plus_init, random_init


class TestSeeding:
    """Test random and k-means++ seeding."""

    def test_random_init_distinct_rows(self):
        """Random seeding picks distinct feature rows."""
        features = np.arange(40, dtype=np.float64).reshape(20, 2)
        centers = random_init(features, 6, np.random.default_rng(0))

        assert centers.shape == (6, 2)
        assert len({tuple(c) for c in centers}) == 6
        assert all(any(np.array_equal(c, f) for f in features) for c in centers)

    def test_kmeans_plus_plus_spreads_centers(self):
        """k-means++ puts one center in each distant blob."""
        rng = np.random.default_rng(0)
        blob_centers = np.array([[0.0, 0.0], [100.0, 0.0], [0.0, 100.0]])
        features = np.vstack([c + rng.normal(0, 0.1, (50, 2)) for c in blob_centers])

        centers = kmeans_plus_plus_init(features, 3, np.random.default_rng(3))

        nearest_blob = np.argmin(
            np.linalg.norm(centers[:, None, :] - blob_centers[None, :, :], axis=2), axis=1)
        assert sorted(nearest_blob.tolist()) == [0, 1, 2]

    def test_kmeans_plus_plus_identical_features(self):
        """Zero weights fall back to uniform picks."""
        features = np.ones((10, 3), dtype=np.float32)
        centers = kmeans_plus_plus_init(features, 4, np.random.default_rng(0))

        assert centers.shape == (4, 3)
        assert centers.dtype == np.float32
        np.testing.assert_array_equal(centers, 1.0)

    def test_kmeans_plus_plus_reproducible(self):
        """Equal seeds give equal centers."""
        features = np.random.default_rng(5).normal(size=(100, 4))
        first = kmeans_plus_plus_init(features, 5, np.random.default_rng(1))
        second = kmeans_plus_plus_init(features, 5, np.random.default_rng(1))
        np.testing.assert_array_equal(first, second)
