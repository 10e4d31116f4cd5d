"""
Cluster center initialization.

References:
    D. Arthur and S. Vassilvitskii, "k-means++: the advantages of careful
    seeding," Proceedings of the 18th ACM-SIAM Symposium on Discrete
    Algorithms, 2007.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)


def random_init(features: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """Pick ``k`` distinct feature rows uniformly at random."""
    indices = rng.choice(len(features), k, replace=False)
    return features[indices].copy()


def kmeans_plus_plus_init(features: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """
    Pick centers with k-means++ D^2 weighting.

    The first center is uniform. Each next center is sampled with
    probability proportional to the squared distance from a feature to its
    nearest chosen center. Non-finite or all-zero weights fall back to a
    uniform pick.
    """
    num_features, dim = features.shape

    centers = np.empty((k, dim), dtype=features.dtype)
    min_distances = np.full(num_features, np.inf)

    centers[0] = features[rng.integers(num_features)]

    for j in range(1, k):
        diff = features - centers[j - 1].astype(np.float64)
        dists = np.einsum('ij,ij->i', diff, diff)
        min_distances = np.minimum(min_distances, dists)

        total = np.sum(min_distances)
        weights = min_distances / (total + np.finfo(np.float64).eps)

        edges = np.concatenate([[0.0], np.cumsum(weights)])
        # CDF must end at 1
        edges[-1] = 1.0
        edges[edges > 1.0] = 1.0

        if total > 0 and np.all(np.isfinite(edges)):
            index = np.searchsorted(edges, rng.random(), side='right') - 1
            index = int(np.clip(index, 0, num_features - 1))
        else:
            index = int(rng.integers(num_features))

        centers[j] = features[index]
        logger.debug("k-means++ seeding %.2f%%", 100.0 * (j + 1) / k)

    return centers


INITIALIZERS = {
    'random': random_init,
    'kmeans++': kmeans_plus_plus_init,
}
