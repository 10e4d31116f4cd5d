"""
Approximate K-Means clustering.

Assignment uses a nearest-neighbor index over the current centers, so an
approximate index trades exactness for speed on large vocabularies.

References:
    J. Philbin, O. Chum, M. Isard, J. Sivic, and A. Zisserman, "Object
    retrieval with large vocabularies and fast spatial matching," CVPR 2007.
"""

import logging
import warnings
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from robustcore.config import merge_config, use_parallel_preference
from robustcore.errors import PreconditionError, InvalidFeaturesWarning
from robustcore.clustering.parallel import chunk_bounds, map_chunks, resolve_num_workers
from robustcore.clustering.search import KDTreeIndex, NearestNeighborIndex, make_index_factory
from robustcore.clustering.seeding import INITIALIZERS
from robustcore.utils.metrics import PerformanceMetrics
from robustcore.utils.random_state import RandomLike, make_rng, snapshot_seed
from robustcore.utils.validation import (
    check_choice,
    check_logical,
    check_positive_finite,
    check_positive_int,
)

logger = logging.getLogger(__name__)

_EPS_SINGLE = float(np.finfo(np.float32).eps)

IndexFactory = Callable[[], NearestNeighborIndex]


@dataclass
class ClusterState:
    """Centers and assignments after one clustering trial."""
    centers: np.ndarray
    assignments: np.ndarray
    distances: np.ndarray
    compactness: float
    iterations: int = 0
    converged: bool = False
    valid_mask: Optional[np.ndarray] = None


def _worker_count(num_items: int, use_parallel: bool, num_workers: Optional[int]) -> int:
    if not use_parallel:
        return 1
    # Chunks hold at least two items
    return max(min(resolve_num_workers(num_workers), num_items // 2), 1)


def _assign_chunk(features: np.ndarray, centers: np.ndarray,
                  index_factory: IndexFactory, seed: int) -> Tuple[np.ndarray, np.ndarray]:
    index = index_factory()
    index.build(centers, seed)
    return index.query(features)


def assign_to_clusters(features: np.ndarray, centers: np.ndarray,
                       index_factory: IndexFactory, seed: int,
                       num_workers: int = 1) -> Tuple[np.ndarray, np.ndarray]:
    """
    Nearest-center assignment for every feature.

    In parallel every chunk builds its own index from the same ``seed``.
    """
    if num_workers <= 1:
        return _assign_chunk(features, centers, index_factory, seed)

    bounds = chunk_bounds(len(features), num_workers)
    parts = map_chunks(
        lambda start, stop: _assign_chunk(features[start:stop], centers, index_factory, seed),
        bounds, num_workers)

    assignments = np.concatenate([part[0] for part in parts])
    dists = np.concatenate([part[1] for part in parts])
    return assignments, dists


def sum_cluster_features(features: np.ndarray, assignments: np.ndarray,
                         k: int) -> Tuple[np.ndarray, np.ndarray]:
    """Per-cluster feature sums (in float64) and member counts."""
    dim = features.shape[1]
    sums = np.empty((k, dim), dtype=np.float64)
    for j in range(dim):
        sums[:, j] = np.bincount(assignments, weights=features[:, j].astype(np.float64),
                                 minlength=k)
    counts = np.bincount(assignments, minlength=k).astype(np.int64)
    return sums, counts


def reinitialize_empty_clusters(features: np.ndarray, assignments: np.ndarray,
                                sums: np.ndarray, counts: np.ndarray,
                                dists: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Repopulate empty clusters with the worst-fitting features.

    Empty clusters are filled in ascending index order. Each takes the
    feature with the largest distance to its center, skipping features
    already claimed in this pass and features whose cluster has a single
    member. Ties go to the lowest feature index.
    """
    empty_clusters = np.flatnonzero(counts == 0)
    if empty_clusters.size == 0:
        return sums, assignments, counts

    assignments = assignments.copy()
    sums = sums.copy()
    counts = counts.copy()
    remaining = np.array(dists, dtype=np.float64, copy=True)

    for empty in empty_clusters:
        while True:
            idx = int(np.argmax(remaining))
            if remaining[idx] == -np.inf:
                # No alternate choices left
                break

            remaining[idx] = -np.inf

            previous = assignments[idx]
            if counts[previous] > 1:
                assignments[idx] = empty

                sums[previous] -= features[idx]
                counts[previous] -= 1

                sums[empty] = features[idx]
                counts[empty] = 1
                break

    return sums, assignments, counts


def compute_cluster_centers(sums: np.ndarray, counts: np.ndarray, dtype) -> np.ndarray:
    """Mean of every cluster from its sum and count."""
    return (sums / np.maximum(counts, 1)[:, None]).astype(dtype)


def update_cluster_centers(features: np.ndarray, assignments: np.ndarray,
                           dists: np.ndarray, k: int,
                           num_workers: int = 1) -> Tuple[np.ndarray, np.ndarray]:
    """
    Recompute centers as cluster means, repairing empty clusters first.

    In parallel the partial sums and counts of every chunk are reduced by
    summation before the means are taken.
    """
    if num_workers <= 1:
        sums, counts = sum_cluster_features(features, assignments, k)
    else:
        bounds = chunk_bounds(len(features), num_workers)
        parts = map_chunks(
            lambda start, stop: sum_cluster_features(features[start:stop],
                                                     assignments[start:stop], k),
            bounds, num_workers)
        sums = np.sum([part[0] for part in parts], axis=0)
        counts = np.sum([part[1] for part in parts], axis=0)

    sums, assignments, counts = reinitialize_empty_clusters(
        features, assignments, sums, counts, dists)

    return compute_cluster_centers(sums, counts, features.dtype), assignments


def cluster_compactness(features: np.ndarray, centers: np.ndarray,
                        assignments: np.ndarray) -> float:
    """Sum of squared distances between features and their assigned centers."""
    diff = centers[assignments].astype(np.float64) - features
    return float(np.sum(diff * diff))


def _as_feature_matrix(features) -> np.ndarray:
    features = np.asarray(features)
    if features.ndim != 2:
        raise PreconditionError(f"features must be an N-by-D matrix, got shape {features.shape}")
    if not np.issubdtype(features.dtype, np.floating):
        features = features.astype(np.float64)
    return features


def _drop_invalid_features(features: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
    valid = np.all(np.isfinite(features), axis=1)
    if valid.all():
        return features, valid

    num_features = len(features)
    features = features[valid]

    if len(features) == 0:
        raise PreconditionError(
            f"All {num_features} features contain Inf or NaN values")
    if len(features) < k:
        raise PreconditionError(
            f"Only {len(features)} of {num_features} features are finite, "
            f"fewer than the {k} clusters requested")

    message = (f"Dropping {num_features - len(features)} of {num_features} features "
               f"that contain Inf or NaN values")
    logger.warning(message)
    warnings.warn(message, InvalidFeaturesWarning, stacklevel=3)
    return features, valid


class ApproximateKMeans:
    """K-Means clustering with approximate nearest-center assignment."""

    INITIALIZATION_METHODS = ('random', 'kmeans++')

    def __init__(self, max_iterations: int = 100, threshold: float = 1e-4,
                 num_trials: int = 1, initialization: str = 'kmeans++',
                 use_parallel: Optional[bool] = None, verbose: bool = False,
                 num_workers: Optional[int] = None,
                 index_factory: Optional[IndexFactory] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the clustering engine.

        Args:
            max_iterations: Iterations per trial before giving up on convergence
            threshold: Stop when the relative compactness change is at or below this
            num_trials: Independent restarts; the most compact result wins
            initialization: 'random' or 'kmeans++'
            use_parallel: Split assignment and center updates across threads.
                ``None`` reads the environment preference.
            verbose: Report progress at INFO instead of DEBUG
            num_workers: Thread count for the parallel path (default: CPU count)
            index_factory: Callable returning a fresh NearestNeighborIndex
            logger: Logger receiving progress messages
        """
        self.max_iterations = check_positive_int(max_iterations, 'max_iterations')
        self.threshold = check_positive_finite(threshold, 'threshold')
        self.num_trials = check_positive_int(num_trials, 'num_trials')
        self.initialization = check_choice(initialization, 'initialization',
                                           self.INITIALIZATION_METHODS)
        if use_parallel is None:
            use_parallel = use_parallel_preference()
        self.use_parallel = check_logical(use_parallel, 'use_parallel')
        self.verbose = check_logical(verbose, 'verbose')
        self.num_workers = None if num_workers is None else check_positive_int(num_workers, 'num_workers')
        self.index_factory = index_factory or KDTreeIndex
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None, **overrides) -> 'ApproximateKMeans':
        """Build an engine from the ``kmeans`` section of a configuration dict."""
        section = dict(merge_config(config)['kmeans'])
        index_config = section.pop('index')
        section.setdefault('index_factory', None)
        section.update(overrides)
        if section['index_factory'] is None:
            section['index_factory'] = make_index_factory(index_config)
        return cls(**section)

    def _log(self, message: str, *args):
        self.logger.log(logging.INFO if self.verbose else logging.DEBUG, message, *args)

    def cluster(self, features: np.ndarray, k: int, rng: RandomLike = None,
                callback: Optional[Callable[[ClusterState], bool]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        Cluster ``features`` into ``k`` groups.

        Returns:
            Tuple of (centers (K, D), assignments (N,)). Assignments index the
            finite feature rows when non-finite rows were dropped.
        """
        state = self.cluster_state(features, k, rng=rng, callback=callback)
        return state.centers, state.assignments

    def cluster_state(self, features: np.ndarray, k: int, rng: RandomLike = None,
                      callback: Optional[Callable[[ClusterState], bool]] = None) -> ClusterState:
        """
        Cluster and return the full state of the most compact trial.

        ``callback`` receives the state after every iteration; a truthy return
        ends the current trial.
        """
        features = _as_feature_matrix(features)
        k = check_positive_int(k, 'k')

        num_features = len(features)
        if num_features < k:
            raise PreconditionError(
                f"Number of features ({num_features}) must be greater than or equal "
                f"to the number of clusters ({k})")

        rng = make_rng(rng)
        features, valid = _drop_invalid_features(features, k)

        self._log("Clustering %d features into %d clusters", len(features), k)

        best = None
        for trial in range(1, self.num_trials + 1):
            if self.num_trials > 1:
                self._log("Trial %d of %d", trial, self.num_trials)

            state = self._run_trial(features, k, rng, callback)

            if best is None or state.compactness < best.compactness:
                best = state

        best.valid_mask = valid
        return best

    def _run_trial(self, features: np.ndarray, k: int, rng: np.random.Generator,
                   callback: Optional[Callable[[ClusterState], bool]]) -> ClusterState:
        workers = _worker_count(len(features), self.use_parallel, self.num_workers)
        assign = partial(assign_to_clusters, index_factory=self.index_factory, num_workers=workers)
        metrics = PerformanceMetrics()

        centers = INITIALIZERS[self.initialization](features, k, rng)

        assignments, dists = assign(features, centers, seed=snapshot_seed(rng))
        centers, assignments = update_cluster_centers(features, assignments, dists, k, workers)

        compactness = cluster_compactness(features, centers, assignments)
        prev_compactness = compactness
        prev_dists = dists
        prev_assignments = assignments

        converged = False
        iteration = 0
        for iteration in range(1, self.max_iterations + 1):
            metrics.start_timer('iteration')

            assignments, dists = assign(features, centers, seed=snapshot_seed(rng))

            # The approximate search can do worse than the previous assignment
            worse = (prev_assignments != assignments) & (prev_dists < dists)
            assignments[worse] = prev_assignments[worse]
            dists[worse] = prev_dists[worse]

            centers, assignments = update_cluster_centers(features, assignments, dists, k, workers)

            compactness = cluster_compactness(features, centers, assignments)
            delta = abs(prev_compactness - compactness) / (prev_compactness + _EPS_SINGLE)

            elapsed = metrics.stop_timer('iteration') / 1000.0
            self._log("Iteration %d/%d (~%.2f seconds/iteration), compactness %.6g",
                      iteration, self.max_iterations, elapsed, compactness)

            converged = delta <= self.threshold
            if callback is not None and callback(ClusterState(
                    centers, assignments, dists, compactness, iteration, converged)):
                self._log("Clustering stopped by callback at iteration %d", iteration)
                break

            if converged:
                self._log("Converged after %d iterations", iteration)
                break

            prev_compactness = compactness
            prev_dists = dists
            prev_assignments = assignments

        if not converged:
            self._log("Stopped after %d iterations without reaching threshold %g",
                      iteration, self.threshold)
        self._log("Mean iteration time %.3f seconds", metrics.get_mean('iteration') / 1000.0)

        return ClusterState(centers, assignments, dists, compactness, iteration, converged)


def approximate_kmeans(features: np.ndarray, k: int, *, rng: RandomLike = None,
                       callback: Optional[Callable[[ClusterState], bool]] = None,
                       **options) -> Tuple[np.ndarray, np.ndarray]:
    """
    Cluster ``features`` into ``k`` groups with approximate K-Means.

    ``options`` are the ApproximateKMeans constructor arguments.
    """
    return ApproximateKMeans(**options).cluster(features, k, rng=rng, callback=callback)
