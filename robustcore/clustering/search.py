"""Nearest-neighbor indexes used for cluster assignment."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree
from scipy.spatial.distance import cdist

from robustcore.errors import PreconditionError
from robustcore.utils.validation import check_nonnegative_finite, check_positive_int


class NearestNeighborIndex(ABC):
    """
    Index over cluster centers answering 1-nearest-neighbor queries.

    ``build`` receives a seed so that implementations with randomized
    construction produce identical indexes when rebuilt on parallel workers.
    """

    @abstractmethod
    def build(self, centers: np.ndarray, seed: Optional[int] = None) -> 'NearestNeighborIndex':
        """Index ``centers`` (K, D)."""

    @abstractmethod
    def query(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return (nearest center index, Euclidean distance) for every row."""


class KDTreeIndex(NearestNeighborIndex):
    """
    k-d tree search via scipy.

    With ``eps > 0`` the search is approximate: the reported neighbor is
    within a factor ``1 + eps`` of the true nearest distance.
    """

    def __init__(self, eps: float = 0.0, leafsize: int = 16):
        self.eps = check_nonnegative_finite(eps, 'eps')
        self.leafsize = check_positive_int(leafsize, 'leafsize')
        self._tree = None

    def build(self, centers: np.ndarray, seed: Optional[int] = None) -> 'KDTreeIndex':
        self._tree = cKDTree(np.asarray(centers, dtype=np.float64), leafsize=self.leafsize)
        return self

    def query(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        if self._tree is None:
            raise RuntimeError("Index must be built before querying")
        if len(features) == 0:
            return np.empty(0, dtype=np.intp), np.empty(0, dtype=np.float64)
        dists, indices = self._tree.query(features, k=1, eps=self.eps)
        return np.asarray(indices, dtype=np.intp), np.asarray(dists, dtype=np.float64)


class BruteForceIndex(NearestNeighborIndex):
    """Exact search over the full feature-to-center distance matrix."""

    def __init__(self):
        self._centers = None

    def build(self, centers: np.ndarray, seed: Optional[int] = None) -> 'BruteForceIndex':
        self._centers = np.asarray(centers, dtype=np.float64)
        return self

    def query(self, features: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        if self._centers is None:
            raise RuntimeError("Index must be built before querying")
        if len(features) == 0:
            return np.empty(0, dtype=np.intp), np.empty(0, dtype=np.float64)
        dist_matrix = cdist(np.asarray(features, dtype=np.float64), self._centers)
        indices = np.argmin(dist_matrix, axis=1)
        return indices.astype(np.intp), dist_matrix[np.arange(len(indices)), indices]


INDEX_TYPES = {
    'kdtree': KDTreeIndex,
    'bruteforce': BruteForceIndex,
}


def make_index_factory(config: Optional[Dict[str, Any]] = None) -> Callable[[], NearestNeighborIndex]:
    """Build an index factory from the ``kmeans.index`` configuration section."""
    config = dict(config or {})
    index_type = str(config.pop('type', 'kdtree')).lower()
    if index_type not in INDEX_TYPES:
        raise PreconditionError(
            f"Unknown index type '{index_type}', expected one of {sorted(INDEX_TYPES)}")

    if index_type == 'bruteforce':
        return BruteForceIndex

    # Bad options fail here rather than on the first query
    template = KDTreeIndex(eps=config.get('eps', 0.0), leafsize=config.get('leafsize', 16))
    return lambda: KDTreeIndex(eps=template.eps, leafsize=template.leafsize)
