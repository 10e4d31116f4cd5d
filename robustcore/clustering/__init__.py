"""Approximate K-Means clustering and nearest-neighbor indexes."""

from .kmeans import ApproximateKMeans, ClusterState, approximate_kmeans
from .search import BruteForceIndex, KDTreeIndex, NearestNeighborIndex, make_index_factory

__all__ = [
    'ApproximateKMeans',
    'ClusterState',
    'approximate_kmeans',
    'BruteForceIndex',
    'KDTreeIndex',
    'NearestNeighborIndex',
    'make_index_factory',
]
