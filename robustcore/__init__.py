"""
robustcore - robust model fitting and approximate clustering

MSAC sample consensus for geometric models and approximate K-Means
for visual vocabulary construction.
"""

from .errors import PreconditionError, MaxTrialsReachedWarning, InvalidFeaturesWarning
from .ransac.msac import MSAC, MSACResult, RansacParams, fit_robust
from .clustering.kmeans import ApproximateKMeans, approximate_kmeans

__all__ = [
    'PreconditionError',
    'MaxTrialsReachedWarning',
    'InvalidFeaturesWarning',
    'MSAC',
    'MSACResult',
    'RansacParams',
    'fit_robust',
    'ApproximateKMeans',
    'approximate_kmeans',
]
__version__ = '1.0.0'
