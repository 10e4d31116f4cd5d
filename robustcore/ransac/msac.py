"""
MSAC implementation for robust estimation.

M-estimator SAmple Consensus scores every candidate model with a truncated
loss: residuals above ``max_distance`` contribute exactly ``max_distance``,
so a single gross outlier cannot dominate the score.

References:
    P. H. S. Torr and A. Zisserman, "MLESAC: A New Robust Estimator with
    Application to Estimating Image Geometry," Computer Vision and Image
    Understanding, 2000.
"""

import logging
import math
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

import numpy as np

from robustcore.config import merge_config
from robustcore.errors import PreconditionError, MaxTrialsReachedWarning
from robustcore.utils.random_state import RandomLike, make_rng
from robustcore.utils.validation import (
    check_logical,
    check_nonnegative_finite,
    check_positive_int,
    check_probability,
)

logger = logging.getLogger(__name__)

# Returned by compute_loop_number when no finite trial count reaches the confidence
UNBOUNDED_TRIALS = int(np.iinfo(np.int32).max)


class MSACResult(NamedTuple):
    """Outcome of one MSAC run. Unpacks as ``found, model, inliers, reached_skip_limit``."""
    found: bool
    model: Any
    inliers: np.ndarray
    reached_skip_limit: bool


@dataclass
class RansacState:
    """Mutable per-run state of the sampling loop."""
    best_model: Any
    best_distance: float
    best_inliers: np.ndarray
    trial: int = 1
    num_trials: int = 0
    skip_trials: int = 0

    @property
    def num_inliers(self) -> int:
        return int(np.count_nonzero(self.best_inliers))


class ModelStrategy(ABC):
    """
    Geometric model plugged into MSAC.

    Subclasses set ``sample_size`` to the minimal number of points that
    determine one model instance. ``fit`` may return a list of candidate
    models when a minimal sample has several solutions.
    """

    sample_size: int = 0

    @abstractmethod
    def fit(self, points: np.ndarray) -> Any:
        """Fit a model (or a list of models) to a sample of points."""

    @abstractmethod
    def evaluate(self, model: Any, points: np.ndarray) -> np.ndarray:
        """Residual of every point under ``model``, shape (N,)."""

    @abstractmethod
    def is_valid(self, model: Any) -> bool:
        """Structural sanity check. Degenerate fits must fail here."""


@dataclass
class RansacParams:
    """Parameters of an MSAC run."""
    max_distance: float = 1.0
    confidence: float = 0.99
    max_trials: int = 1000
    sample_size: Optional[int] = None
    max_skip_trials: Optional[int] = None
    recompute_from_inliers: bool = False
    default_model: Any = None

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None, **overrides) -> 'RansacParams':
        """Build parameters from the ``ransac`` section of a configuration dict."""
        section = dict(merge_config(config)['ransac'])
        section.update(overrides)
        return cls(**section)


def compute_loop_number(sample_size: int, confidence: float,
                        num_points: int, num_inliers: int) -> int:
    """
    Number of trials needed to draw one outlier-free sample with ``confidence``.

    Uses the standard bound ``log(1 - p) / log(1 - w**s)`` with inlier
    ratio ``w`` and sample size ``s``.
    """
    inlier_ratio = num_inliers / num_points
    if inlier_ratio <= 0:
        return UNBOUNDED_TRIALS

    eps = np.finfo(float).eps
    prob = inlier_ratio ** sample_size
    if prob >= 1.0 - eps:
        return 0
    if prob <= eps:
        return UNBOUNDED_TRIALS

    num = math.ceil(math.log(1.0 - confidence) / math.log(1.0 - prob))
    return int(min(num, UNBOUNDED_TRIALS))


def _valid_candidates(candidates: Any, check_fn: Callable) -> Optional[List[Any]]:
    """Filter fit output down to valid models. Returns None when nothing survives."""
    if isinstance(candidates, (list, tuple)):
        valid = [model for model in candidates if model is not None and check_fn(model)]
    elif candidates is not None and check_fn(candidates):
        valid = [candidates]
    else:
        valid = []
    return valid or None


def _evaluate_model(eval_fn: Callable, candidates: List[Any], points: np.ndarray,
                    threshold: float) -> Tuple[Any, np.ndarray, float]:
    """Pick the candidate with the lowest truncated distance sum."""
    best = None
    for model in candidates:
        dis = np.asarray(eval_fn(model, points), dtype=np.float64).reshape(-1)
        # NaN residuals count as outliers
        dis = np.where(np.isnan(dis), threshold, np.minimum(dis, threshold))
        acc_dis = float(np.sum(dis))
        if best is None or acc_dis < best[2]:
            best = (model, dis, acc_dis)
    return best


def fit_robust(points: np.ndarray, sample_size: int, max_distance: float,
               confidence: float, max_trials: int,
               fit_fn: Callable[[np.ndarray], Any],
               eval_fn: Callable[[Any, np.ndarray], np.ndarray],
               check_fn: Callable[[Any], bool],
               *,
               max_skip_trials: Optional[int] = None,
               recompute_from_inliers: bool = False,
               default_model: Any = None,
               rng: RandomLike = None,
               callback: Optional[Callable[[RansacState], bool]] = None) -> MSACResult:
    """
    Fit a model to noisy points with MSAC.

    Args:
        points: (N, D) points, or (N, D, 2) for point correspondences
        sample_size: Minimal number of points defining one model
        max_distance: Inlier threshold on the residual
        confidence: Probability in (0, 1) of drawing at least one clean sample
        max_trials: Upper bound on evaluated samples
        fit_fn: ``fit_fn(sample) -> model`` or a list of models
        eval_fn: ``eval_fn(model, points) -> (N,) residuals``
        check_fn: ``check_fn(model) -> bool``
        max_skip_trials: Bound on samples rejected by ``check_fn``
            (default ``10 * max_trials``)
        recompute_from_inliers: Refit the best model on all of its inliers
        default_model: Model reported when nothing better is found
        rng: Generator or seed used for sampling
        callback: Called with the loop state once per iteration. A truthy
            return value stops sampling.

    Returns:
        MSACResult(found, model, inliers, reached_skip_limit)
    """
    points = np.asarray(points)
    if points.ndim < 1 or points.shape[0] == 0:
        raise PreconditionError("points must contain at least one point")

    sample_size = check_positive_int(sample_size, 'sample_size')
    threshold = check_nonnegative_finite(max_distance, 'max_distance')
    confidence = check_probability(confidence, 'confidence')
    max_trials = check_positive_int(max_trials, 'max_trials')
    if max_skip_trials is None:
        max_skip_trials = 10 * max_trials
    max_skip_trials = check_positive_int(max_skip_trials, 'max_skip_trials')
    recompute_from_inliers = check_logical(recompute_from_inliers, 'recompute_from_inliers')

    num_points = points.shape[0]
    if num_points < sample_size:
        raise PreconditionError(
            f"At least {sample_size} points are required, got {num_points}")

    rng = make_rng(rng)

    state = RansacState(
        best_model=default_model,
        best_distance=threshold * num_points,
        best_inliers=np.zeros(num_points, dtype=bool),
        num_trials=max_trials,
    )

    while state.trial <= state.num_trials and state.skip_trials < max_skip_trials:
        indices = rng.choice(num_points, sample_size, replace=False)
        sample = points[indices]

        with np.errstate(all='ignore'):
            candidates = _valid_candidates(fit_fn(sample), check_fn)

            if candidates is None:
                state.skip_trials += 1
            else:
                model, dis, acc_dis = _evaluate_model(eval_fn, candidates, points, threshold)

                if acc_dis < state.best_distance:
                    state.best_distance = acc_dis
                    state.best_inliers = dis < threshold
                    state.best_model = model
                    num = compute_loop_number(sample_size, confidence,
                                              num_points, state.num_inliers)
                    state.num_trials = min(state.num_trials, num)

                state.trial += 1

        if callback is not None and callback(state):
            logger.debug("MSAC stopped by callback after %d trials", state.trial - 1)
            break

    reached_skip_limit = state.skip_trials >= max_skip_trials
    if reached_skip_limit:
        logger.debug("MSAC reached the skip limit of %d invalid samples", max_skip_trials)

    found = (state.best_model is not None
             and state.num_inliers >= sample_size
             and bool(check_fn(state.best_model)))

    if not found:
        return MSACResult(False, default_model, np.zeros(num_points, dtype=bool),
                          reached_skip_limit)

    model = state.best_model
    inliers = state.best_inliers

    if recompute_from_inliers:
        with np.errstate(all='ignore'):
            candidates = _valid_candidates(fit_fn(points[inliers]), check_fn)
            if candidates is not None:
                model, dis, _ = _evaluate_model(eval_fn, candidates, points, threshold)
                inliers = dis < threshold

        if candidates is None or not inliers.any():
            logger.debug("Refit on %d inliers produced no valid model", state.num_inliers)
            return MSACResult(False, default_model, np.zeros(num_points, dtype=bool),
                              reached_skip_limit)

    if state.num_trials >= max_trials:
        message = (f"MSAC ran the maximum of {max_trials} trials; the result may not "
                   f"reach the requested confidence of {confidence}")
        logger.warning(message)
        warnings.warn(message, MaxTrialsReachedWarning, stacklevel=2)

    return MSACResult(True, model, inliers, reached_skip_limit)


class MSAC:
    """MSAC estimator bound to a parameter set."""

    def __init__(self, params: Optional[RansacParams] = None, **kwargs):
        self.params = params if params is not None else RansacParams(**kwargs)

    def fit(self, points: np.ndarray, strategy: ModelStrategy,
            rng: RandomLike = None,
            callback: Optional[Callable[[RansacState], bool]] = None) -> MSACResult:
        """Fit ``strategy``'s model to ``points``."""
        params = self.params
        sample_size = params.sample_size if params.sample_size is not None else strategy.sample_size

        return fit_robust(
            points, sample_size, params.max_distance, params.confidence, params.max_trials,
            strategy.fit, strategy.evaluate, strategy.is_valid,
            max_skip_trials=params.max_skip_trials,
            recompute_from_inliers=params.recompute_from_inliers,
            default_model=params.default_model,
            rng=rng,
            callback=callback,
        )
