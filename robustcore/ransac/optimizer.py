"""Levenberg-Marquardt refinement of homographies fitted from correspondences."""

import logging

import numpy as np
from scipy.optimize import least_squares

from robustcore.errors import PreconditionError

logger = logging.getLogger(__name__)

# Eight free entries once H[2, 2] is fixed to 1
NUM_PARAMS = 8


def transform_points(points: np.ndarray, H: np.ndarray) -> np.ndarray:
    """Map (N, 2) points through homography ``H``."""
    points_h = np.hstack([points, np.ones((points.shape[0], 1))])
    transformed = (H @ points_h.T).T
    return transformed[:, :2] / transformed[:, 2:]


def transfer_residuals(H: np.ndarray, src_points: np.ndarray,
                       dst_points: np.ndarray) -> np.ndarray:
    """Stacked x/y forward transfer errors, shape (2N,)."""
    return (transform_points(src_points, H) - dst_points).ravel()


class HomographyOptimizer:
    """Refine a homography by minimizing forward transfer error."""

    def __init__(self, max_iters: int = 100):
        self.max_iters = max_iters

    def optimize(self, H: np.ndarray, src_points: np.ndarray,
                dst_points: np.ndarray) -> np.ndarray:
        """
        Refine ``H`` on all correspondences.

        Returns the refined matrix normalized so that ``H[2, 2] == 1``. When
        the solver does not lower the squared transfer error, the normalized
        input is returned unchanged.
        """
        src_points = np.asarray(src_points, dtype=np.float64)
        dst_points = np.asarray(dst_points, dtype=np.float64)
        if 2 * len(src_points) < NUM_PARAMS:
            raise PreconditionError(
                f"Homography refinement needs at least 4 correspondences, got {len(src_points)}")

        H = H / H[2, 2]
        start_cost = float(np.sum(transfer_residuals(H, src_points, dst_points) ** 2))

        result = least_squares(
            lambda params: transfer_residuals(self._params_to_matrix(params),
                                              src_points, dst_points),
            H.ravel()[:NUM_PARAMS], method='lm', max_nfev=self.max_iters)

        refined = self._params_to_matrix(result.x)
        refined_cost = 2.0 * float(result.cost)
        if not np.all(np.isfinite(refined)) or refined_cost > start_cost:
            logger.debug("Homography refinement kept the initial estimate (%s)", result.message)
            return H

        logger.debug("Homography refinement: squared error %.6g -> %.6g in %d evaluations",
                     start_cost, refined_cost, result.nfev)
        return refined

    def _params_to_matrix(self, params: np.ndarray) -> np.ndarray:
        """Convert parameter vector to 3x3 matrix."""
        return np.append(params, 1).reshape(3, 3)
