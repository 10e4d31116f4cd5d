"""
Geometric models for MSAC.

Each model fits from a minimal sample (or least squares on more points),
reports per-point residuals and rejects degenerate fits in ``is_valid``.
Correspondence models take points of shape (N, 2, 2) where
``points[:, :, 0]`` are source and ``points[:, :, 1]`` destination
coordinates.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from robustcore.errors import PreconditionError
from robustcore.ransac.msac import ModelStrategy
from robustcore.ransac.optimizer import HomographyOptimizer, transform_points

_DEGENERATE_TOL = 1e-10


def _is_finite_array(model, shape) -> bool:
    if model is None:
        return False
    model = np.asarray(model)
    return model.shape == shape and bool(np.all(np.isfinite(model)))


def _split_correspondences(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    points = np.asarray(points)
    return points[:, :, 0], points[:, :, 1]


class Line2DModel(ModelStrategy):
    """
    2D line ``a*x + b*y + c = 0``.

    Coefficients are normalized so that (a, b) is a unit normal, which makes
    the residual the perpendicular point-to-line distance.
    """

    sample_size = 2

    def fit(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)

        if len(points) == 2:
            anchor = points[0]
            direction = points[1] - points[0]
        else:
            anchor = np.mean(points, axis=0)
            centered = points - anchor
            if np.allclose(centered, 0):
                return np.zeros(3)
            _, _, vh = np.linalg.svd(centered)
            direction = vh[0]

        norm = np.linalg.norm(direction)
        if norm < _DEGENERATE_TOL:
            return np.zeros(3)

        normal = np.array([-direction[1], direction[0]]) / norm
        return np.array([normal[0], normal[1], -np.dot(normal, anchor)])

    def evaluate(self, model: np.ndarray, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        return np.abs(points[:, :2] @ model[:2] + model[2])

    def is_valid(self, model: np.ndarray) -> bool:
        return _is_finite_array(model, (3,)) and np.linalg.norm(model[:2]) > 0.5

    @staticmethod
    def slope_intercept(model: np.ndarray) -> Tuple[float, float]:
        """Return (slope, intercept) of ``y = slope * x + intercept``."""
        a, b, c = model
        if abs(b) < _DEGENERATE_TOL:
            raise PreconditionError("Vertical line has no slope-intercept form")
        return float(-a / b), float(-c / b)


class PlaneModel(ModelStrategy):
    """
    Plane ``a*x + b*y + c*z + d = 0`` with (a, b, c) a unit normal.
    """

    sample_size = 3

    def fit(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)

        if len(points) == 3:
            anchor = points[0]
            normal = np.cross(points[1] - points[0], points[2] - points[0])
        else:
            anchor = np.mean(points, axis=0)
            centered = points - anchor
            _, s, vh = np.linalg.svd(centered)
            # Rank < 2 means the points are collinear
            if len(s) < 2 or s[1] < _DEGENERATE_TOL:
                return np.zeros(4)
            normal = vh[-1]

        norm = np.linalg.norm(normal)
        if norm < _DEGENERATE_TOL:
            return np.zeros(4)

        normal = normal / norm
        return np.append(normal, -np.dot(normal, anchor))

    def evaluate(self, model: np.ndarray, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)
        return np.abs(points[:, :3] @ model[:3] + model[3])

    def is_valid(self, model: np.ndarray) -> bool:
        return _is_finite_array(model, (4,)) and np.linalg.norm(model[:3]) > 0.5


class SphereModel(ModelStrategy):
    """
    Sphere ``(x-a)^2 + (y-b)^2 + (z-c)^2 = r^2`` as ``[a, b, c, r]``.

    Solved as the linear system ``2ax + 2by + 2cz + e = x^2 + y^2 + z^2``
    with ``r^2 = e + a^2 + b^2 + c^2``. Coplanar samples are rank deficient
    and produce a NaN model.
    """

    sample_size = 4

    def fit(self, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)[:, :3]
        A = np.hstack([2 * points, np.ones((len(points), 1))])
        b = np.sum(points ** 2, axis=1)

        solution, _, rank, _ = np.linalg.lstsq(A, b, rcond=None)
        if rank < 4:
            return np.full(4, np.nan)

        center = solution[:3]
        radius_sq = solution[3] + np.dot(center, center)
        if radius_sq <= 0:
            return np.full(4, np.nan)
        return np.append(center, np.sqrt(radius_sq))

    def evaluate(self, model: np.ndarray, points: np.ndarray) -> np.ndarray:
        points = np.asarray(points, dtype=np.float64)[:, :3]
        return np.abs(np.linalg.norm(points - model[:3], axis=1) - model[3])

    def is_valid(self, model: np.ndarray) -> bool:
        return _is_finite_array(model, (4,)) and model[3] > 0


class HomographyModel(ModelStrategy):
    """Planar homography mapping source points onto destination points."""

    sample_size = 4

    def __init__(self, refine: bool = False, max_refine_iters: int = 100):
        self.refine = refine
        self.optimizer = HomographyOptimizer(max_iters=max_refine_iters)

    def fit(self, points: np.ndarray) -> Optional[np.ndarray]:
        src, dst = _split_correspondences(points)
        src = np.ascontiguousarray(src, dtype=np.float32)
        dst = np.ascontiguousarray(dst, dtype=np.float32)

        try:
            if len(src) == 4:
                H = cv2.getPerspectiveTransform(src, dst)
            else:
                H, _ = cv2.findHomography(src, dst, 0)
        except cv2.error:
            return None

        if H is None or not np.all(np.isfinite(H)) or abs(H[2, 2]) < _DEGENERATE_TOL:
            return None
        H = H / H[2, 2]

        if self.refine and len(src) > 4:
            H = self.optimizer.optimize(H, src.astype(np.float64), dst.astype(np.float64))
        return H

    def evaluate(self, model: np.ndarray, points: np.ndarray) -> np.ndarray:
        src, dst = _split_correspondences(points)
        projected = transform_points(np.asarray(src, dtype=np.float64), model)
        return np.linalg.norm(projected - dst, axis=1)

    def is_valid(self, model: np.ndarray) -> bool:
        if not _is_finite_array(model, (3, 3)):
            return False
        if model[2, 2] == 0:
            return False
        return abs(np.linalg.det(model)) > 1e-6


class FundamentalMatrixModel(ModelStrategy):
    """
    Fundamental matrix from the normalized 8-point algorithm.

    ``distance_type`` selects the Sampson distance (first-order geometric
    error) or the algebraic residual ``|x2' F x1|``.
    """

    sample_size = 8
    DISTANCE_TYPES = ('sampson', 'algebraic')

    def __init__(self, distance_type: str = 'sampson'):
        if distance_type not in self.DISTANCE_TYPES:
            raise PreconditionError(
                f"distance_type must be one of {list(self.DISTANCE_TYPES)}, got {distance_type!r}")
        self.distance_type = distance_type

    def fit(self, points: np.ndarray) -> Optional[np.ndarray]:
        pts1, pts2 = _split_correspondences(points)
        pts1 = np.ascontiguousarray(pts1, dtype=np.float32)
        pts2 = np.ascontiguousarray(pts2, dtype=np.float32)

        try:
            F, _ = cv2.findFundamentalMat(pts1, pts2, cv2.FM_8POINT)
        except cv2.error:
            return None

        if F is None or F.shape != (3, 3):
            return None
        return F

    def evaluate(self, model: np.ndarray, points: np.ndarray) -> np.ndarray:
        pts1, pts2 = _split_correspondences(points)
        ones = np.ones((len(pts1), 1))
        x1 = np.hstack([np.asarray(pts1, dtype=np.float64), ones])
        x2 = np.hstack([np.asarray(pts2, dtype=np.float64), ones])

        Fx1 = x1 @ model.T
        Ftx2 = x2 @ model
        algebraic = np.sum(x2 * Fx1, axis=1)

        if self.distance_type == 'algebraic':
            return np.abs(algebraic)

        denominator = Fx1[:, 0] ** 2 + Fx1[:, 1] ** 2 + Ftx2[:, 0] ** 2 + Ftx2[:, 1] ** 2
        return algebraic ** 2 / denominator

    def is_valid(self, model: np.ndarray) -> bool:
        return _is_finite_array(model, (3, 3)) and bool(np.any(model != 0))
