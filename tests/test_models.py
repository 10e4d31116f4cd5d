"""Tests for MSAC geometric models."""

import pytest
import numpy as np

from robustcore.errors import PreconditionError
from robustcore.ransac.msac import MSAC
from robustcore.ransac.models import (
    FundamentalMatrixModel,
    HomographyModel,
    Line2DModel,
    PlaneModel,
    SphereModel,
)
from robustcore.ransac.optimizer import HomographyOptimizer, transfer_residuals, transform_points
from robustcore.utils.metrics import AccuracyMetrics


class TestLine2DModel:
    """Test 2D line model."""

    def test_fit_two_points(self):
        """Two points define a unit-normal line."""
        line = Line2DModel()
        model = line.fit(np.array([[0.0, 1.0], [1.0, 3.0]]))

        assert line.is_valid(model)
        assert np.isclose(np.linalg.norm(model[:2]), 1.0)
        slope, intercept = Line2DModel.slope_intercept(model)
        assert np.isclose(slope, 2.0)
        assert np.isclose(intercept, 1.0)

    def test_coincident_points_invalid(self):
        """Coincident points give an invalid model instead of raising."""
        line = Line2DModel()
        model = line.fit(np.array([[1.0, 1.0], [1.0, 1.0]]))
        assert not line.is_valid(model)

    def test_distances(self):
        """Residuals are perpendicular distances."""
        line = Line2DModel()
        model = line.fit(np.array([[0.0, 0.0], [1.0, 0.0]]))
        dis = line.evaluate(model, np.array([[5.0, 2.0], [-3.0, -1.5]]))
        np.testing.assert_allclose(dis, [2.0, 1.5])

    def test_vertical_line_has_no_slope(self):
        """Vertical lines cannot be written as y = mx + b."""
        line = Line2DModel()
        model = line.fit(np.array([[2.0, 0.0], [2.0, 5.0]]))
        with pytest.raises(PreconditionError):
            Line2DModel.slope_intercept(model)


class TestPlaneModel:
    """Test plane model."""

    def test_fit_plane_with_outliers(self):
        """Recover the plane x + y + z = 1 among outliers."""
        rng = np.random.default_rng(42)
        u = rng.uniform(-5, 5, 400)
        v = rng.uniform(-5, 5, 400)
        plane_points = np.column_stack([u, v, 1 - u - v + rng.normal(0, 0.01, 400)])
        outliers = rng.uniform(-5, 5, (100, 3))
        points = np.vstack([plane_points, outliers])

        result = MSAC(max_distance=0.05, recompute_from_inliers=True).fit(points, PlaneModel(), rng=0)

        assert result.found
        normal = result.model[:3]
        expected = np.ones(3) / np.sqrt(3)
        assert abs(abs(np.dot(normal, expected)) - 1.0) < 1e-3
        assert np.sum(result.inliers[:400]) >= 390

    def test_collinear_points_invalid(self):
        """Collinear samples do not define a plane."""
        plane = PlaneModel()
        model = plane.fit(np.array([[0.0, 0, 0], [1, 1, 1], [2, 2, 2]]))
        assert not plane.is_valid(model)


class TestSphereModel:
    """Test sphere model."""

    def test_fit_exact_sphere(self):
        """Four points on a sphere recover its center and radius."""
        sphere = SphereModel()
        center, radius = np.array([1.0, -2.0, 3.0]), 2.5
        directions = np.array([[1, 0, 0], [0, 1, 0], [0, 0, 1], [-1, -1, -1]], float)
        directions /= np.linalg.norm(directions, axis=1, keepdims=True)

        model = sphere.fit(center + radius * directions)

        assert sphere.is_valid(model)
        np.testing.assert_allclose(model[:3], center, atol=1e-9)
        assert np.isclose(model[3], radius)

    def test_coplanar_points_invalid(self):
        """Coplanar samples are degenerate."""
        sphere = SphereModel()
        model = sphere.fit(np.array([[0.0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]]))
        assert not sphere.is_valid(model)

    def test_msac_sphere_with_outliers(self):
        """MSAC finds a noisy sphere among outliers."""
        rng = np.random.default_rng(0)
        directions = rng.normal(size=(300, 3))
        directions /= np.linalg.norm(directions, axis=1, keepdims=True)
        surface = np.array([5.0, 5.0, 5.0]) + 3.0 * directions + rng.normal(0, 0.01, (300, 3))
        points = np.vstack([surface, rng.uniform(0, 10, (60, 3))])

        result = MSAC(max_distance=0.05, recompute_from_inliers=True).fit(points, SphereModel(), rng=1)

        assert result.found
        assert np.linalg.norm(result.model[:3] - 5.0) < 0.05
        assert abs(result.model[3] - 3.0) < 0.05


def make_correspondences(H, n_inliers=80, n_outliers=20, seed=0):
    rng = np.random.default_rng(seed)
    src = rng.uniform(0, 500, (n_inliers + n_outliers, 2))
    dst = transform_points(src, H)
    dst[n_inliers:] = rng.uniform(0, 500, (n_outliers, 2))
    truth = np.arange(n_inliers + n_outliers) < n_inliers
    return np.stack([src, dst], axis=2), truth


class TestHomographyModel:
    """Test homography model."""

    H_TRUE = np.array([[1.1, 0.05, 10.0],
                       [-0.03, 0.95, 5.0],
                       [1e-4, 2e-4, 1.0]])

    def test_fit_minimal_sample(self):
        """Four exact correspondences recover the homography."""
        src = np.array([[0.0, 0.0], [500.0, 0.0], [500.0, 500.0], [0.0, 500.0]])
        points = np.stack([src, transform_points(src, self.H_TRUE)], axis=2)
        model = HomographyModel()
        H = model.fit(points)

        assert model.is_valid(H)
        np.testing.assert_allclose(H, self.H_TRUE, rtol=1e-3, atol=1e-5)

    def test_collinear_sample_invalid(self):
        """Collinear source points give no valid homography."""
        src = np.array([[0.0, 0], [1, 1], [2, 2], [3, 3]])
        points = np.stack([src, src + 1.0], axis=2)
        model = HomographyModel()
        assert not model.is_valid(model.fit(points))

    def test_msac_homography(self):
        """MSAC separates outlier correspondences."""
        points, truth = make_correspondences(self.H_TRUE)

        result = MSAC(max_distance=1.0, recompute_from_inliers=True).fit(
            points, HomographyModel(refine=True), rng=0)

        assert result.found
        assert AccuracyMetrics.mask_agreement(result.inliers, truth) >= 0.95
        errors = HomographyModel().evaluate(result.model, points[truth])
        assert np.max(errors) < 0.1

    def test_optimizer_keeps_exact_solution(self):
        """Refining an exact homography leaves it in place."""
        points, _ = make_correspondences(self.H_TRUE, n_inliers=20, n_outliers=0)
        H = HomographyOptimizer().optimize(self.H_TRUE, points[:, :, 0], points[:, :, 1])
        np.testing.assert_allclose(H, self.H_TRUE, rtol=1e-4, atol=1e-7)

    def test_optimizer_reduces_transfer_error(self):
        """Refinement pulls a perturbed homography back onto the data."""
        points, _ = make_correspondences(self.H_TRUE, n_inliers=30, n_outliers=0)
        src, dst = points[:, :, 0], points[:, :, 1]
        perturbed = self.H_TRUE + np.array([[1e-3, 0, 0.5], [0, -1e-3, -0.5], [0, 0, 0]])

        refined = HomographyOptimizer().optimize(perturbed, src, dst)

        before = np.sum(transfer_residuals(perturbed, src, dst) ** 2)
        after = np.sum(transfer_residuals(refined, src, dst) ** 2)
        assert after < before
        assert refined[2, 2] == 1.0

    def test_optimizer_needs_four_correspondences(self):
        """Three correspondences cannot determine eight parameters."""
        points, _ = make_correspondences(self.H_TRUE, n_inliers=3, n_outliers=0)
        with pytest.raises(PreconditionError):
            HomographyOptimizer().optimize(self.H_TRUE, points[:, :, 0], points[:, :, 1])


def make_stereo_correspondences(n_inliers=100, n_outliers=20, seed=0):
    rng = np.random.default_rng(seed)
    K = np.array([[500.0, 0, 320], [0, 500.0, 240], [0, 0, 1]])
    world = np.column_stack([
        rng.uniform(-2, 2, n_inliers),
        rng.uniform(-2, 2, n_inliers),
        rng.uniform(4, 8, n_inliers),
    ])

    angle = np.deg2rad(5.0)
    R = np.array([[np.cos(angle), 0, np.sin(angle)],
                  [0, 1, 0],
                  [-np.sin(angle), 0, np.cos(angle)]])
    t = np.array([-1.0, 0.1, 0.0])

    def project(X):
        x = (K @ X.T).T
        return x[:, :2] / x[:, 2:]

    pts1 = project(world)
    pts2 = project((R @ world.T).T + t)

    pts1 = np.vstack([pts1, rng.uniform(0, 640, (n_outliers, 2))])
    pts2 = np.vstack([pts2, rng.uniform(0, 480, (n_outliers, 2))])
    truth = np.arange(n_inliers + n_outliers) < n_inliers
    return np.stack([pts1, pts2], axis=2), truth


class TestFundamentalMatrixModel:
    """Test fundamental matrix model."""

    def test_invalid_distance_type(self):
        """Unknown distance types are rejected."""
        with pytest.raises(PreconditionError):
            FundamentalMatrixModel(distance_type='euclidean')

    def test_is_valid_rejects_empty(self):
        """Missing or all-zero matrices are invalid."""
        model = FundamentalMatrixModel()
        assert not model.is_valid(None)
        assert not model.is_valid(np.zeros((3, 3)))

    def test_msac_fundamental_matrix(self):
        """MSAC separates outliers from epipolar-consistent matches."""
        points, truth = make_stereo_correspondences()

        result = MSAC(max_distance=1.0).fit(points, FundamentalMatrixModel(), rng=0)

        assert result.found
        assert result.model.shape == (3, 3)
        assert AccuracyMetrics.mask_agreement(result.inliers, truth) >= 0.95

    def test_algebraic_distance(self):
        """Algebraic residuals vanish on exact correspondences."""
        points, _ = make_stereo_correspondences(n_inliers=20, n_outliers=0)
        model = FundamentalMatrixModel(distance_type='algebraic')
        F = model.fit(points)

        assert model.is_valid(F)
        F = F / np.linalg.norm(F)
        assert np.max(model.evaluate(F, points)) < 1e-2
