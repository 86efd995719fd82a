"""Tests for line geometry and endpoint uncertainty."""

import numpy as np
import pytest

from stvo.geometry import (
    ang_diff,
    endpoint_covariance,
    intersect_row,
    line_equation,
    line_uncertainty,
    max_eigenvalue,
    normalized_line_equation,
)


class TestLineGeometry:
    """Test suite for homogeneous line helpers."""

    def test_line_contains_endpoints(self):
        """Test that both defining points satisfy the line equation."""
        start = np.array([12.0, -3.0])
        end = np.array([40.0, 55.0])
        le = line_equation(start, end)
        assert le @ np.array([*start, 1.0]) == pytest.approx(0.0)
        assert le @ np.array([*end, 1.0]) == pytest.approx(0.0)

    def test_normalized_line_is_unit(self):
        """Test that the first two coefficients form a unit vector."""
        le = normalized_line_equation(np.array([3.0, 4.0]), np.array([100.0, 250.0]))
        assert np.hypot(le[0], le[1]) == pytest.approx(1.0)

    def test_normalized_line_gives_pixel_distance(self):
        """Test that the normalized equation evaluates to point-line distance."""
        le = normalized_line_equation(np.array([0.0, 0.0]), np.array([0.0, 10.0]))
        assert abs(le @ np.array([7.0, 3.0, 1.0])) == pytest.approx(7.0)

    def test_intersect_row(self):
        """Test intersection of a horizontal ray with a slanted line."""
        le = line_equation(np.array([292.0, 120.0]), np.array([308.0, 280.0]))
        assert intersect_row(le, 100.0) == pytest.approx(290.0)
        assert intersect_row(le, 300.0) == pytest.approx(310.0)
        x = intersect_row(le, 217.0)
        assert le @ np.array([x, 217.0, 1.0]) == pytest.approx(0.0, abs=1e-9)

    @pytest.mark.parametrize(
        "alpha, beta, expected",
        [
            (0.5, 0.2, 0.3),
            (3.0, -3.0, 6.0 - 2.0 * np.pi),
            (-3.0, 3.0, 2.0 * np.pi - 6.0),
            (1.0, 1.0, 0.0),
        ],
    )
    def test_ang_diff_wraps(self, alpha, beta, expected):
        """Test that angle differences are wrapped to [-pi, pi]."""
        assert ang_diff(alpha, beta) == pytest.approx(expected)


class TestEndpointCovariance:
    """Test suite for analytic stereo uncertainty."""

    def test_symmetric(self, camera):
        """Test that the covariance is symmetric and positive definite."""
        cov = endpoint_covariance(400.0, 100.0, 12.0, camera)
        np.testing.assert_allclose(cov, cov.T)
        assert np.all(np.linalg.eigvalsh(cov) > 0)

    def test_terms(self, camera):
        """Test the raw terms scaled by B^2 / d^4."""
        u, v, d = 330.0, 260.0, 5.0
        cov = endpoint_covariance(u, v, d, camera)
        x, y, f = 10.0, 20.0, 500.0
        raw = np.array(
            [
                [d * d + 2 * x * x, 2 * x * y, 2 * f * x],
                [2 * x * y, d * d + 2 * y * y, 2 * f * y],
                [2 * f * x, 2 * f * y, 2 * f * f],
            ]
        )
        np.testing.assert_allclose(cov, raw * 0.1**2 / d**4)

    def test_principal_point_eigenvalue(self, camera):
        """Test the closed-form eigenvalue at the principal point."""
        d = 50.0
        cov = endpoint_covariance(camera.cx, camera.cy, d, camera)
        expected = max(0.01 / d**2, 2.0 * 500.0**2 * 0.01 / d**4)
        assert max_eigenvalue(cov) == pytest.approx(expected)

    def test_uncertainty_grows_with_depth(self, camera):
        """Test that small disparity (far) is more uncertain than large (near)."""
        near = max_eigenvalue(endpoint_covariance(camera.cx, camera.cy, 50.0, camera))
        far = max_eigenvalue(endpoint_covariance(camera.cx, camera.cy, 2.0, camera))
        assert near < far

    def test_line_uncertainty_is_worst_endpoint(self, camera):
        """Test that a line's uncertainty is the maximum over its endpoints."""
        spl = np.array([300.0, 100.0])
        epl = np.array([320.0, 300.0])
        s_eig = max_eigenvalue(endpoint_covariance(300.0, 100.0, 30.0, camera))
        e_eig = max_eigenvalue(endpoint_covariance(320.0, 300.0, 3.0, camera))
        assert line_uncertainty(spl, 30.0, epl, 3.0, camera) == pytest.approx(max(s_eig, e_eig))
        assert e_eig > s_eig
