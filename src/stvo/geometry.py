"""Epipolar line geometry and analytic stereo uncertainty."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from scipy import linalg

if TYPE_CHECKING:
    from .camera import StereoCamera


def ang_diff(alpha: float, beta: float) -> float:
    """Return alpha - beta wrapped to [-pi, pi]."""
    theta = alpha - beta
    if theta > np.pi:
        theta -= 2.0 * np.pi
    if theta < -np.pi:
        theta += 2.0 * np.pi
    return theta


def line_equation(start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Homogeneous line (a, b, c) through two pixels, a*x + b*y + c = 0.

    Args:
        start: (2,) first point
        end: (2,) second point

    Returns:
        (3,) unnormalized line coefficients
    """
    s = np.array([start[0], start[1], 1.0], dtype=np.float64)
    e = np.array([end[0], end[1], 1.0], dtype=np.float64)
    return np.cross(s, e)


def normalized_line_equation(start: np.ndarray, end: np.ndarray) -> np.ndarray:
    """Line through two pixels scaled so that a^2 + b^2 = 1.

    With this scaling a*x + b*y + c is the signed pixel distance to the line.
    """
    le = line_equation(start, end)
    return le / np.hypot(le[0], le[1])


def intersect_row(le: np.ndarray, y: float) -> float:
    """Column where the horizontal ray at row y meets line le.

    The caller must ensure |le[0]| is bounded away from zero.
    """
    return float(-(le[2] + le[1] * y) / le[0])


def endpoint_covariance(
    u: float, v: float, disparity: float, camera: StereoCamera
) -> np.ndarray:
    """First-order covariance of a back-projected stereo point.

    Assumes unit pixel noise on (u, v, d). The raw matrix is built first
    and then scaled by B^2 / d^4.

    Args:
        u: Pixel column in the left image
        v: Pixel row in the left image
        disparity: Stereo disparity (pixels)
        camera: Rectified stereo camera

    Returns:
        3x3 symmetric covariance of the 3D point
    """
    px_hat = u - camera.cx
    py_hat = v - camera.cy
    f = camera.fx
    disp2 = disparity * disparity

    cov = np.empty((3, 3), dtype=np.float64)
    cov[0, 0] = disp2 + 2.0 * px_hat * px_hat
    cov[0, 1] = 2.0 * px_hat * py_hat
    cov[0, 2] = 2.0 * f * px_hat
    cov[1, 1] = disp2 + 2.0 * py_hat * py_hat
    cov[1, 2] = 2.0 * f * py_hat
    cov[2, 2] = 2.0 * f * f
    cov[1, 0] = cov[0, 1]
    cov[2, 0] = cov[0, 2]
    cov[2, 1] = cov[1, 2]

    return cov * (camera.baseline * camera.baseline / (disp2 * disp2))


def max_eigenvalue(cov: np.ndarray) -> float:
    """Largest eigenvalue of a symmetric matrix."""
    # eigvalsh returns eigenvalues in ascending order
    return float(linalg.eigvalsh(cov)[-1])


def line_uncertainty(
    spl: np.ndarray,
    sdisp: float,
    epl: np.ndarray,
    edisp: float,
    camera: StereoCamera,
) -> float:
    """Worst-case covariance eigenvalue over both endpoints of a stereo line."""
    cov_s = endpoint_covariance(spl[0], spl[1], sdisp, camera)
    cov_e = endpoint_covariance(epl[0], epl[1], edisp, camera)
    return max(max_eigenvalue(cov_s), max_eigenvalue(cov_e))
