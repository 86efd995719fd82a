"""Rectified pinhole stereo camera: calibration loading and back-projection."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np
import yaml

logger = logging.getLogger(__name__)


@dataclass
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole model)."""

    fx: float  # Focal length x (pixels)
    fy: float  # Focal length y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)

    def to_matrix(self) -> np.ndarray:
        """Return 3x3 camera intrinsic matrix K."""
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )


@dataclass
class DistortionCoeffs:
    """Radial-tangential distortion coefficients."""

    k1: float
    k2: float
    p1: float
    p2: float

    def to_array(self) -> np.ndarray:
        """Return distortion coefficients as (4,) array for OpenCV."""
        return np.array([self.k1, self.k2, self.p1, self.p2], dtype=np.float64)


def _read_values(data: dict, key: str, count: int, label: str, path: str) -> list[float]:
    values = data.get(key)
    # Matrices are stored as {rows, cols, data} nodes
    if isinstance(values, dict):
        values = values.get("data")
    if not isinstance(values, list) or len(values) != count:
        raise ValueError(f"Invalid {label} in {path}")
    return [float(v) for v in values]


@dataclass
class _SensorCalibration:
    """Raw calibration of one camera from a EuRoC sensor.yaml."""

    intrinsics: CameraIntrinsics
    distortion: DistortionCoeffs
    T_BS: np.ndarray  # 4x4 sensor to body transform
    resolution: tuple[int, int]  # (width, height)

    @property
    def K(self) -> np.ndarray:
        return self.intrinsics.to_matrix()

    @property
    def D(self) -> np.ndarray:
        return self.distortion.to_array()

    @classmethod
    def load(cls, yaml_path: str) -> _SensorCalibration:
        """Parse a sensor.yaml file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If a required entry is missing or malformed
        """
        path = Path(yaml_path)
        if not path.is_file():
            raise FileNotFoundError(f"Calibration file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Calibration file {yaml_path} must be a mapping")

        width, height = _read_values(data, "resolution", 2, "resolution", yaml_path)
        return cls(
            intrinsics=CameraIntrinsics(
                *_read_values(data, "intrinsics", 4, "intrinsics", yaml_path)
            ),
            distortion=DistortionCoeffs(
                *_read_values(
                    data, "distortion_coefficients", 4, "distortion coefficients", yaml_path
                )
            ),
            T_BS=np.array(
                _read_values(data, "T_BS", 16, "T_BS transform", yaml_path), dtype=np.float64
            ).reshape(4, 4),
            resolution=(int(width), int(height)),
        )


class StereoCamera:
    """Rectified stereo camera used for triangulation of stereo features.

    After rectification both cameras share the intrinsics of the left one
    and are displaced by ``baseline`` along the x axis, so a pixel (u, v)
    with disparity d back-projects in closed form.

    The camera is read-only after construction and can be shared across
    threads.
    """

    def __init__(
        self,
        width: int,
        height: int,
        intrinsics: CameraIntrinsics,
        baseline: float,
    ) -> None:
        """Initialize a rectified stereo camera.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            intrinsics: Rectified left camera intrinsics
            baseline: Distance between the optical centers (meters)

        Raises:
            ValueError: If intrinsics, baseline or image size are undefined
        """
        values = (intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy, baseline)
        if not all(math.isfinite(v) for v in values):
            raise ValueError(f"Camera parameters must be finite: {values}")
        if intrinsics.fx <= 0 or intrinsics.fy <= 0:
            raise ValueError("Focal length must be positive")
        if baseline <= 0:
            raise ValueError("Baseline must be positive")
        if width <= 0 or height <= 0:
            raise ValueError(f"Invalid image size: {width}x{height}")

        self._width = int(width)
        self._height = int(height)
        self._intrinsics = intrinsics
        self._baseline = float(baseline)

        # Only set when built from raw calibration files
        self._rectify_maps: tuple[np.ndarray, ...] | None = None

    @classmethod
    def from_euroc_yaml(cls, cam0_yaml_path: str, cam1_yaml_path: str) -> "StereoCamera":
        """Create a rectified stereo camera from EuRoC calibration files.

        The left camera becomes the reference: the returned intrinsics are
        those of the rectified left view and the baseline is read back from
        the rectified right projection, where P2[0, 3] = -fx * baseline.

        Args:
            cam0_yaml_path: Path to left camera sensor.yaml
            cam1_yaml_path: Path to right camera sensor.yaml

        Returns:
            StereoCamera with the rectified intrinsics and rectification maps

        Raises:
            FileNotFoundError: If calibration files don't exist
            ValueError: If calibration data is invalid
        """
        left = _SensorCalibration.load(cam0_yaml_path)
        right = _SensorCalibration.load(cam1_yaml_path)
        image_size = left.resolution

        # Points in the left camera frame expressed in the right one
        T_right_left = np.linalg.solve(right.T_BS, left.T_BS)

        R1, R2, P1, P2, _Q, _roi1, _roi2 = cv2.stereoRectify(
            cameraMatrix1=left.K,
            distCoeffs1=left.D,
            cameraMatrix2=right.K,
            distCoeffs2=right.D,
            imageSize=image_size,
            R=T_right_left[:3, :3],
            T=T_right_left[:3, 3:4],
            flags=cv2.CALIB_ZERO_DISPARITY,
            alpha=0,
        )

        intrinsics = CameraIntrinsics(
            fx=float(P1[0, 0]), fy=float(P1[1, 1]), cx=float(P1[0, 2]), cy=float(P1[1, 2])
        )
        baseline = float(-P2[0, 3] / P2[0, 0])
        camera = cls(image_size[0], image_size[1], intrinsics, baseline)

        maps: list[np.ndarray] = []
        for sensor, R_rect, P_rect in ((left, R1, P1), (right, R2, P2)):
            maps.extend(
                cv2.initUndistortRectifyMap(
                    sensor.K, sensor.D, R_rect, P_rect, image_size, cv2.CV_32FC1
                )
            )
        camera._rectify_maps = tuple(maps)

        logger.info(
            f"Stereo camera loaded: {image_size[0]}x{image_size[1]}, "
            f"fx={intrinsics.fx:.2f}, baseline={baseline:.4f} m"
        )
        return camera

    def rectify_images(
        self, left: np.ndarray, right: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """Apply undistortion and rectification to a stereo image pair.

        Raises:
            ValueError: If the camera was not built from calibration files
        """
        if self._rectify_maps is None:
            raise ValueError("Camera has no rectification maps; images must be pre-rectified")

        map1_x, map1_y, map2_x, map2_y = self._rectify_maps
        left_rectified = cv2.remap(left, map1_x, map1_y, interpolation=cv2.INTER_LINEAR)
        right_rectified = cv2.remap(right, map2_x, map2_y, interpolation=cv2.INTER_LINEAR)
        return left_rectified, right_rectified

    def back_projection(self, u: float, v: float, disparity: float) -> np.ndarray:
        """Back-project a left pixel with known disparity to 3D.

        Args:
            u: Pixel column in the left image
            v: Pixel row in the left image
            disparity: Horizontal offset u_left - u_right (pixels), > 0

        Returns:
            (3,) point in the left camera frame
        """
        bd = self._baseline / disparity
        return np.array(
            [
                bd * (u - self._intrinsics.cx),
                bd * (v - self._intrinsics.cy),
                bd * self._intrinsics.fx,
            ],
            dtype=np.float64,
        )

    def projection(self, P: np.ndarray) -> np.ndarray:
        """Project a 3D point in the left camera frame to left pixel coordinates."""
        P = np.asarray(P, dtype=np.float64)
        return np.array(
            [
                self._intrinsics.cx + self._intrinsics.fx * P[0] / P[2],
                self._intrinsics.cy + self._intrinsics.fy * P[1] / P[2],
            ],
            dtype=np.float64,
        )

    def projection_with_disparity(self, P: np.ndarray) -> tuple[np.ndarray, float]:
        """Project a 3D point to left pixel coordinates and stereo disparity."""
        P = np.asarray(P, dtype=np.float64)
        disparity = self._intrinsics.fx * self._baseline / P[2]
        return self.projection(P), float(disparity)

    @property
    def intrinsics(self) -> CameraIntrinsics:
        """Return rectified left camera intrinsics."""
        return self._intrinsics

    @property
    def fx(self) -> float:
        return self._intrinsics.fx

    @property
    def fy(self) -> float:
        return self._intrinsics.fy

    @property
    def cx(self) -> float:
        return self._intrinsics.cx

    @property
    def cy(self) -> float:
        return self._intrinsics.cy

    @property
    def baseline(self) -> float:
        """Return baseline distance between cameras in meters."""
        return self._baseline

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def image_size(self) -> tuple[int, int]:
        """Return image size as (width, height)."""
        return (self._width, self._height)
