"""Shared fixtures for stereo feature extraction tests."""

import numpy as np
import pytest

from stvo.camera import CameraIntrinsics, StereoCamera
from stvo.config import StereoConfig
from stvo.features import KeyLine, LineDetections, PointDetections

WIDTH = 640
HEIGHT = 480


class StaticDetector:
    """Detector returning fixed detections for a known left/right image pair."""

    def __init__(self, left, right, detections_l, detections_r):
        self._left = left
        self._right = right
        self._detections = {id(left): detections_l, id(right): detections_r}
        self.calls = 0

    def detect(self, image, min_line_length):
        self.calls += 1
        return self._detections[id(image)]


def flip_bits(descriptor: np.ndarray, bits: list[int]) -> np.ndarray:
    """Return a copy of a binary descriptor with the given bits flipped."""
    unpacked = np.unpackbits(descriptor.copy())
    unpacked[bits] ^= 1
    return np.packbits(unpacked)


def textured_pair(disparity: int, seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    """Random texture in the left image, shifted left by disparity in the right."""
    rng = np.random.default_rng(seed)
    coarse = rng.integers(0, 256, size=(HEIGHT // 8, WIDTH // 8), dtype=np.uint8)
    left = np.kron(coarse, np.ones((8, 8), dtype=np.uint8))
    right = np.zeros_like(left)
    right[:, : WIDTH - disparity] = left[:, disparity:]
    return left, right


@pytest.fixture
def camera() -> StereoCamera:
    """Fixture providing a rectified 640x480 stereo camera."""
    return StereoCamera(
        width=WIDTH,
        height=HEIGHT,
        intrinsics=CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0),
        baseline=0.1,
    )


@pytest.fixture
def config() -> StereoConfig:
    """Fixture providing a configuration with a permissive point ratio."""
    return StereoConfig(min_ratio_12_p=0.01, min_disp=5.0, lr_in_parallel=False)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def blank_pair() -> tuple[np.ndarray, np.ndarray]:
    return np.zeros((HEIGHT, WIDTH), dtype=np.uint8), np.zeros((HEIGHT, WIDTH), dtype=np.uint8)


@pytest.fixture
def square_scene(rng):
    """Four square corners in the left image at disparities 10, 12, 15 and 20.

    Right descriptors are the left ones with 8 bits flipped, so each
    corner's best match is its true correspondence.
    """
    corners_l = np.array(
        [[300.0, 200.0], [340.0, 200.0], [340.0, 240.0], [300.0, 240.0]],
        dtype=np.float32,
    )
    disparities = np.array([10.0, 12.0, 15.0, 20.0], dtype=np.float32)
    corners_r = corners_l.copy()
    corners_r[:, 0] -= disparities

    desc_l = rng.integers(0, 256, size=(4, 32), dtype=np.uint8)
    desc_r = np.stack(
        [flip_bits(d, list(range(8 * i, 8 * i + 8))) for i, d in enumerate(desc_l)]
    )

    left = np.zeros((HEIGHT, WIDTH), dtype=np.uint8)
    left[200:241, 300:341] = 255
    right = np.zeros((HEIGHT, WIDTH), dtype=np.uint8)
    right[200:241, 290:331] = 255

    return {
        "left": left,
        "right": right,
        "points_l": PointDetections(points=corners_l, descriptors=desc_l),
        "points_r": PointDetections(points=corners_r, descriptors=desc_r),
        "disparities": disparities,
    }


@pytest.fixture
def slanted_line_pair():
    """A slanted line seen with disparity 10 and a shorter extent on the right.

    Left segment: (300, 100) -> (320, 300). Right segment lies on the same
    infinite line shifted 10 px left but only spans rows 120..280.
    """
    line_l = KeyLine.from_endpoints((300.0, 100.0), (320.0, 300.0))
    line_r = KeyLine.from_endpoints((292.0, 120.0), (308.0, 280.0))
    return line_l, line_r


def line_detections(lines: list[KeyLine], descriptors: np.ndarray) -> LineDetections:
    return LineDetections(lines=lines, descriptors=descriptors)
