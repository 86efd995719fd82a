"""Point and line feature detection for stereo image pairs."""

from __future__ import annotations

import logging
from typing import Protocol

import cv2
import numpy as np

from .config import StereoConfig
from .features import KeyLine, LineDetections, PointDetections
from .parallel import run_pair

logger = logging.getLogger(__name__)

# Patch size of the ORB descriptor computed at line midpoints
LINE_PATCH_SIZE = 31


class Detector(Protocol):
    """Detects points and lines of one image with binary descriptors."""

    def detect(
        self, image: np.ndarray, min_line_length: float
    ) -> tuple[PointDetections, LineDetections]: ...


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


class FeatureDetector:
    """Point and line detector with configurable OpenCV backends.

    Points are detected with ORB or BRISK. Line segments are detected
    with LSD and described by an ORB descriptor of the patch around the
    segment midpoint, oriented along the segment, so both feature classes
    live in the same Hamming distance space.

    OpenCV detector objects are created per call, which keeps a single
    FeatureDetector safe to use from the left and right detection threads.
    """

    def __init__(self, config: StereoConfig | None = None) -> None:
        """Initialize detector.

        Args:
            config: Pipeline configuration. Uses defaults if None.
        """
        self._config = config or StereoConfig()
        cfg = self._config
        logger.info(
            f"Feature detector initialized: "
            f"points={cfg.point_detector if cfg.has_points else None}, "
            f"lines={cfg.line_detector if cfg.has_lines else None}"
        )

    def detect(
        self, image: np.ndarray, min_line_length: float
    ) -> tuple[PointDetections, LineDetections]:
        """Detect point and line features in an image.

        Args:
            image: Grayscale (or BGR) uint8 image
            min_line_length: Lines not longer than this (pixels) are dropped

        Returns:
            Tuple of (points, lines); a disabled feature class is empty
        """
        gray = _to_gray(image)
        points = self.detect_points(gray) if self._config.has_points else PointDetections()
        lines = self.detect_lines(gray, min_line_length) if self._config.has_lines else LineDetections()
        return points, lines

    def _create_point_detector(self) -> cv2.Feature2D:
        cfg = self._config
        if cfg.point_detector == "brisk":
            return cv2.BRISK_create(
                thresh=cfg.brisk_threshold,
                octaves=cfg.brisk_n_levels,
                patternScale=cfg.brisk_pattern_scale,
            )
        return cv2.ORB_create(
            nfeatures=cfg.orb_n_features,
            scaleFactor=cfg.orb_scale_factor,
            nlevels=cfg.orb_n_levels,
        )

    def detect_points(self, gray: np.ndarray) -> PointDetections:
        """Detect and describe keypoints."""
        keypoints, descriptors = self._create_point_detector().detectAndCompute(gray, None)

        if keypoints is None or len(keypoints) == 0 or descriptors is None:
            return PointDetections()

        points = np.array([kp.pt for kp in keypoints], dtype=np.float32)
        return PointDetections(points=points, descriptors=descriptors)

    def _create_line_detector(self) -> cv2.LineSegmentDetector:
        cfg = self._config
        return cv2.createLineSegmentDetector(
            cfg.lsd_refine,
            cfg.lsd_scale,
            cfg.lsd_sigma_scale,
            cfg.lsd_quant,
            cfg.lsd_ang_th,
            cfg.lsd_log_eps,
            cfg.lsd_density_th,
            cfg.lsd_n_bins,
        )

    def detect_lines(self, gray: np.ndarray, min_line_length: float) -> LineDetections:
        """Detect line segments longer than min_line_length and describe them."""
        segments = self._create_line_detector().detect(gray)[0]
        if segments is None:
            return LineDetections()

        lines = []
        for sx, sy, ex, ey in segments.reshape(-1, 4):
            line = KeyLine.from_endpoints((sx, sy), (ex, ey))
            if line.length > min_line_length:
                lines.append(line)

        return self.describe_lines(gray, lines)

    def describe_lines(self, gray: np.ndarray, lines: list[KeyLine]) -> LineDetections:
        """Compute binary descriptors of line segments.

        Segments whose midpoint patch leaves the image are dropped.
        """
        if not lines:
            return LineDetections()

        keypoints = []
        for i, line in enumerate(lines):
            mx, my = line.midpoint
            angle_deg = float(np.degrees(line.angle)) % 360.0
            size = float(max(LINE_PATCH_SIZE, min(line.length, 4 * LINE_PATCH_SIZE)))
            keypoints.append(cv2.KeyPoint(float(mx), float(my), size, angle_deg, 0.0, 0, i))

        extractor = cv2.ORB_create(edgeThreshold=LINE_PATCH_SIZE, patchSize=LINE_PATCH_SIZE)
        kept, descriptors = extractor.compute(gray, keypoints)

        if kept is None or len(kept) == 0 or descriptors is None:
            return LineDetections()

        # class_id carries the index of the source segment through border filtering
        return LineDetections(
            lines=[lines[kp.class_id] for kp in kept],
            descriptors=descriptors,
        )


def detect_stereo(
    detector: Detector,
    left: np.ndarray,
    right: np.ndarray,
    min_line_length: float,
    parallel: bool,
) -> tuple[tuple[PointDetections, LineDetections], tuple[PointDetections, LineDetections]]:
    """Detect features in both images of a stereo pair.

    Args:
        detector: Detector backend
        left: Left rectified image
        right: Right rectified image
        min_line_length: Minimum line length in pixels
        parallel: Detect left and right concurrently

    Returns:
        Tuple of ((points_l, lines_l), (points_r, lines_r))
    """
    detections_l, detections_r = run_pair(
        lambda: detector.detect(left, min_line_length),
        lambda: detector.detect(right, min_line_length),
        parallel,
    )
    logger.debug(
        f"Detected {len(detections_l[0])}/{len(detections_r[0])} points, "
        f"{len(detections_l[1])}/{len(detections_r[1])} lines (left/right)"
    )
    return detections_l, detections_r
