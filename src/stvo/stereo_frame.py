"""Stereo frame: extraction of validated point and line features."""

from __future__ import annotations

import logging

import cv2
import numpy as np

from .camera import StereoCamera
from .config import StereoConfig
from .detection import Detector, FeatureDetector, detect_stereo
from .features import LineDetections, LineFeature, PointDetections, PointFeature
from .matching import BruteForceMatcher, KnnMatcher, make_matcher, match_stereo
from .verifier import ExtractionMode, StereoVerifier

logger = logging.getLogger(__name__)


def _empty_like(descriptors: np.ndarray) -> np.ndarray:
    return descriptors[:0].copy()


class StereoFrame:
    """A rectified stereo pair and the stereo features extracted from it.

    Each extraction call detects features in both images, matches left
    descriptors against right ones, verifies the candidates and replaces
    the frame's feature collections:

    - stereo_pt: accepted PointFeature list
    - stereo_ls: accepted LineFeature list
    - pdesc_l / ldesc_l: left descriptors, one row per accepted feature

    Example:
        >>> frame = StereoFrame(left, right, 0, camera)
        >>> frame.extract_initial_stereo_features()
        >>> print(f"{len(frame.stereo_pt)} points, {len(frame.stereo_ls)} lines")
    """

    def __init__(
        self,
        img_l: np.ndarray,
        img_r: np.ndarray,
        idx: int,
        camera: StereoCamera,
        config: StereoConfig | None = None,
        img_s: np.ndarray | None = None,
        detector: Detector | None = None,
        point_matcher: KnnMatcher | None = None,
        line_matcher: KnnMatcher | None = None,
    ) -> None:
        """Initialize stereo frame.

        Args:
            img_l: Left rectified image
            img_r: Right rectified image
            idx: Frame index
            camera: Shared, read-only stereo camera
            config: Pipeline configuration. Uses defaults if None.
            img_s: Optional auxiliary image of the same size
            detector: Feature detector. Built from config if None.
            point_matcher: Point matcher. OpenCV brute force if None.
            line_matcher: Line matcher. Built from config.line_matcher if None.

        Raises:
            ValueError: If the camera is undefined or image sizes disagree
        """
        self._validate_inputs(img_l, img_r, img_s, camera)

        self.img_l = img_l
        self.img_r = img_r
        self.img_s = img_s
        self.frame_idx = idx
        self.cam = camera

        self._config = config or StereoConfig()
        self._detector = detector or FeatureDetector(self._config)
        self._point_matcher = point_matcher or BruteForceMatcher()
        self._line_matcher = line_matcher or make_matcher(self._config.line_matcher)
        self._verifier = StereoVerifier(camera, self._config)

        self.stereo_pt: list[PointFeature] = []
        self.stereo_ls: list[LineFeature] = []
        self.pdesc_l = np.empty((0, 32), dtype=np.uint8)
        self.ldesc_l = np.empty((0, 32), dtype=np.uint8)

    @staticmethod
    def _validate_inputs(
        img_l: np.ndarray,
        img_r: np.ndarray,
        img_s: np.ndarray | None,
        camera: StereoCamera,
    ) -> None:
        """Reject malformed cameras and mismatched images before any processing."""
        if camera is None:
            raise ValueError("A stereo camera is required")
        values = (camera.fx, camera.cx, camera.cy, camera.baseline)
        if not np.all(np.isfinite(values)) or camera.fx <= 0 or camera.baseline <= 0:
            raise ValueError(f"Undefined camera intrinsics: {values}")

        if img_l is None or img_r is None or img_l.size == 0 or img_r.size == 0:
            raise ValueError("Left and right images must be non-empty")
        if img_l.shape != img_r.shape:
            raise ValueError(
                f"Left and right images differ in size: {img_l.shape} vs {img_r.shape}"
            )
        if img_s is not None and img_s.shape[:2] != img_l.shape[:2]:
            raise ValueError(
                f"Auxiliary image differs in size: {img_s.shape} vs {img_l.shape}"
            )

        height, width = img_l.shape[:2]
        if (width, height) != camera.image_size:
            raise ValueError(
                f"Image size {width}x{height} does not match camera "
                f"{camera.width}x{camera.height}"
            )

    @property
    def config(self) -> StereoConfig:
        return self._config

    def extract_initial_stereo_features(self) -> None:
        """Extract stereo features of the first frame.

        Features get sequential ids and lines are not gated on uncertainty.
        """
        self.extract_stereo_features(ExtractionMode.INITIAL)

    def extract_stereo_features(self, mode: ExtractionMode = ExtractionMode.TRACKING) -> None:
        """Detect, match and verify stereo features, replacing previous results.

        Args:
            mode: Extraction variant, TRACKING for live frames
        """
        cfg = self._config
        min_line_length = cfg.min_line_length_px(self.cam.width, self.cam.height)

        (points_l, lines_l), (points_r, lines_r) = detect_stereo(
            self._detector, self.img_l, self.img_r, min_line_length, cfg.lr_in_parallel
        )

        if cfg.has_points:
            self._extract_points(points_l, points_r, mode)
        if cfg.has_lines:
            self._extract_lines(lines_l, lines_r, min_line_length, mode)

        logger.debug(
            f"Frame {self.frame_idx}: {len(self.stereo_pt)} points, "
            f"{len(self.stereo_ls)} lines ({mode.value})"
        )

    def _extract_points(
        self,
        points_l: PointDetections,
        points_r: PointDetections,
        mode: ExtractionMode,
    ) -> None:
        cfg = self._config
        self.stereo_pt = []
        self.pdesc_l = _empty_like(points_l.descriptors)
        if len(points_l) == 0 or len(points_r) == 0:
            return

        candidates = match_stereo(
            self._point_matcher,
            points_l.descriptors,
            points_r.descriptors,
            bidirectional=cfg.best_lr_matches,
            parallel=cfg.lr_in_parallel,
        )
        verified = self._verifier.verify_points(points_l, points_r, candidates, mode)

        self.stereo_pt = verified.features
        self.pdesc_l = points_l.descriptors[np.asarray(verified.rows, dtype=np.intp)]

    def _extract_lines(
        self,
        lines_l: LineDetections,
        lines_r: LineDetections,
        min_line_length: float,
        mode: ExtractionMode,
    ) -> None:
        cfg = self._config
        self.stereo_ls = []
        self.ldesc_l = _empty_like(lines_l.descriptors)
        if len(lines_l) == 0 or len(lines_r) == 0:
            return

        candidates = match_stereo(
            self._line_matcher,
            lines_l.descriptors,
            lines_r.descriptors,
            bidirectional=cfg.best_lr_matches,
            parallel=cfg.lr_in_parallel,
        )
        verified = self._verifier.verify_lines(
            lines_l, lines_r, candidates, min_line_length, mode
        )

        self.stereo_ls = verified.features
        self.ldesc_l = lines_l.descriptors[np.asarray(verified.rows, dtype=np.intp)]

    def plot_stereo_frame(self) -> np.ndarray:
        """Draw inlier points and lines over a BGR copy of the left image."""
        img = self.img_l.copy()
        if img.ndim == 2:
            img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)

        point_color = (0, 200, 0)
        line_color = (0, 0, 200)
        for point in self.stereo_pt:
            if point.inlier:
                center = (int(point.pl[0]), int(point.pl[1]))
                cv2.circle(img, center, 3, point_color, 1)

        for line in self.stereo_ls:
            if line.inlier:
                p = (int(line.spl[0]), int(line.spl[1]))
                q = (int(line.epl[0]), int(line.epl[1]))
                cv2.line(img, p, q, line_color, 1)

        return img
