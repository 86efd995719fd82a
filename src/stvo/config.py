"""Configuration for stereo point and line feature extraction."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

POINT_DETECTORS = ("orb", "brisk")
LINE_DETECTORS = ("lsd",)
LINE_MATCHERS = ("bfm", "table")


@dataclass
class StereoConfig:
    """Parameters of the stereo feature extraction pipeline.

    Attributes:
        has_points: Enable the point feature pipeline
        has_lines: Enable the line segment pipeline
        point_detector: Point detector backend ("orb" or "brisk")
        line_detector: Line detector backend ("lsd")
        line_matcher: Line matcher backend ("bfm" or "table")
        lr_in_parallel: Run left/right detection and LR/RL matching concurrently
        best_lr_matches: Require mutual best matches between left and right
        min_ratio_12_p: Points are kept only if best/second-best distance
            ratio exceeds this value
        desc_th_l: Multiplier applied to the MAD of the line descriptor
            distance gap (second-best minus best)
        max_dist_epip: Maximum row offset (pixels) between stereo points
        min_disp: Minimum disparity (pixels), rejects points at infinity
        min_horiz_angle: Minimum absolute line orientation (degrees)
        max_angle_diff: Maximum orientation difference between the left
            and right line (degrees)
        min_line_length: Minimum line length relative to min(width, height)
        line_horiz_th: Minimum |a| of the right line equation (a, b, c)
        line_cov_th: Maximum eigenvalue of the endpoint covariance
    """

    has_points: bool = True
    has_lines: bool = True
    point_detector: str = "orb"
    line_detector: str = "lsd"
    line_matcher: str = "bfm"
    lr_in_parallel: bool = True
    best_lr_matches: bool = True

    # Point features
    min_ratio_12_p: float = 0.1
    max_dist_epip: float = 1.0
    min_disp: float = 1.0

    # Line segment features
    desc_th_l: float = 0.1
    min_horiz_angle: float = 5.0
    max_angle_diff: float = 10.0
    min_line_length: float = 0.025
    line_horiz_th: float = 0.1
    line_cov_th: float = 10.0

    # ORB detector
    orb_n_features: int = 800
    orb_scale_factor: float = 1.2
    orb_n_levels: int = 4

    # BRISK detector
    brisk_threshold: int = 30
    brisk_n_levels: int = 3
    brisk_pattern_scale: float = 1.0

    # LSD detector (OpenCV defaults)
    lsd_refine: int = 1
    lsd_scale: float = 0.8
    lsd_sigma_scale: float = 0.6
    lsd_quant: float = 2.0
    lsd_ang_th: float = 22.5
    lsd_log_eps: float = 0.0
    lsd_density_th: float = 0.7
    lsd_n_bins: int = 1024

    def __post_init__(self) -> None:
        """Validate parameters on construction."""
        self.validate()

    def validate(self) -> None:
        """Check parameter consistency.

        Raises:
            ValueError: If a backend name is unknown or a threshold is invalid
        """
        if self.point_detector not in POINT_DETECTORS:
            raise ValueError(
                f"Unknown point detector '{self.point_detector}', "
                f"expected one of {POINT_DETECTORS}"
            )
        if self.line_detector not in LINE_DETECTORS:
            raise ValueError(
                f"Unknown line detector '{self.line_detector}', "
                f"expected one of {LINE_DETECTORS}"
            )
        if self.line_matcher not in LINE_MATCHERS:
            raise ValueError(
                f"Unknown line matcher '{self.line_matcher}', "
                f"expected one of {LINE_MATCHERS}"
            )

        for name in (
            "min_ratio_12_p",
            "desc_th_l",
            "max_dist_epip",
            "min_horiz_angle",
            "max_angle_diff",
            "line_horiz_th",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

        if not 0.0 <= self.min_line_length < 1.0:
            raise ValueError("min_line_length must be in [0, 1)")
        if self.min_disp <= 0:
            raise ValueError("min_disp must be positive")
        if self.line_cov_th <= 0:
            raise ValueError("line_cov_th must be positive")

    def min_line_length_px(self, width: int, height: int) -> float:
        """Return the minimum line length in pixels for an image size."""
        return self.min_line_length * min(width, height)

    def to_dict(self) -> dict:
        """Return parameters as a plain dictionary."""
        return asdict(self)

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "StereoConfig":
        """Load configuration from a flat YAML mapping.

        Keys missing from the file keep their defaults.

        Args:
            yaml_path: Path to YAML file

        Returns:
            Validated StereoConfig

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the file is not a mapping or has unknown keys
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Error parsing configuration file: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {yaml_path} must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys in {yaml_path}: {unknown}")

        config = cls(**data)
        logger.info(f"Loaded stereo configuration from {yaml_path}")
        return config
