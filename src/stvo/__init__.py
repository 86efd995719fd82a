"""stvo - stereo point and line feature extraction for visual odometry."""

__version__ = "0.1.0"

from .camera import CameraIntrinsics, DistortionCoeffs, StereoCamera
from .config import StereoConfig
from .detection import FeatureDetector, detect_stereo
from .features import (
    UNASSIGNED_ID,
    KeyLine,
    LineDetections,
    LineFeature,
    PointDetections,
    PointFeature,
)
from .matching import (
    BruteForceMatcher,
    CandidateMatch,
    HammingTableMatcher,
    StereoCandidates,
    make_matcher,
    match_stereo,
)
from .robust import line_descriptor_mad, point_descriptor_mad
from .stereo_frame import StereoFrame
from .verifier import ExtractionMode, StereoVerifier

__all__ = [
    "__version__",
    # Camera
    "StereoCamera",
    "CameraIntrinsics",
    "DistortionCoeffs",
    # Configuration
    "StereoConfig",
    # Detection
    "FeatureDetector",
    "detect_stereo",
    # Features
    "KeyLine",
    "PointDetections",
    "LineDetections",
    "PointFeature",
    "LineFeature",
    "UNASSIGNED_ID",
    # Matching
    "CandidateMatch",
    "StereoCandidates",
    "BruteForceMatcher",
    "HammingTableMatcher",
    "make_matcher",
    "match_stereo",
    # Robust statistics
    "line_descriptor_mad",
    "point_descriptor_mad",
    # Verification
    "StereoVerifier",
    "ExtractionMode",
    # Frame
    "StereoFrame",
]
