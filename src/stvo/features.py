"""Detections and validated stereo features."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

# Id given to features created outside of the bootstrap extraction
UNASSIGNED_ID = -1


def _empty_descriptors() -> np.ndarray:
    return np.empty((0, 32), dtype=np.uint8)


@dataclass
class KeyLine:
    """A detected 2D line segment.

    Attributes:
        start: (2,) start point (x, y) in pixels
        end: (2,) end point (x, y) in pixels
        angle: Orientation of the segment in radians, as reported by the detector
        length: Segment length in pixels
    """

    start: np.ndarray
    end: np.ndarray
    angle: float
    length: float

    def __post_init__(self) -> None:
        """Ensure endpoints are proper arrays."""
        self.start = np.asarray(self.start, dtype=np.float64).flatten()
        self.end = np.asarray(self.end, dtype=np.float64).flatten()

    @classmethod
    def from_endpoints(cls, start: np.ndarray, end: np.ndarray) -> "KeyLine":
        """Build a keyline, deriving angle and length from its endpoints."""
        start = np.asarray(start, dtype=np.float64).flatten()
        end = np.asarray(end, dtype=np.float64).flatten()
        delta = end - start
        return cls(
            start=start,
            end=end,
            angle=float(np.arctan2(delta[1], delta[0])),
            length=float(np.hypot(delta[0], delta[1])),
        )

    @property
    def midpoint(self) -> np.ndarray:
        return 0.5 * (self.start + self.end)


@dataclass
class PointDetections:
    """Keypoints of one image with row-aligned binary descriptors.

    Attributes:
        points: Nx2 array of keypoint (x, y) coordinates
        descriptors: NxD uint8 array of binary descriptors
    """

    points: np.ndarray = field(default_factory=lambda: np.empty((0, 2), dtype=np.float32))
    descriptors: np.ndarray = field(default_factory=_empty_descriptors)

    def __post_init__(self) -> None:
        self.points = np.asarray(self.points, dtype=np.float32).reshape(-1, 2)
        if self.descriptors is None:
            self.descriptors = _empty_descriptors()
        if len(self.points) != len(self.descriptors):
            raise ValueError(
                f"{len(self.points)} keypoints but {len(self.descriptors)} descriptors"
            )

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class LineDetections:
    """Line segments of one image with row-aligned binary descriptors."""

    lines: list[KeyLine] = field(default_factory=list)
    descriptors: np.ndarray = field(default_factory=_empty_descriptors)

    def __post_init__(self) -> None:
        if self.descriptors is None:
            self.descriptors = _empty_descriptors()
        if len(self.lines) != len(self.descriptors):
            raise ValueError(
                f"{len(self.lines)} lines but {len(self.descriptors)} descriptors"
            )

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class PointFeature:
    """A stereo point validated and triangulated from a left/right match.

    Attributes:
        pl: (2,) pixel coordinates in the left image
        disp: Stereo disparity in pixels
        P: (3,) triangulated point in the left camera frame
        idx: Feature id, UNASSIGNED_ID when not tracked
        inlier: Inlier flag, updated by pose estimation
    """

    pl: np.ndarray
    disp: float
    P: np.ndarray
    idx: int = UNASSIGNED_ID
    inlier: bool = True

    def __post_init__(self) -> None:
        self.pl = np.asarray(self.pl, dtype=np.float64).flatten()
        self.P = np.asarray(self.P, dtype=np.float64).flatten()
        self.disp = float(self.disp)


@dataclass
class LineFeature:
    """A stereo line segment validated and triangulated at both endpoints.

    Attributes:
        spl: (2,) start point in the left image
        sdisp: Disparity at the start point
        sP: (3,) triangulated start point
        epl: (2,) end point in the left image
        edisp: Disparity at the end point
        eP: (3,) triangulated end point
        le: (3,) line equation through spl and epl, with le[0]^2 + le[1]^2 = 1
        angle: Orientation of the left segment (radians)
        idx: Feature id, UNASSIGNED_ID when not tracked
        inlier: Inlier flag, updated by pose estimation
    """

    spl: np.ndarray
    sdisp: float
    sP: np.ndarray
    epl: np.ndarray
    edisp: float
    eP: np.ndarray
    le: np.ndarray
    angle: float
    idx: int = UNASSIGNED_ID
    inlier: bool = True

    def __post_init__(self) -> None:
        self.spl = np.asarray(self.spl, dtype=np.float64).flatten()
        self.epl = np.asarray(self.epl, dtype=np.float64).flatten()
        self.sP = np.asarray(self.sP, dtype=np.float64).flatten()
        self.eP = np.asarray(self.eP, dtype=np.float64).flatten()
        self.le = np.asarray(self.le, dtype=np.float64).flatten()
        self.sdisp = float(self.sdisp)
        self.edisp = float(self.edisp)
        self.angle = float(self.angle)
