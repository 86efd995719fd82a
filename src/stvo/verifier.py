"""Geometric verification and triangulation of stereo match candidates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

import numpy as np

from .camera import StereoCamera
from .config import StereoConfig
from .features import (
    UNASSIGNED_ID,
    LineDetections,
    LineFeature,
    PointDetections,
    PointFeature,
)
from .geometry import (
    ang_diff,
    intersect_row,
    line_equation,
    line_uncertainty,
    normalized_line_equation,
)
from .matching import StereoCandidates, by_query_idx
from .robust import line_descriptor_mad

logger = logging.getLogger(__name__)

F = TypeVar("F")


class ExtractionMode(Enum):
    """Variant of the stereo extraction.

    INITIAL is used to bootstrap the first frame: features get sequential
    ids and lines skip the uncertainty gate. TRACKING is used for live
    frames: features are left unassigned and uncertain lines are dropped.
    """

    INITIAL = "INITIAL"
    TRACKING = "TRACKING"

    @property
    def assigns_ids(self) -> bool:
        return self is ExtractionMode.INITIAL

    @property
    def gates_uncertainty(self) -> bool:
        return self is ExtractionMode.TRACKING


@dataclass
class Verified(Generic[F]):
    """Accepted features and the left descriptor rows they came from.

    Attributes:
        features: Accepted features in left scan order
        rows: Left detection index of each accepted feature
    """

    features: list[F] = field(default_factory=list)
    rows: list[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)

    def add(self, feature: F, row: int) -> None:
        self.features.append(feature)
        self.rows.append(row)


class StereoVerifier:
    """Accepts or rejects stereo candidates and triangulates the survivors.

    Point candidates pass a mutual best match check, a distance ratio
    test, the epipolar row constraint and a minimum disparity. Line
    candidates are checked against an adaptive descriptor gap threshold,
    length and orientation bounds; the right segment is then extended to
    an infinite line and intersected with the rows of the left endpoints,
    so segments of different extent still yield consistent disparities.
    """

    def __init__(self, camera: StereoCamera, config: StereoConfig | None = None) -> None:
        """Initialize verifier.

        Args:
            camera: Rectified stereo camera used for back-projection
            config: Pipeline configuration. Uses defaults if None.
        """
        self._camera = camera
        self._config = config or StereoConfig()
        self._min_horiz_angle = float(np.radians(self._config.min_horiz_angle))
        self._max_angle_diff = float(np.radians(self._config.max_angle_diff))

    def _next_id(self, accepted: Verified, mode: ExtractionMode) -> int:
        return len(accepted) if mode.assigns_ids else UNASSIGNED_ID

    def verify_points(
        self,
        points_l: PointDetections,
        points_r: PointDetections,
        candidates: StereoCandidates,
        mode: ExtractionMode = ExtractionMode.TRACKING,
    ) -> Verified[PointFeature]:
        """Validate and triangulate point candidates.

        Args:
            points_l: Left detections (query side)
            points_r: Right detections (reference side)
            candidates: Left-to-right candidates, with right-to-left ones
                when mutual checking is enabled
            mode: Extraction variant

        Returns:
            Accepted point features in left scan order
        """
        cfg = self._config
        accepted: Verified[PointFeature] = Verified()

        for match in sorted(candidates.lr, key=by_query_idx):
            if not candidates.is_mutual(match):
                continue

            # A zero or missing second distance gives no ratio to test
            if not match.second_distance:
                continue
            if match.distance / match.second_distance <= cfg.min_ratio_12_p:
                continue

            pl = points_l.points[match.query_idx].astype(np.float64)
            pr = points_r.points[match.train_idx].astype(np.float64)

            # Epipolar constraint: rectified matches share the same row
            if abs(pl[1] - pr[1]) > cfg.max_dist_epip:
                continue

            disp = float(pl[0] - pr[0])
            if disp <= 0 or disp < cfg.min_disp:
                continue

            P = self._camera.back_projection(pl[0], pl[1], disp)
            accepted.add(
                PointFeature(pl=pl, disp=disp, P=P, idx=self._next_id(accepted, mode)),
                match.query_idx,
            )

        logger.debug(f"Accepted {len(accepted)}/{len(candidates)} point candidates ({mode.value})")
        return accepted

    def verify_lines(
        self,
        lines_l: LineDetections,
        lines_r: LineDetections,
        candidates: StereoCandidates,
        min_line_length: float,
        mode: ExtractionMode = ExtractionMode.TRACKING,
    ) -> Verified[LineFeature]:
        """Validate and triangulate line candidates.

        Args:
            lines_l: Left detections (query side)
            lines_r: Right detections (reference side)
            candidates: Left-to-right candidates, with right-to-left ones
                when mutual checking is enabled
            min_line_length: Minimum right segment length in pixels
            mode: Extraction variant

        Returns:
            Accepted line features in left scan order
        """
        cfg = self._config
        accepted: Verified[LineFeature] = Verified()

        _, nn12_mad = line_descriptor_mad(candidates.lr)
        nn12_dist_th = nn12_mad * cfg.desc_th_l

        for match in sorted(candidates.lr, key=by_query_idx):
            if not candidates.is_mutual(match):
                continue
            if match.second_distance is None:
                continue

            line_l = lines_l.lines[match.query_idx]
            line_r = lines_r.lines[match.train_idx]

            if line_r.length <= min_line_length:
                continue
            if match.second_distance - match.distance <= nn12_dist_th:
                continue

            if abs(line_l.angle) < self._min_horiz_angle or abs(line_r.angle) < self._min_horiz_angle:
                continue
            if abs(ang_diff(line_l.angle, line_r.angle)) >= self._max_angle_diff:
                continue

            # Right segment as an infinite line; lines along the rows are ill-conditioned
            le_r = line_equation(line_r.start, line_r.end)
            if abs(le_r[0]) <= cfg.line_horiz_th:
                continue

            spl = line_l.start
            epl = line_l.end
            sdisp = spl[0] - intersect_row(le_r, spl[1])
            edisp = epl[0] - intersect_row(le_r, epl[1])
            if min(sdisp, edisp) <= 0 or min(sdisp, edisp) < cfg.min_disp:
                continue

            if mode.gates_uncertainty:
                max_eig = line_uncertainty(spl, sdisp, epl, edisp, self._camera)
                if not max_eig < cfg.line_cov_th:
                    continue

            sP = self._camera.back_projection(spl[0], spl[1], sdisp)
            eP = self._camera.back_projection(epl[0], epl[1], edisp)
            accepted.add(
                LineFeature(
                    spl=spl,
                    sdisp=sdisp,
                    sP=sP,
                    epl=epl,
                    edisp=edisp,
                    eP=eP,
                    le=normalized_line_equation(spl, epl),
                    angle=line_l.angle,
                    idx=self._next_id(accepted, mode),
                ),
                match.query_idx,
            )

        logger.debug(
            f"Accepted {len(accepted)}/{len(candidates)} line candidates "
            f"({mode.value}, nn12 threshold {nn12_dist_th:.3f})"
        )
        return accepted
