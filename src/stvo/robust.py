"""Robust statistics of descriptor match distances."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np
from scipy import stats

if TYPE_CHECKING:
    from .matching import CandidateMatch

logger = logging.getLogger(__name__)

# median(|x - median(x)|) * MAD_NORMAL_SCALE estimates sigma for Gaussian data
MAD_NORMAL_SCALE = 1.4826


def scaled_mad(values: np.ndarray) -> float:
    """Median absolute deviation scaled to a Gaussian standard deviation.

    Returns 0.0 for an empty population.
    """
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return 0.0
    return MAD_NORMAL_SCALE * float(stats.median_abs_deviation(values, scale=1.0))


def line_descriptor_mad(matches: Sequence[CandidateMatch]) -> tuple[float, float]:
    """Robust spread of best distances and best-to-second distance gaps.

    Line descriptors are not separated well enough for a fixed ratio
    test, so the acceptance gap is derived from the current population.

    Args:
        matches: Left-to-right k-NN candidates

    Returns:
        Tuple (nn_mad, nn12_mad). Candidates without a second neighbour
        are left out of the gap population.
    """
    best = np.array([m.distance for m in matches], dtype=np.float64)
    gaps = np.array(
        [m.second_distance - m.distance for m in matches if m.second_distance is not None],
        dtype=np.float64,
    )
    nn_mad = scaled_mad(best)
    nn12_mad = scaled_mad(gaps)
    logger.debug(f"Line MAD over {len(matches)} candidates: nn={nn_mad:.3f}, nn12={nn12_mad:.3f}")
    return nn_mad, nn12_mad


def point_descriptor_mad(matches: Sequence[CandidateMatch]) -> tuple[float, float]:
    """Robust spread of best distances and best/second distance ratios.

    Args:
        matches: Left-to-right k-NN candidates

    Returns:
        Tuple (nn_mad, nn12_mad); zero or missing second distances are
        left out of the ratio population.
    """
    best = np.array([m.distance for m in matches], dtype=np.float64)
    ratios = np.array(
        [m.distance / m.second_distance for m in matches if m.second_distance],
        dtype=np.float64,
    )
    return scaled_mad(best), scaled_mad(ratios)
