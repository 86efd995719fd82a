"""k-NN candidate matching of binary descriptors between stereo images."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import cv2
import numpy as np
from scipy.spatial import distance

from .parallel import run_pair

logger = logging.getLogger(__name__)


@dataclass
class CandidateMatch:
    """Two nearest reference descriptors of one query descriptor.

    Attributes:
        query_idx: Row of the query descriptor
        train_idx: Row of the best reference descriptor
        distance: Hamming distance to the best reference descriptor
        second_distance: Distance to the second-best one, None if the
            reference set has a single row
    """

    query_idx: int
    train_idx: int
    distance: float
    second_distance: float | None = None


def by_query_idx(match: CandidateMatch) -> int:
    """Sort key ordering candidates by query row."""
    return match.query_idx


class KnnMatcher(Protocol):
    """Descriptor matcher returning the two nearest neighbours per query."""

    def knn_match(
        self, query: np.ndarray, reference: np.ndarray, k: int = 2
    ) -> list[CandidateMatch]: ...


def _is_empty(descriptors: np.ndarray | None) -> bool:
    return descriptors is None or len(descriptors) == 0


class BruteForceMatcher:
    """Brute-force Hamming matcher backed by OpenCV."""

    def __init__(self) -> None:
        # knnMatch is incompatible with crossCheck; mutual checks are done by the verifier
        self._bf_matcher = cv2.BFMatcher(cv2.NORM_HAMMING, crossCheck=False)

    def knn_match(
        self, query: np.ndarray, reference: np.ndarray, k: int = 2
    ) -> list[CandidateMatch]:
        """Match every query row against the reference rows.

        Args:
            query: NxD uint8 query descriptors
            reference: MxD uint8 reference descriptors
            k: Number of neighbours, at most 2 are reported

        Returns:
            One CandidateMatch per query row, sorted by query index
        """
        if _is_empty(query) or _is_empty(reference):
            return []

        knn_matches = self._bf_matcher.knnMatch(query, reference, k=k)

        candidates = []
        for match_pair in knn_matches:
            if len(match_pair) == 0:
                continue
            best = match_pair[0]
            second = match_pair[1].distance if len(match_pair) > 1 else None
            candidates.append(
                CandidateMatch(
                    query_idx=best.queryIdx,
                    train_idx=best.trainIdx,
                    distance=float(best.distance),
                    second_distance=None if second is None else float(second),
                )
            )
        candidates.sort(key=by_query_idx)
        return candidates


class HammingTableMatcher:
    """Exact Hamming matcher over the full query/reference distance table.

    Works in the same distance space as BruteForceMatcher; ties are
    resolved towards the lower reference index.
    """

    def knn_match(
        self, query: np.ndarray, reference: np.ndarray, k: int = 2
    ) -> list[CandidateMatch]:
        """Match every query row against the reference rows.

        Args:
            query: NxD uint8 query descriptors
            reference: MxD uint8 reference descriptors
            k: Number of neighbours, at most 2 are reported

        Returns:
            One CandidateMatch per query row, sorted by query index
        """
        if _is_empty(query) or _is_empty(reference):
            return []

        query_bits = np.unpackbits(np.asarray(query, dtype=np.uint8), axis=1).astype(bool)
        reference_bits = np.unpackbits(np.asarray(reference, dtype=np.uint8), axis=1).astype(bool)

        # cdist "hamming" is the fraction of differing bits
        table = distance.cdist(query_bits, reference_bits, metric="hamming")
        table = np.rint(table * query_bits.shape[1])

        order = np.argsort(table, axis=1, kind="stable")[:, : min(k, 2)]

        candidates = []
        for q, neighbours in enumerate(order):
            second = float(table[q, neighbours[1]]) if len(neighbours) > 1 else None
            candidates.append(
                CandidateMatch(
                    query_idx=q,
                    train_idx=int(neighbours[0]),
                    distance=float(table[q, neighbours[0]]),
                    second_distance=second,
                )
            )
        return candidates


def make_matcher(name: str) -> KnnMatcher:
    """Return the matcher backend registered under name.

    Raises:
        ValueError: If the backend is unknown
    """
    if name == "bfm":
        return BruteForceMatcher()
    if name == "table":
        return HammingTableMatcher()
    raise ValueError(f"Unknown matcher backend '{name}'")


@dataclass
class StereoCandidates:
    """Left-to-right candidates and, for mutual checks, right-to-left ones.

    Attributes:
        lr: Candidates of left descriptors against right ones
        rl: Candidates of right descriptors against left ones, or None
            when matching is one-directional
    """

    lr: list[CandidateMatch]
    rl: list[CandidateMatch] | None = None

    def __len__(self) -> int:
        return len(self.lr)

    @property
    def bidirectional(self) -> bool:
        return self.rl is not None

    def is_mutual(self, match: CandidateMatch) -> bool:
        """Check that the right feature picks the left one back.

        Always True for one-directional candidates.
        """
        if self.rl is None:
            return True
        if match.train_idx >= len(self.rl):
            return False
        reverse = self.rl[match.train_idx]
        return reverse.query_idx == match.train_idx and reverse.train_idx == match.query_idx


def match_stereo(
    matcher: KnnMatcher,
    desc_l: np.ndarray,
    desc_r: np.ndarray,
    bidirectional: bool,
    parallel: bool,
) -> StereoCandidates:
    """Compute stereo match candidates between left and right descriptors.

    Args:
        matcher: k-NN matcher backend
        desc_l: Left image descriptors
        desc_r: Right image descriptors
        bidirectional: Also compute right-to-left candidates
        parallel: Run LR and RL matching concurrently

    Returns:
        StereoCandidates, both lists sorted by query index
    """
    if not bidirectional:
        return StereoCandidates(lr=matcher.knn_match(desc_l, desc_r, k=2))

    lr, rl = run_pair(
        lambda: matcher.knn_match(desc_l, desc_r, k=2),
        lambda: matcher.knn_match(desc_r, desc_l, k=2),
        parallel,
    )
    logger.debug(f"Stereo candidates: {len(lr)} LR, {len(rl)} RL")
    return StereoCandidates(lr=lr, rl=rl)
