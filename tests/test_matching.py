"""Tests for k-NN candidate matching."""

import numpy as np
import pytest

from conftest import flip_bits
from stvo.matching import (
    BruteForceMatcher,
    CandidateMatch,
    HammingTableMatcher,
    StereoCandidates,
    make_matcher,
    match_stereo,
)


@pytest.fixture(params=["bfm", "table"])
def matcher(request):
    """Fixture providing each matcher backend."""
    return make_matcher(request.param)


@pytest.fixture
def paired_descriptors(rng):
    """Ten random descriptors and noisy copies of them in reverse order."""
    desc_l = rng.integers(0, 256, size=(10, 32), dtype=np.uint8)
    desc_r = np.stack([flip_bits(d, [i, 100 + i, 200 + i]) for i, d in enumerate(desc_l)])
    return desc_l, desc_r[::-1].copy()


class TestKnnMatch:
    """Test suite shared by both matcher backends."""

    def test_finds_true_correspondences(self, matcher, paired_descriptors):
        """Test that each query finds its noisy copy with distance 3."""
        desc_l, desc_r = paired_descriptors
        candidates = matcher.knn_match(desc_l, desc_r, k=2)

        assert [c.query_idx for c in candidates] == list(range(10))
        assert [c.train_idx for c in candidates] == list(range(9, -1, -1))
        assert all(c.distance == 3.0 for c in candidates)
        assert all(c.second_distance > 3.0 for c in candidates)

    def test_empty_inputs(self, matcher, paired_descriptors):
        """Test that empty descriptor sets give no candidates."""
        desc_l, _ = paired_descriptors
        empty = np.empty((0, 32), dtype=np.uint8)
        assert matcher.knn_match(empty, desc_l) == []
        assert matcher.knn_match(desc_l, empty) == []

    def test_single_reference(self, matcher, paired_descriptors):
        """Test that a single reference row gives no second distance."""
        desc_l, desc_r = paired_descriptors
        candidates = matcher.knn_match(desc_l, desc_r[:1])
        assert len(candidates) == 10
        assert all(c.train_idx == 0 for c in candidates)
        assert all(c.second_distance is None for c in candidates)

    def test_backends_agree(self, rng):
        """Test that both backends report the same neighbour distances."""
        query = rng.integers(0, 256, size=(30, 32), dtype=np.uint8)
        reference = rng.integers(0, 256, size=(25, 32), dtype=np.uint8)

        bf = BruteForceMatcher().knn_match(query, reference)
        table = HammingTableMatcher().knn_match(query, reference)

        assert [c.query_idx for c in bf] == [c.query_idx for c in table]
        assert [c.distance for c in bf] == [c.distance for c in table]
        assert [c.second_distance for c in bf] == [c.second_distance for c in table]

    def test_unknown_backend(self):
        """Test that an unknown backend name is rejected."""
        with pytest.raises(ValueError, match="Unknown matcher backend"):
            make_matcher("flann")


class TestMatchStereo:
    """Test suite for one- and two-directional stereo matching."""

    def test_one_directional(self, paired_descriptors):
        """Test that one-directional matching has no reverse candidates."""
        desc_l, desc_r = paired_descriptors
        candidates = match_stereo(BruteForceMatcher(), desc_l, desc_r, False, False)
        assert not candidates.bidirectional
        assert candidates.rl is None
        assert len(candidates) == 10
        assert all(candidates.is_mutual(c) for c in candidates.lr)

    @pytest.mark.parametrize("parallel", [False, True])
    def test_bidirectional(self, paired_descriptors, parallel):
        """Test that LR and RL candidates are computed and mutual."""
        desc_l, desc_r = paired_descriptors
        candidates = match_stereo(BruteForceMatcher(), desc_l, desc_r, True, parallel)
        assert candidates.bidirectional
        assert len(candidates.rl) == 10
        assert all(candidates.is_mutual(c) for c in candidates.lr)

    def test_parallel_matches_sequential(self, rng):
        """Test that concurrent matching gives identical candidates."""
        desc_l = rng.integers(0, 256, size=(50, 32), dtype=np.uint8)
        desc_r = rng.integers(0, 256, size=(60, 32), dtype=np.uint8)
        sequential = match_stereo(BruteForceMatcher(), desc_l, desc_r, True, False)
        parallel = match_stereo(BruteForceMatcher(), desc_l, desc_r, True, True)
        assert sequential == parallel


class TestMutualCheck:
    """Test suite for StereoCandidates.is_mutual."""

    def test_broken_reverse_link(self):
        """Test that a right feature preferring another left one fails the check."""
        lr = [
            CandidateMatch(0, 1, 5.0, 40.0),
            CandidateMatch(1, 1, 9.0, 40.0),
        ]
        rl = [
            CandidateMatch(0, 0, 30.0, 45.0),
            CandidateMatch(1, 1, 9.0, 5.0),
        ]
        candidates = StereoCandidates(lr=lr, rl=rl)
        assert not candidates.is_mutual(lr[0])
        assert candidates.is_mutual(lr[1])

    def test_reverse_index_out_of_range(self):
        """Test that a train index without reverse candidate fails the check."""
        candidates = StereoCandidates(
            lr=[CandidateMatch(0, 3, 5.0, 40.0)],
            rl=[CandidateMatch(0, 0, 5.0, 40.0)],
        )
        assert not candidates.is_mutual(candidates.lr[0])
