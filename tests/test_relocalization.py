"""Tests for pose database relocalization."""

import math

import numpy as np

from reconstruction.engine import AlignmentResult, MatchCandidates
from reconstruction.relocalization import Relocalizer, select_candidates
from reconstruction.settings import FusionSettings
from utils.matrix import make_transform


def _alignment(energy, success=True):
    return AlignmentResult(success=success, pose=np.eye(4), energy=energy)


def _depth_and_color():
    return np.ones((8, 8), dtype=np.float32), np.zeros((8, 8, 4), dtype=np.uint8)


class TestSelectCandidates:
    """Tests for candidate ranking."""

    def test_first_of_equal_energies_wins(self):
        alignments = [_alignment(e) for e in (0.6, 0.4, 0.4, 0.9)]

        best, smallest = select_candidates(alignments, 0.1, 0.5)

        assert best == 1
        assert smallest == 1

    def test_energy_band_is_exclusive(self):
        alignments = [_alignment(0.1), _alignment(0.5)]

        best, smallest = select_candidates(alignments, 0.1, 0.5)

        assert best == -1
        assert smallest == 0

    def test_failed_alignment_not_accepted(self):
        alignments = [_alignment(0.2, success=False), _alignment(0.3)]

        best, smallest = select_candidates(alignments, 0.1, 0.5)

        assert best == 1
        assert smallest == 0

    def test_empty(self):
        assert select_candidates([], 0.0, 1.0) == (-1, -1)

    def test_non_finite_energies_never_picked(self):
        alignments = [_alignment(math.nan), _alignment(0.3, success=False), _alignment(math.inf)]

        assert select_candidates(alignments, 0.1, 0.5) == (-1, 1)

    def test_all_diverged(self):
        alignments = [_alignment(math.nan), _alignment(math.inf)]

        assert select_candidates(alignments, 0.0, 1.0) == (-1, -1)


class TestRelocalizer:
    """Tests for the pose finding procedure."""

    def test_no_candidates(self, engine, settings):
        relocalizer = Relocalizer(engine, settings)

        engine.candidates = None
        assert relocalizer.find_pose(*_depth_and_color()) is None

        engine.candidates = MatchCandidates()
        assert relocalizer.find_pose(*_depth_and_color()) is None
        assert engine.count("align_point_clouds") == 0

    def test_distant_match_rejected(self, engine, settings):
        engine.candidates = MatchCandidates(poses=[np.eye(4)], min_distance=settings.pose_finder_distance_reject)

        assert Relocalizer(engine, settings).find_pose(*_depth_and_color()) is None
        assert engine.count("align_point_clouds") == 0

    def test_tests_limited_candidates(self, engine):
        settings = FusionSettings(max_pose_finder_tests=2)
        engine.candidates = MatchCandidates(poses=[np.eye(4)] * 4, min_distance=0.1)

        result = Relocalizer(engine, settings).find_pose(*_depth_and_color())

        assert result.candidates_tested == 2
        assert engine.count("align_point_clouds") == 2
        assert engine.count("raycast_point_cloud") == 2
        assert engine.count("depth_to_point_cloud") == 1

    def test_selects_first_best_candidate(self, engine):
        settings = FusionSettings(
            min_align_energy_for_success=0.1,
            max_align_energy_for_success=0.5,
            max_pose_finder_tests=4,
        )
        poses = [make_transform(translation=(float(i), 0.0, 0.0)) for i in range(4)]
        engine.candidates = MatchCandidates(poses=poses, min_distance=0.1)
        engine.align_results = [(True, None, e) for e in (0.6, 0.4, 0.4, 0.9)]

        result = Relocalizer(engine, settings).find_pose(*_depth_and_color())

        assert result.success
        assert result.candidate_index == 1
        assert result.energy == 0.4
        assert result.delta is not None
        np.testing.assert_array_almost_equal(result.pose, poses[1])

    def test_fallback_to_lowest_energy_pose(self, engine, settings):
        poses = [make_transform(translation=(float(i), 0.0, 0.0)) for i in range(3)]
        engine.candidates = MatchCandidates(poses=poses, min_distance=0.1)
        aligned_elsewhere = make_transform(translation=(9.0, 9.0, 9.0))
        engine.align_results = [
            (False, aligned_elsewhere, 0.03),
            (False, aligned_elsewhere, 0.01),
            (True, aligned_elsewhere, 0.02),
        ]

        result = Relocalizer(engine, settings).find_pose(*_depth_and_color())

        assert not result.success
        assert result.candidate_index == 1
        # The database pose is kept, not the failed alignment's pose
        np.testing.assert_array_almost_equal(result.pose, poses[1])

    def test_diverged_alignments_adopt_no_pose(self, engine):
        """When every tested alignment diverged no untested database pose is adopted."""
        settings = FusionSettings(max_pose_finder_tests=2)
        poses = [make_transform(translation=(float(i), 0.0, 0.0)) for i in range(4)]
        engine.candidates = MatchCandidates(poses=poses, min_distance=0.1)
        engine.align_results = [(True, None, math.nan), (False, None, math.nan)]

        result = Relocalizer(engine, settings).find_pose(*_depth_and_color())

        assert result is None
        assert engine.count("align_point_clouds") == 2
