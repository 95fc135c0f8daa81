"""
Relocalization

Recovers a lost camera pose by querying the engine's camera pose database
with the current frame and re-aligning the volume against the best ranked
candidate poses.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from rich.console import Console

from .engine import AlignmentResult, VolumeEngine
from .settings import FusionSettings

console = Console()


@dataclass
class RelocalizationResult:
    """Outcome of one relocalization attempt."""
    success: bool
    pose: np.ndarray
    candidate_index: int
    energy: float
    candidates_tested: int
    delta: Optional[np.ndarray] = None


def select_candidates(
    alignments: Sequence[AlignmentResult],
    min_energy: float,
    max_energy: float
) -> Tuple[int, int]:
    """
    Pick the accepted and the lowest-energy candidates.

    A candidate is accepted when its alignment succeeded and its energy lies
    strictly between min_energy and the best energy seen so far (starting
    at max_energy). Comparisons are strict, so among equal energies the
    first candidate wins. Alignments with a non-finite energy (a diverged
    optimizer) are never picked.

    Returns:
        Tuple of (best_index, smallest_energy_index); best_index is -1 when
        no candidate was accepted, smallest_energy_index is -1 when no
        alignment has a finite energy.
    """
    best_index = -1
    best_energy = max_energy

    smallest_index = -1
    smallest_energy = math.inf

    for index, alignment in enumerate(alignments):
        if not math.isfinite(alignment.energy):
            continue

        if alignment.success and min_energy < alignment.energy < best_energy:
            best_energy = alignment.energy
            best_index = index

        if alignment.energy < smallest_energy:
            smallest_energy = alignment.energy
            smallest_index = index

    return best_index, smallest_index


class Relocalizer:
    """Camera pose finding against the key frame database."""

    def __init__(self, engine: VolumeEngine, settings: FusionSettings):
        self.engine = engine
        self.settings = settings

    def find_pose(self, depth: np.ndarray, color: np.ndarray) -> Optional[RelocalizationResult]:
        """
        Search the pose database for the current frame's pose.

        Args:
            depth: Full resolution float depth in meters
            color: Colour resampled to depth resolution

        Returns:
            RelocalizationResult, or None when the database offered no usable
            candidates or every tested alignment diverged
        """
        settings = self.settings

        candidates = self.engine.query_pose_database(depth, color)
        if candidates is None or len(candidates) == 0:
            return None

        if candidates.min_distance >= settings.pose_finder_distance_reject:
            console.print(
                f"[dim]Pose database match too distant ({candidates.min_distance:.3f})[/dim]"
            )
            return None

        # The observed cloud is shared by every candidate
        smoothed = self.engine.smooth_depth(
            depth,
            settings.smoothing_kernel_width,
            settings.smoothing_distance_threshold,
        )
        observed = self.engine.depth_to_point_cloud(smoothed)

        max_tests = min(settings.max_pose_finder_tests, len(candidates))
        alignments: List[AlignmentResult] = []
        for candidate_pose in candidates.poses[:max_tests]:
            reference = self.engine.raycast_point_cloud(candidate_pose, depth.shape)
            alignments.append(self.engine.align_point_clouds(
                reference,
                observed,
                settings.align_iteration_count,
                candidate_pose.copy(),
                compute_delta=True,
            ))

        best_index, smallest_index = select_candidates(
            alignments,
            settings.min_align_energy_for_success,
            settings.max_align_energy_for_success,
        )

        if best_index > -1:
            best = alignments[best_index]
            return RelocalizationResult(
                success=True,
                pose=best.pose,
                candidate_index=best_index,
                energy=best.energy,
                candidates_tested=max_tests,
                delta=best.delta,
            )

        if smallest_index < 0:
            console.print("[dim]Every pose candidate alignment diverged[/dim]")
            return None

        # Nothing passed; keep the closest database pose for continuity
        return RelocalizationResult(
            success=False,
            pose=np.array(candidates.poses[smallest_index], dtype=float),
            candidate_index=smallest_index,
            energy=alignments[smallest_index].energy,
            candidates_tested=max_tests,
        )
