"""
Camera Tracking

Per-frame pose estimation against the reconstruction volume: coarse point
cloud alignment on a downsampled depth image, a plausibility gate on the
resulting motion, failure bookkeeping, and relocalization when tracking is
lost.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

import numpy as np
from rich.console import Console

from utils.matrix import check_transform_change
from .engine import AlignmentResult, VolumeEngine
from .pyramid import downsample_depth, upsample_nearest
from .relocalization import RelocalizationResult, Relocalizer
from .settings import FusionSettings

console = Console()


class TrackingState(str, Enum):
    TRACKING = "tracking"
    LOST = "lost"


class TrackingPhase(str, Enum):
    """Tracking state refined by the counters."""
    COLD = "cold"              # no frame tracked yet
    TRACKING = "tracking"
    RECOVERING = "recovering"  # tracked again, integration not yet resumed
    LOST = "lost"


@dataclass
class TrackingStatus:
    """Success/failure counters of the tracker."""
    successful_frames: int = 0
    error_count: int = 0
    failed: bool = False
    # Set on failure, cleared only when integration resumes
    has_failed_previously: bool = False

    def record_success(self) -> None:
        self.failed = False
        self.error_count = 0
        self.successful_frames += 1

    def record_failure(self) -> None:
        self.failed = True
        self.has_failed_previously = True
        self.error_count += 1
        self.successful_frames = 0

    def resume_integration(self) -> None:
        self.has_failed_previously = False

    def reset(self) -> None:
        self.successful_frames = 0
        self.error_count = 0
        self.failed = False
        self.has_failed_previously = False

    @property
    def state(self) -> TrackingState:
        return TrackingState.LOST if self.failed else TrackingState.TRACKING

    @property
    def phase(self) -> TrackingPhase:
        if self.failed:
            return TrackingPhase.LOST
        if self.has_failed_previously:
            return TrackingPhase.RECOVERING
        if self.successful_frames == 0:
            return TrackingPhase.COLD
        return TrackingPhase.TRACKING


@dataclass(frozen=True)
class TrackerCheckpoint:
    """Persistent tracker state captured at the start of a pass."""
    pose: np.ndarray
    display_pose: np.ndarray
    status: TrackingStatus
    processed_frames: int


class CameraTracker:
    """
    Tracking state machine.

    The tracker owns the current camera pose and the tracking counters. It
    is driven by one processing thread and is not safe to share.
    """

    def __init__(
        self,
        engine: VolumeEngine,
        settings: FusionSettings,
        relocalizer: Optional[Relocalizer] = None
    ):
        self.engine = engine
        self.settings = settings
        self.relocalizer = relocalizer

        self.status = TrackingStatus()
        self.pose = np.eye(4)
        # Pose shown to the user; differs from pose only after a failed relocalization
        self.display_pose = np.eye(4)
        self.processed_frames = 0
        self.delta_pixels: Optional[np.ndarray] = None
        self.last_relocalization: Optional[RelocalizationResult] = None

    def reset(self, pose: Optional[np.ndarray] = None) -> None:
        """Forget all tracking history and restart from pose (identity by default)."""
        self.status.reset()
        self.pose = np.eye(4) if pose is None else np.array(pose, dtype=float)
        self.display_pose = self.pose.copy()
        self.processed_frames = 0
        self.delta_pixels = None
        self.last_relocalization = None

    def checkpoint(self) -> TrackerCheckpoint:
        return TrackerCheckpoint(
            pose=self.pose.copy(),
            display_pose=self.display_pose.copy(),
            status=replace(self.status),
            processed_frames=self.processed_frames,
        )

    def restore(self, checkpoint: TrackerCheckpoint) -> None:
        self.pose = checkpoint.pose.copy()
        self.display_pose = checkpoint.display_pose.copy()
        self.status = replace(checkpoint.status)
        self.processed_frames = checkpoint.processed_frames

    def align(self, depth_mm: np.ndarray, compute_delta: bool) -> AlignmentResult:
        """
        Align the downsampled depth frame against the volume.

        Args:
            depth_mm: Full resolution depth in millimeters
            compute_delta: Also produce the residual visualization

        Returns:
            AlignmentResult whose success already includes the plausibility
            gate; delta is upsampled to full resolution when requested
        """
        settings = self.settings
        factor = settings.downsample_factor

        downsampled = downsample_depth(depth_mm, factor)
        smoothed = self.engine.smooth_depth(
            downsampled,
            settings.smoothing_kernel_width,
            settings.smoothing_distance_threshold,
        )
        observed = self.engine.depth_to_point_cloud(smoothed)

        # Expected view of the volume from the last known pose
        reference = self.engine.raycast_point_cloud(self.pose, downsampled.shape)

        result = self.engine.align_point_clouds(
            reference,
            observed,
            settings.align_iteration_count,
            self.pose.copy(),
            compute_delta=compute_delta,
        )

        if compute_delta and result.delta is not None:
            result.delta = upsample_nearest(result.delta, factor, depth_mm.shape)

        if result.success:
            result.success = check_transform_change(
                self.pose,
                result.pose,
                settings.max_translation_delta,
                settings.max_rotation_delta,
            )

        return result

    def track(
        self,
        depth_mm: np.ndarray,
        depth_float: np.ndarray,
        color: Optional[np.ndarray],
        relocalization_available: bool
    ) -> bool:
        """
        Estimate the camera pose for one frame.

        Args:
            depth_mm: Full resolution depth in millimeters
            depth_float: Full resolution clipped depth in meters
            color: Colour resampled to depth resolution (for relocalization)
            relocalization_available: The pose database holds key frames

        Returns:
            True if the frame ended up tracked
        """
        compute_delta = self.processed_frames % self.settings.delta_frame_interval == 0
        self.last_relocalization = None

        result = self.align(depth_mm, compute_delta)
        if result.delta is not None:
            self.delta_pixels = result.delta

        if result.success:
            self.status.record_success()
            self.pose = result.pose
            self.display_pose = self.pose.copy()
            tracked = True
        elif self.status.successful_frames == 0 and not self.status.failed:
            # Nothing tracked yet, so there is no reference to have lost:
            # accept the frame at the current pose to seed the volume.
            self.status.record_success()
            tracked = True
        else:
            was_tracking = not self.status.failed
            self.status.record_failure()
            if was_tracking:
                console.print(f"[yellow]Camera tracking lost at frame {self.processed_frames}[/yellow]")

            tracked = False
            if relocalization_available and self.relocalizer is not None and color is not None:
                tracked = self._relocalize(depth_float, color)

        if tracked:
            self.processed_frames += 1

        return tracked

    def _relocalize(self, depth_float: np.ndarray, color: np.ndarray) -> bool:
        result = self.relocalizer.find_pose(depth_float, color)
        self.last_relocalization = result
        if result is None:
            return False

        if result.success:
            self.pose = result.pose
            self.display_pose = self.pose.copy()
            if result.delta is not None:
                self.delta_pixels = result.delta
            self.engine.set_reference_frame(self.pose)
            self.status.record_success()
            console.print(
                f"[green]Relocalized on candidate {result.candidate_index} "
                f"(energy {result.energy:.5f})[/green]"
            )
            return True

        self.display_pose = result.pose.copy()
        if self.settings.track_from_fallback_pose:
            self.pose = result.pose.copy()
            self.engine.set_reference_frame(self.pose)
        return False
