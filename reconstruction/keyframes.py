"""Key frame database maintenance for relocalization."""

from typing import Optional

import numpy as np
from rich.console import Console

from .engine import KeyFrameResult, VolumeEngine
from .settings import FusionSettings
from .tracking import TrackingStatus

console = Console()


class KeyFrameMaintainer:
    """
    Periodically offers tracked frames to the camera pose database.

    The database decides whether an offered frame differs enough from its
    existing entries to be stored, and may trim old entries.
    """

    def __init__(self, engine: VolumeEngine, settings: FusionSettings):
        self.engine = engine
        self.settings = settings

        self.offered = 0
        self.added = 0
        self.trimmed = 0

    def should_offer(self, status: TrackingStatus, processed_frames: int) -> bool:
        return (
            not status.has_failed_previously
            and status.successful_frames > self.settings.min_successful_frames_for_pose_finder
            and processed_frames % self.settings.pose_finder_process_interval == 0
        )

    def offer(self, depth: np.ndarray, color: np.ndarray, pose: np.ndarray) -> KeyFrameResult:
        result = self.engine.offer_key_frame(
            depth, color, pose, self.settings.pose_finder_distance_accept
        )

        self.offered += 1
        if result.added:
            self.added += 1
        if result.trimmed:
            self.trimmed += 1
            console.print("[dim]Pose database history trimmed[/dim]")

        return result

    def maybe_offer(
        self,
        status: TrackingStatus,
        processed_frames: int,
        depth: np.ndarray,
        color: np.ndarray,
        pose: np.ndarray
    ) -> Optional[KeyFrameResult]:
        """Offer the frame if the schedule and tracking history allow it."""
        if not self.should_offer(status, processed_frames):
            return None
        return self.offer(depth, color, pose)

    def reset(self) -> None:
        self.engine.reset_pose_database()
        self.offered = 0
        self.added = 0
        self.trimmed = 0
