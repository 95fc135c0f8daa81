"""Integration gate: decides when a tracked frame may be fused into the volume."""

import numpy as np

from .engine import VolumeEngine
from .tracking import TrackingPhase, TrackingStatus


def should_integrate(
    status: TrackingStatus,
    relocalization_available: bool,
    warmup_frames: int
) -> bool:
    """
    Decide whether the current frame may be fused.

    Frames are never fused while tracking is lost. After a failure, when the
    pose database is in use, fusion waits until warmup_frames consecutive
    frames have tracked so a freshly relocalized pose cannot corrupt the
    volume.
    """
    phase = status.phase
    if phase is TrackingPhase.LOST:
        return False
    if phase is TrackingPhase.RECOVERING and relocalization_available:
        return status.successful_frames >= warmup_frames
    return True


def integrate(
    engine: VolumeEngine,
    status: TrackingStatus,
    depth: np.ndarray,
    pose: np.ndarray,
    weight: int
) -> None:
    """Fuse depth at pose and mark integration as resumed."""
    status.resume_integration()
    engine.integrate_frame(depth, weight, pose)
