"""
Volume Builder

Runs the per-frame pipeline on a dedicated processing thread:

1. Convert depth - millimeters to clipped float meters
2. Track camera - coarse alignment, plausibility gate, relocalization
3. Integrate - fuse the frame when the integration gate allows it
4. Render - raycast and shade the volume, publish a read-only snapshot
5. Key frames - periodically offer the frame to the pose database
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import numpy as np
from rich.console import Console

from utils.validation import validate_pose
from .engine import DeviceUnavailableError, VolumeEngine, VolumeEngineError
from .frame import Frame
from .integration import integrate, should_integrate
from .keyframes import KeyFrameMaintainer
from .pyramid import ColorResampler, depth_to_float
from .relocalization import Relocalizer
from .scheduler import FrameScheduler
from .settings import FusionSettings
from .tracking import CameraTracker, TrackingState

console = Console()


@dataclass(frozen=True)
class SurfaceSnapshot:
    """Rendered result of one completed pass. Arrays are read-only."""
    frame_index: int
    pixels: np.ndarray                  # (depth_height, depth_width) uint32 shaded surface
    delta_pixels: Optional[np.ndarray]  # residual alignment visualization, if any
    pose: np.ndarray
    state: TrackingState


Presenter = Callable[[SurfaceSnapshot], None]


@dataclass
class BuilderStats:
    """Statistics collected while processing frames."""
    passes: int = 0
    tracked_frames: int = 0
    lost_frames: int = 0
    integrated_frames: int = 0
    relocalization_attempts: int = 0
    relocalizations: int = 0
    errors: int = 0
    last_pass_ms: float = 0.0
    total_ms: float = 0.0

    def record_pass(self, duration_ms: float):
        self.passes += 1
        self.last_pass_ms = duration_ms
        self.total_ms += duration_ms

    @property
    def average_pass_ms(self) -> float:
        return self.total_ms / self.passes if self.passes else 0.0

    def to_dict(self) -> Dict:
        return {
            "passes": self.passes,
            "tracked_frames": self.tracked_frames,
            "lost_frames": self.lost_frames,
            "integrated_frames": self.integrated_frames,
            "relocalization_attempts": self.relocalization_attempts,
            "relocalizations": self.relocalizations,
            "errors": self.errors,
            "average_pass_ms": self.average_pass_ms,
        }


def _read_only(array: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if array is None:
        return None
    array = np.array(array, copy=True)
    array.setflags(write=False)
    return array


class VolumeBuilder:
    """
    Fuses a stream of frames into the engine's volume while tracking the camera.

    The builder takes ownership of the engine and closes it on close().
    Every frame update on the given Frame wakes the processing thread; all
    tracking state is owned by that thread.
    """

    def __init__(
        self,
        engine: VolumeEngine,
        frame: Frame,
        settings: Optional[FusionSettings] = None,
        presenter: Optional[Presenter] = None,
        verbose: bool = False,
        autostart: bool = True
    ):
        self.engine = engine
        self.frame = frame
        self.settings = settings or FusionSettings()
        self.presenter = presenter
        self.verbose = verbose

        try:
            self.device = engine.device_info()
        except (LookupError, OSError, VolumeEngineError) as e:
            raise DeviceUnavailableError(f"No compatible compute device for the volume engine: {e}") from e

        factor = self.settings.downsample_factor
        if frame.depth_width % factor or frame.depth_height % factor:
            console.print(
                f"[yellow]Depth size {frame.depth_width}x{frame.depth_height} is not divisible by "
                f"downsample factor {factor}; trailing pixels are ignored for tracking[/yellow]"
            )

        self._default_world_to_volume = np.array(engine.default_world_to_volume(), dtype=float)
        self._world_to_bgr = self.settings.world_to_bgr()
        self._resample_color = ColorResampler(frame.color_size, frame.depth_size)

        self.relocalizer = Relocalizer(engine, self.settings)
        self.tracker = CameraTracker(engine, self.settings, self.relocalizer)
        self.keyframes = KeyFrameMaintainer(engine, self.settings)
        self.stats = BuilderStats()

        self._snapshot_lock = threading.Lock()
        self._latest: Optional[SurfaceSnapshot] = None

        # Index of the newest frame a finished pass has consumed
        self._progress = threading.Condition()
        self.last_frame_index = -1

        self._reset_requested = threading.Event()
        self._reset_pose: Optional[np.ndarray] = None
        self._closed = False

        self.scheduler = FrameScheduler(self.process, name="volume-builder")
        self.frame.subscribe(self._on_frame_data_update)

        if autostart:
            self.start()

    def start(self) -> None:
        """Start the processing thread."""
        self.scheduler.start()

    def _on_frame_data_update(self, frame: Frame) -> None:
        self.scheduler.notify()

    @property
    def latest_snapshot(self) -> Optional[SurfaceSnapshot]:
        with self._snapshot_lock:
            return self._latest

    def reset(self, pose: Optional[np.ndarray] = None) -> None:
        """
        Request a reconstruction reset.

        The reset is applied at the start of the next processing pass: the
        volume, tracking counters and pose database are cleared and the
        camera restarts at pose (identity by default).
        """
        if pose is not None:
            is_valid, errors = validate_pose(pose)
            if not is_valid:
                raise ValueError(errors[0])
            pose = np.array(pose, dtype=float)
        self._reset_pose = pose
        self._reset_requested.set()

    def _reset_reconstruction(self) -> None:
        self._reset_requested.clear()
        settings = self.settings

        self.tracker.reset(self._reset_pose)
        self.keyframes.reset()

        world_to_volume = None
        if settings.translate_reset_pose_by_min_depth:
            # Shift the volume so some depth signal falls inside it
            world_to_volume = self._default_world_to_volume.copy()
            min_distance = min(settings.min_depth_clip, settings.max_depth_clip)
            world_to_volume[2, 3] -= min_distance * settings.voxels_per_meter

        self.engine.reset_volume(self.tracker.pose, world_to_volume)
        console.print("[green]Reconstruction reset[/green]")

    def process(self) -> None:
        """Run one full processing pass over the latest frame."""
        started = time.perf_counter()
        settings = self.settings
        checkpoint = None
        frame_index = -1

        try:
            if self._reset_requested.is_set():
                self._reset_reconstruction()

            snapshot = self.frame.snapshot()
            if snapshot is None:
                return

            frame_index = snapshot.index
            checkpoint = self.tracker.checkpoint()
            tracker = self.tracker

            relocalization_available = self.engine.stored_pose_count() > 0

            depth = depth_to_float(snapshot.depth, settings.min_depth_clip, settings.max_depth_clip)
            color = self._resample_color(snapshot.color)

            tracked = tracker.track(snapshot.depth, depth, color, relocalization_available)
            integrated = False

            if should_integrate(
                tracker.status,
                relocalization_available,
                settings.min_successful_frames_after_failure,
            ):
                integrate(self.engine, tracker.status, depth, tracker.pose, settings.integration_weight)
                integrated = True

            # Rendered while lost too, at the relocalization fallback pose if any
            surface = self._render(snapshot.index)

            # Never offered after a failure until integration has resumed
            self.keyframes.maybe_offer(
                tracker.status, tracker.processed_frames, depth, color, tracker.pose
            )

            # Counted only once no later stage can fail the pass
            if integrated:
                self.stats.integrated_frames += 1
            if tracked:
                self.stats.tracked_frames += 1
            else:
                self.stats.lost_frames += 1
            if tracker.last_relocalization is not None:
                self.stats.relocalization_attempts += 1
                if tracker.last_relocalization.success:
                    self.stats.relocalizations += 1

            self._publish(surface)

        except VolumeEngineError as e:
            if checkpoint is not None:
                self.tracker.restore(checkpoint)
            self.stats.errors += 1
            console.print(f"[red]Failed to process frame:[/red] {e}")

        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            self.stats.record_pass(elapsed_ms)
            if self.verbose:
                console.print(f"[dim]Volume data processed in {elapsed_ms:.1f}ms[/dim]")
            if frame_index >= 0:
                with self._progress:
                    self.last_frame_index = frame_index
                    self._progress.notify_all()

    def _render(self, frame_index: int) -> SurfaceSnapshot:
        pose = self.tracker.display_pose
        cloud = self.engine.raycast_point_cloud(pose, (self.frame.depth_height, self.frame.depth_width))
        pixels = self.engine.shade_point_cloud(cloud, pose, self._world_to_bgr)

        return SurfaceSnapshot(
            frame_index=frame_index,
            pixels=_read_only(pixels),
            delta_pixels=_read_only(self.tracker.delta_pixels),
            pose=_read_only(pose),
            state=self.tracker.status.state,
        )

    def _publish(self, surface: SurfaceSnapshot) -> None:
        with self._snapshot_lock:
            self._latest = surface

        if self.presenter is not None:
            try:
                self.presenter(surface)
            except Exception as e:
                console.print(f"[red]Presenter failed:[/red] {e}")

    def wait_for_frame(self, index: int, timeout: Optional[float] = None) -> bool:
        """
        Block until a pass over frame index, or a later frame, has finished.

        Returns:
            False if the timeout expired first
        """
        with self._progress:
            return self._progress.wait_for(lambda: self.last_frame_index >= index, timeout)

    def create_mesh(self, voxel_step: int = 1):
        """Extract a mesh of the current volume from the engine."""
        return self.engine.calculate_mesh(voxel_step)

    def close(self) -> None:
        """Stop the processing thread, then release the engine."""
        if self._closed:
            return
        self._closed = True

        self.scheduler.stop()
        self.frame.unsubscribe(self._on_frame_data_update)
        self.engine.close()

    def __enter__(self) -> "VolumeBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
