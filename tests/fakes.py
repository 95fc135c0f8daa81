"""In-memory scripted Volume Engine and test frame helpers."""

from typing import List, Optional, Tuple

import cv2
import numpy as np

from reconstruction.engine import (
    AlignmentResult,
    KeyFrameResult,
    MatchCandidates,
    VolumeEngineError,
)

DEPTH_WIDTH = 8
DEPTH_HEIGHT = 8
COLOR_WIDTH = 16
COLOR_HEIGHT = 8


class FakeVolumeEngine:
    """
    Scripted stand-in for a reconstruction engine.

    align_results is a queue of (success, pose, energy) tuples consumed by
    align_point_clouds; a pose of None echoes the starting pose. Once the
    queue is empty every alignment succeeds in place with default_energy.
    """

    def __init__(self):
        self.calls: List[str] = []
        self.failing = set()
        self.device_error: Optional[Exception] = None

        self.align_results: List[Tuple[bool, Optional[np.ndarray], float]] = []
        self.default_energy = 0.001

        self.candidates: Optional[MatchCandidates] = None
        self.pose_count = 0
        self.key_frame_result = KeyFrameResult(added=True, trimmed=False)

        self.integrated: List[np.ndarray] = []
        self.offered: List[np.ndarray] = []
        self.reference_frames: List[np.ndarray] = []
        self.resets: List[Tuple[np.ndarray, Optional[np.ndarray]]] = []
        self.raycast_shapes: List[Tuple[int, int]] = []
        self.closed = False

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise VolumeEngineError(f"{name} failed")

    def count(self, name: str) -> int:
        return self.calls.count(name)

    def device_info(self):
        self._call("device_info")
        if self.device_error is not None:
            raise self.device_error
        return {"description": "fake device", "memory_kb": 0}

    def default_world_to_volume(self):
        return np.eye(4)

    def reset_volume(self, pose, world_to_volume=None):
        self._call("reset_volume")
        self.resets.append((pose.copy(), world_to_volume))

    def smooth_depth(self, depth, kernel_width, distance_threshold):
        self._call("smooth_depth")
        return depth

    def depth_to_point_cloud(self, depth):
        self._call("depth_to_point_cloud")
        return np.zeros(depth.shape + (3,), dtype=np.float32)

    def raycast_point_cloud(self, pose, shape):
        self._call("raycast_point_cloud")
        self.raycast_shapes.append(tuple(shape))
        return np.zeros(tuple(shape) + (3,), dtype=np.float32)

    def align_point_clouds(self, reference, observed, iterations, pose, compute_delta=False):
        self._call("align_point_clouds")
        if self.align_results:
            success, new_pose, energy = self.align_results.pop(0)
        else:
            success, new_pose, energy = True, None, self.default_energy

        delta = np.full(reference.shape[:2], 7, dtype=np.uint32) if compute_delta else None
        result_pose = pose.copy() if new_pose is None else np.array(new_pose, dtype=float)
        return AlignmentResult(success=success, pose=result_pose, energy=energy, delta=delta)

    def set_reference_frame(self, pose):
        self._call("set_reference_frame")
        self.reference_frames.append(pose.copy())

    def integrate_frame(self, depth, weight, pose):
        self._call("integrate_frame")
        self.integrated.append(pose.copy())

    def shade_point_cloud(self, cloud, pose, world_to_bgr):
        self._call("shade_point_cloud")
        return np.full(cloud.shape[:2], 0xFF808080, dtype=np.uint32)

    def stored_pose_count(self):
        self._call("stored_pose_count")
        return self.pose_count

    def query_pose_database(self, depth, color):
        self._call("query_pose_database")
        return self.candidates

    def offer_key_frame(self, depth, color, pose, accept_threshold):
        self._call("offer_key_frame")
        self.offered.append(pose.copy())
        if self.key_frame_result.added:
            self.pose_count += 1
        return self.key_frame_result

    def reset_pose_database(self):
        self._call("reset_pose_database")
        self.pose_count = 0

    def calculate_mesh(self, voxel_step=1):
        self._call("calculate_mesh")
        return {"voxel_step": voxel_step}

    def close(self):
        self.closed = True


def make_frame_pair(depth_mm: int = 1000) -> Tuple[np.ndarray, np.ndarray]:
    """A constant depth image and a gradient colour image at the test sizes."""
    depth = np.full((DEPTH_HEIGHT, DEPTH_WIDTH), depth_mm, dtype=np.uint16)
    color = np.zeros((COLOR_HEIGHT, COLOR_WIDTH, 4), dtype=np.uint8)
    color[..., 0] = np.arange(COLOR_WIDTH, dtype=np.uint8)[None, :]
    color[..., 3] = 255
    return depth, color


def unavailable_engine() -> FakeVolumeEngine:
    """Engine factory whose device lookup fails."""
    engine = FakeVolumeEngine()
    engine.device_error = OSError("no compute device")
    return engine


def write_frame_directory(root, count, depth_mm=1000):
    """Write count depth/colour PNG pairs."""
    (root / "depth").mkdir(parents=True)
    (root / "color").mkdir(parents=True)
    for i in range(count):
        depth = np.full((DEPTH_HEIGHT, DEPTH_WIDTH), depth_mm + i, dtype=np.uint16)
        color = np.zeros((COLOR_HEIGHT, COLOR_WIDTH, 3), dtype=np.uint8)
        color[..., 2] = 200  # red in BGR
        cv2.imwrite(str(root / "depth" / f"{i:06d}.png"), depth)
        cv2.imwrite(str(root / "color" / f"{i:06d}.png"), color)
    return root
