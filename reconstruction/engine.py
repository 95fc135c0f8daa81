"""
Volume Engine Boundary

The volumetric reconstruction engine (point cloud alignment, raycasting,
depth integration, camera pose database) is an external capability. This
module defines the contract the frame-processing core relies on, the value
types that cross the boundary, and a loader for engine plug-ins.
"""

import importlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Protocol, Tuple

import numpy as np


class VolumeEngineError(Exception):
    """Recoverable failure of a single Volume Engine call."""
    pass


class DeviceUnavailableError(Exception):
    """No compatible compute device exists; no frame can ever be processed."""
    pass


@dataclass
class AlignmentResult:
    """Outcome of aligning an observed point cloud against a reference."""
    success: bool
    pose: np.ndarray
    energy: float = 0.0
    # Per-pixel residual colours (uint32), only when requested
    delta: Optional[np.ndarray] = None


@dataclass
class MatchCandidates:
    """Ranked candidate poses returned by a pose database query."""
    poses: List[np.ndarray] = field(default_factory=list)
    min_distance: float = float("inf")

    def __len__(self) -> int:
        return len(self.poses)


class KeyFrameResult(NamedTuple):
    """Outcome of offering a key frame to the pose database."""
    added: bool
    trimmed: bool


class VolumeEngine(Protocol):
    """
    Capabilities the tracking core expects from a reconstruction engine.

    Any call may raise VolumeEngineError; the core logs it and continues
    with its prior state on the next frame.
    """

    def device_info(self) -> Dict[str, Any]:
        """Describe the compute device. Raises if none is usable."""
        ...

    def default_world_to_volume(self) -> np.ndarray:
        ...

    def reset_volume(self, pose: np.ndarray, world_to_volume: Optional[np.ndarray] = None) -> None:
        ...

    def smooth_depth(self, depth: np.ndarray, kernel_width: int, distance_threshold: float) -> np.ndarray:
        ...

    def depth_to_point_cloud(self, depth: np.ndarray) -> np.ndarray:
        ...

    def raycast_point_cloud(self, pose: np.ndarray, shape: Tuple[int, int]) -> np.ndarray:
        ...

    def align_point_clouds(
        self,
        reference: np.ndarray,
        observed: np.ndarray,
        iterations: int,
        pose: np.ndarray,
        compute_delta: bool = False,
    ) -> AlignmentResult:
        ...

    def set_reference_frame(self, pose: np.ndarray) -> None:
        ...

    def integrate_frame(self, depth: np.ndarray, weight: int, pose: np.ndarray) -> None:
        ...

    def shade_point_cloud(self, cloud: np.ndarray, pose: np.ndarray, world_to_bgr: np.ndarray) -> np.ndarray:
        ...

    def stored_pose_count(self) -> int:
        ...

    def query_pose_database(self, depth: np.ndarray, color: np.ndarray) -> Optional[MatchCandidates]:
        ...

    def offer_key_frame(
        self,
        depth: np.ndarray,
        color: np.ndarray,
        pose: np.ndarray,
        accept_threshold: float,
    ) -> KeyFrameResult:
        ...

    def reset_pose_database(self) -> None:
        ...

    def calculate_mesh(self, voxel_step: int = 1) -> Any:
        ...

    def close(self) -> None:
        ...


def load_engine(factory_path: str, **kwargs) -> VolumeEngine:
    """
    Import and construct a Volume Engine from a "package.module:factory" string.

    Args:
        factory_path: Import path of a class or factory callable
        **kwargs: Passed to the factory

    Returns:
        The constructed engine
    """
    module_name, sep, attr = factory_path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Engine must be given as 'module:factory', got {factory_path!r}")

    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attr)
    except AttributeError:
        raise ValueError(f"Module {module_name!r} has no attribute {attr!r}")

    return factory(**kwargs)
