"""
Sensor Frame

Holds the latest depth and colour buffers delivered by a sensor and
notifies subscribers once both buffers of one instant are in place.
"""

import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np
from rich.console import Console

from utils.validation import validate_color_buffer, validate_depth_buffer

console = Console()

FrameListener = Callable[["Frame"], None]


@dataclass(frozen=True)
class FrameSnapshot:
    """Consistent view of one instant's buffers."""
    index: int
    depth: np.ndarray  # (depth_height, depth_width) uint16 millimeters
    color: np.ndarray  # (color_height, color_width, 4) uint8 RGBA


class Frame:
    """Latest depth/colour frame with fixed, negotiated dimensions."""

    def __init__(self, color_width: int, color_height: int, depth_width: int, depth_height: int):
        self.color_width = color_width
        self.color_height = color_height
        self.depth_width = depth_width
        self.depth_height = depth_height

        self._lock = threading.Lock()
        self._depth = np.zeros((depth_height, depth_width), dtype=np.uint16)
        self._color = np.zeros((color_height, color_width, 4), dtype=np.uint8)
        self._index = -1

        self._listeners: List[FrameListener] = []

    @property
    def color_size(self):
        return self.color_width, self.color_height

    @property
    def depth_size(self):
        return self.depth_width, self.depth_height

    @property
    def index(self) -> int:
        """Index of the latest accepted update, -1 before the first."""
        return self._index

    def subscribe(self, listener: FrameListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: FrameListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def update(self, depth: np.ndarray, color: np.ndarray) -> bool:
        """
        Replace the frame buffers and notify subscribers.

        Buffers whose size does not match the negotiated dimensions are
        dropped.

        Returns:
            True if the update was accepted
        """
        depth_ok, depth_errors = validate_depth_buffer(depth, self.depth_width, self.depth_height)
        color_ok, color_errors = validate_color_buffer(color, self.color_width, self.color_height)
        if not (depth_ok and color_ok):
            for error in depth_errors + color_errors:
                console.print(f"[red]Frame dropped:[/red] {error}")
            return False

        depth = depth.copy()
        color = color.copy()
        depth.setflags(write=False)
        color.setflags(write=False)

        with self._lock:
            self._depth = depth
            self._color = color
            self._index += 1

        for listener in list(self._listeners):
            listener(self)

        return True

    def snapshot(self) -> Optional[FrameSnapshot]:
        """Latest buffers, or None before the first update."""
        with self._lock:
            if self._index < 0:
                return None
            return FrameSnapshot(index=self._index, depth=self._depth, color=self._color)

    def depth_preview(self, min_depth: int, max_depth: int) -> np.ndarray:
        """Map the latest depth to uint8 for display (near = dark, far = bright)."""
        with self._lock:
            depth = self._depth.astype(np.float32)

        preview = np.rint(depth / (max_depth - min_depth) * 255.0)
        preview = np.clip(preview, 0, 255)
        preview[depth <= min_depth] = 0
        preview[depth >= max_depth] = 255
        return preview.astype(np.uint8)
