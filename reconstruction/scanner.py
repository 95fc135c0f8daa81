"""
Scanner and frame sources.

A Scanner owns a Frame and feeds it from a frame source on a producer
thread. Sources yield (depth, color) pairs: depth as (H, W) uint16
millimeters, colour as (H, W, 4) uint8 RGBA.
"""

import threading
import time
from pathlib import Path
from typing import Iterator, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np
from rich.console import Console

from .frame import Frame

console = Console()

FramePair = Tuple[np.ndarray, np.ndarray]


class FrameSourceError(Exception):
    """Error opening or reading a frame source."""
    pass


class FrameSource(Protocol):
    color_size: Tuple[int, int]
    depth_size: Tuple[int, int]

    def __len__(self) -> int:
        ...

    def __iter__(self) -> Iterator[FramePair]:
        ...

    def close(self) -> None:
        ...


class ArrayFrameSource:
    """Frame source over in-memory (depth, color) pairs."""

    def __init__(self, frames: Sequence[FramePair]):
        if len(frames) == 0:
            raise FrameSourceError("No frames given")
        self.frames = list(frames)
        depth, color = self.frames[0]
        self.depth_size = (depth.shape[1], depth.shape[0])
        self.color_size = (color.shape[1], color.shape[0])

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self) -> Iterator[FramePair]:
        return iter(self.frames)

    def close(self) -> None:
        pass


class DirectoryFrameSource:
    """
    Replays a recorded frame directory.

    Expected structure:
    - depth/*.png  16-bit single channel, millimeters
    - color/*.png  8-bit colour

    Files are paired in sorted filename order.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.depth_paths = sorted((self.root / "depth").glob("*.png"))
        self.color_paths = sorted((self.root / "color").glob("*.png"))

        if not self.depth_paths:
            raise FrameSourceError(f"No depth frames found in {self.root / 'depth'}")
        if len(self.depth_paths) != len(self.color_paths):
            raise FrameSourceError(
                f"Depth/color frame count mismatch: {len(self.depth_paths)} depth, "
                f"{len(self.color_paths)} color"
            )

        depth, color = self._read(0)
        self.depth_size = (depth.shape[1], depth.shape[0])
        self.color_size = (color.shape[1], color.shape[0])

    def __len__(self) -> int:
        return len(self.depth_paths)

    def _read(self, index: int) -> FramePair:
        depth_path = self.depth_paths[index]
        color_path = self.color_paths[index]

        depth = cv2.imread(str(depth_path), cv2.IMREAD_UNCHANGED)
        if depth is None:
            raise FrameSourceError(f"Failed to read depth frame: {depth_path}")
        if depth.dtype != np.uint16 or depth.ndim != 2:
            raise FrameSourceError(f"Depth frame must be 16-bit single channel: {depth_path}")

        color = cv2.imread(str(color_path), cv2.IMREAD_COLOR)
        if color is None:
            raise FrameSourceError(f"Failed to read color frame: {color_path}")

        return depth, cv2.cvtColor(color, cv2.COLOR_BGR2RGBA)

    def __iter__(self) -> Iterator[FramePair]:
        for index in range(len(self)):
            yield self._read(index)

    def close(self) -> None:
        pass


class Scanner:
    """
    Explicitly owned frame producer.

    The scanner sizes its Frame from the source and, once started, pushes
    every source frame into it at an optional fixed rate. Each accepted
    update notifies the Frame's subscribers.
    """

    def __init__(self, source: FrameSource, fps: Optional[float] = None):
        if fps is not None and fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")

        self.source = source
        self.fps = fps

        color_width, color_height = source.color_size
        depth_width, depth_height = source.depth_size
        self.frame = Frame(color_width, color_height, depth_width, depth_height)

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.frames_delivered = 0
        self.error: Optional[Exception] = None

    @classmethod
    def open(cls, source: FrameSource, fps: Optional[float] = None) -> "Scanner":
        """Create a scanner for a source that has at least one frame."""
        if len(source) == 0:
            raise FrameSourceError("Frame source is empty")

        scanner = cls(source, fps)
        console.print(
            f"[green]Scanner opened:[/green] {len(source)} frames, "
            f"depth {scanner.frame.depth_width}x{scanner.frame.depth_height}, "
            f"color {scanner.frame.color_width}x{scanner.frame.color_height}"
        )
        return scanner

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Scanner already started")
        self._thread = threading.Thread(target=self._run, name="scanner", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        interval = 1.0 / self.fps if self.fps else 0.0
        try:
            for depth, color in self.source:
                if self._stop.is_set():
                    break
                started = time.perf_counter()
                if self.frame.update(depth, color):
                    self.frames_delivered += 1
                if interval:
                    self._stop.wait(max(0.0, interval - (time.perf_counter() - started)))
        except FrameSourceError as e:
            self.error = e
            console.print(f"[bold red]Frame source failed:[/bold red] {e}")

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the source is exhausted or the scanner is closed."""
        if self._thread is not None:
            self._thread.join(timeout)

    def close(self) -> None:
        self._stop.set()
        self.wait()
        self.source.close()

    def __enter__(self) -> "Scanner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
