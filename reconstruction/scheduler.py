"""
Frame Scheduler

Decouples frame arrival from frame processing. Producers call notify();
a single worker thread wakes up and runs one processing pass. Notifications
that arrive during a pass collapse into a single pending flag, so the
worker always processes the latest frame and never builds a backlog.
"""

import threading
from typing import Callable, Optional

from rich.console import Console

console = Console()


class FrameScheduler:
    """Single-producer, single-consumer rendezvous around a processing pass."""

    def __init__(self, process: Callable[[], None], name: str = "frame-scheduler"):
        self._process = process
        self._name = name

        self._condition = threading.Condition()
        self._ready = False
        self._shutdown = False

        self._thread: Optional[threading.Thread] = None
        self.passes = 0

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"Scheduler {self._name} already started")

        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def notify(self) -> None:
        """Signal that a new frame is ready."""
        with self._condition:
            self._ready = True
            self._condition.notify()

    def request_stop(self) -> None:
        """Ask the worker to exit after the current pass, without waiting."""
        with self._condition:
            self._shutdown = True
            self._condition.notify()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the worker to exit and wait for it."""
        self.request_stop()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while True:
            with self._condition:
                self._condition.wait_for(lambda: self._ready or self._shutdown)
                if self._shutdown:
                    break
                self._ready = False

            try:
                self._process()
            except Exception as e:
                console.print(f"[bold red]Scheduler {self._name} stopped:[/bold red] {e}")
                raise
            self.passes += 1

    def __enter__(self) -> "FrameScheduler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
