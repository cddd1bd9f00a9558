"""
Frame schedulers.

A scheduler runs one-shot frame callbacks, each receiving a timestamp in
milliseconds. The render loop requests the next frame at the end of every
tick, so cancelling the outstanding handle stops the loop.
"""

import abc
import itertools
from typing import Callable, Iterable

import pygame

FrameCallback = Callable[[float], None]


class FrameScheduler(abc.ABC):
    """Requests and cancels one-shot frame callbacks."""

    def __init__(self):
        self._callbacks: dict[int, FrameCallback] = {}
        self._handles = itertools.count(1)

    def request_frame(self, callback: FrameCallback) -> int:
        """Schedule ``callback`` for the next frame and return its handle."""
        handle = next(self._handles)
        self._callbacks[handle] = callback
        return handle

    def cancel_frame(self, handle: int | None):
        """Drop a scheduled callback. Unknown or None handles are ignored."""
        if handle is not None:
            self._callbacks.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._callbacks)

    def _run_due(self, now_ms: float) -> int:
        """Run the callbacks scheduled before this call."""
        due, self._callbacks = self._callbacks, {}
        for callback in due.values():
            callback(now_ms)
        return len(due)

    @abc.abstractmethod
    def now(self) -> float:
        """Current scheduler time in milliseconds."""
        pass


class ManualScheduler(FrameScheduler):
    """
    Steps frames explicitly on a synthetic clock.

    Used for headless rendering and tests.
    """

    def __init__(self, fps: float = 60.0, start_ms: float = 0.0):
        super().__init__()
        self.frame_ms = 1000.0 / fps
        self.time_ms = start_ms

    def now(self) -> float:
        return self.time_ms

    def step(self, elapsed_ms: float | None = None) -> int:
        """
        Advance the clock and run due callbacks.

        Returns:
            Number of callbacks run.
        """
        self.time_ms += self.frame_ms if elapsed_ms is None else elapsed_ms
        return self._run_due(self.time_ms)

    def run(self, frames: int) -> int:
        """Step up to ``frames`` times, stopping early when nothing is pending."""
        ran = 0
        for _ in range(frames):
            if not self.pending:
                break
            self.step()
            ran += 1
        return ran


class PygameScheduler(FrameScheduler):
    """
    Display-clock scheduler.

    Each iteration pumps the pygame event queue, waits on the clock for the
    target frame rate and then runs the due frame callbacks.
    """

    def __init__(
        self,
        fps: int = 60,
        on_events: Callable[[Iterable], None] | None = None,
    ):
        super().__init__()
        self.fps = fps
        self.on_events = on_events
        self.clock = pygame.time.Clock()

    def now(self) -> float:
        return float(pygame.time.get_ticks())

    def run(self):
        """Drive frames until no callback is pending."""
        while self.pending:
            events = pygame.event.get()
            if self.on_events is not None:
                self.on_events(events)
            if not self.pending:
                break
            self.clock.tick(self.fps)
            self._run_due(self.now())
