"""
Cooperative scheduler for the overlay client.

All display work (poll results, marquee frames, rendering) runs as callbacks on
a single timeline, one at a time, so the state machines need no locks. Other
threads hand work to the timeline with post().
"""

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

DEFAULT_FRAME_RATE = 60


class Handle:
    """A scheduled callback that can be cancelled."""

    __slots__ = ("when", "callback", "cancelled")

    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler(ABC):
    """Timer heap shared by the real-time and virtual-time schedulers."""

    def __init__(self, frame_rate: int = DEFAULT_FRAME_RATE):
        self.frame_interval_ms = 1000.0 / frame_rate
        self.logger = logging.getLogger(__name__)
        self._heap: List[Tuple[float, int, Handle]] = []
        self._counter = itertools.count()
        self._lock = threading.RLock()

    @abstractmethod
    def now_ms(self) -> float:
        """Current time on the scheduler's clock, in milliseconds."""
        pass

    def _wake(self) -> None:
        """Hook for schedulers that sleep between callbacks."""

    def _push(self, when: float, callback: Callable[[], None]) -> Handle:
        handle = Handle(when, callback)
        with self._lock:
            heapq.heappush(self._heap, (when, next(self._counter), handle))
        self._wake()
        return handle

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Handle:
        """Run callback after delay_ms milliseconds."""
        return self._push(self.now_ms() + max(0.0, delay_ms), callback)

    def request_frame(self, callback: Callable[[], None]) -> Handle:
        """Run callback at the next frame boundary."""
        now = self.now_ms()
        frame = self.frame_interval_ms
        when = (int(now // frame) + 1) * frame
        if when <= now:
            # float rounding can land exactly on the current boundary
            when += frame
        return self._push(when, callback)

    def post(self, callback: Callable[[], None]) -> Handle:
        """Run callback as soon as possible. Safe to call from any thread."""
        return self._push(self.now_ms(), callback)

    def cancel(self, handle: Optional[Handle]) -> None:
        if handle is not None:
            handle.cancel()

    def pending(self) -> int:
        """Number of callbacks still waiting to run."""
        with self._lock:
            return sum(1 for _, _, handle in self._heap if not handle.cancelled)

    def _pop_due(self, until: float) -> Optional[Handle]:
        with self._lock:
            while self._heap and self._heap[0][0] <= until:
                _, _, handle = heapq.heappop(self._heap)
                if not handle.cancelled:
                    return handle
        return None

    def _next_due(self) -> Optional[float]:
        with self._lock:
            while self._heap and self._heap[0][2].cancelled:
                heapq.heappop(self._heap)
            return self._heap[0][0] if self._heap else None

    def _run(self, handle: Handle) -> None:
        try:
            handle.callback()
        except Exception as e:
            self.logger.error("Error in scheduled callback: %s", e, exc_info=True)


class ManualScheduler(Scheduler):
    """Scheduler on a virtual clock that only moves when advanced."""

    def __init__(self, frame_rate: int = DEFAULT_FRAME_RATE, start_ms: float = 0.0):
        super().__init__(frame_rate)
        self._now = start_ms

    def now_ms(self) -> float:
        return self._now

    def advance(self, ms: float) -> None:
        """Move the clock forward by ms, running every callback that falls due in order."""
        target = self._now + ms
        while True:
            handle = self._pop_due(target)
            if handle is None:
                break
            self._now = max(self._now, handle.when)
            self._run(handle)
        self._now = target

    def run_pending(self) -> None:
        """Run callbacks that are already due without moving the clock."""
        self.advance(0)


class ThreadScheduler(Scheduler):
    """Scheduler on the monotonic clock, run by the thread that calls run_forever()."""

    def __init__(self, frame_rate: int = DEFAULT_FRAME_RATE):
        super().__init__(frame_rate)
        self._origin = time.monotonic()
        self._condition = threading.Condition(self._lock)
        self._running = False

    def now_ms(self) -> float:
        return (time.monotonic() - self._origin) * 1000.0

    def _wake(self) -> None:
        with self._condition:
            self._condition.notify()

    def run_forever(self) -> None:
        """Run callbacks until stop() is called."""
        self._running = True
        self.logger.debug("Scheduler started")
        while self._running:
            handle = self._pop_due(self.now_ms())
            if handle is not None:
                self._run(handle)
                continue

            with self._condition:
                if not self._running:
                    break
                next_due = self._next_due()
                timeout = None if next_due is None else max(0.0, next_due - self.now_ms()) / 1000.0
                self._condition.wait(timeout)
        self.logger.debug("Scheduler stopped")

    def stop(self) -> None:
        """Stop run_forever(). Safe to call from any thread."""
        self._running = False
        self._wake()
