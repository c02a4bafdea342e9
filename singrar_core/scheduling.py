"""
Cancellable timers for the periodic safety activities.

Two schedulers share one interface:
- AsyncioScheduler: timers on an asyncio event loop (loop.call_later chains)
- VirtualScheduler: deterministic virtual clock, advanced explicitly
  (replays and tests)

A cancelled handle never fires again, and cancel_all() leaves nothing
scheduled. Exceptions raised by a callback are logged; a periodic timer
keeps running after a failing tick.
"""

import asyncio
import heapq
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle to one scheduled (possibly periodic) callback."""

    def __init__(
        self,
        scheduler: "Scheduler",
        callback: Callable[[], None],
        interval: float,
        repeat: bool,
        name: Optional[str] = None,
    ):
        self._scheduler = scheduler
        self.callback = callback
        self.interval = interval
        self.repeat = repeat
        self.name = name or getattr(callback, "__name__", "timer")
        self._cancelled = False
        # Backend-specific handle (asyncio.TimerHandle for AsyncioScheduler)
        self._backend = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        """Cancel the timer. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        self._scheduler._forget(self)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"TimerHandle({self.name}, every={self.interval}s, {state})"


class Scheduler(ABC):
    """Common interface for timer backends."""

    def __init__(self):
        self._handles: Set[TimerHandle] = set()
        self._handles_lock = threading.Lock()

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""

    @abstractmethod
    def _arm(self, handle: TimerHandle, delay: float):
        """Schedule handle to fire after delay seconds."""

    def _disarm(self, handle: TimerHandle):
        """Backend hook called when a handle is cancelled."""

    def call_later(self, delay: float, callback: Callable[[], None],
                   name: Optional[str] = None) -> TimerHandle:
        """Run callback once after delay seconds."""
        handle = TimerHandle(self, callback, delay, repeat=False, name=name)
        self._track(handle)
        self._arm(handle, delay)
        return handle

    def call_every(self, interval: float, callback: Callable[[], None],
                   name: Optional[str] = None) -> TimerHandle:
        """Run callback every interval seconds, first run after one interval."""
        if interval <= 0:
            raise ValueError(f"Interval must be positive: {interval}")
        handle = TimerHandle(self, callback, interval, repeat=True, name=name)
        self._track(handle)
        self._arm(handle, interval)
        return handle

    def cancel_all(self):
        """Cancel every outstanding timer (teardown)."""
        with self._handles_lock:
            handles = list(self._handles)
        for handle in handles:
            handle.cancel()
        if handles:
            logger.debug(f"Cancelled {len(handles)} outstanding timers")

    @property
    def active_timers(self) -> int:
        """Number of timers that can still fire."""
        with self._handles_lock:
            return len(self._handles)

    def _track(self, handle: TimerHandle):
        with self._handles_lock:
            self._handles.add(handle)

    def _forget(self, handle: TimerHandle):
        with self._handles_lock:
            self._handles.discard(handle)
        self._disarm(handle)

    def _fire(self, handle: TimerHandle) -> bool:
        """
        Run a due handle.

        Returns:
            True if the handle should be re-armed
        """
        if handle.cancelled:
            return False
        try:
            handle.callback()
        except Exception as e:
            logger.error(f"Timer '{handle.name}' callback failed: {e}", exc_info=True)
        if handle.repeat and not handle.cancelled:
            return True
        if not handle.repeat:
            with self._handles_lock:
                self._handles.discard(handle)
        return False


class AsyncioScheduler(Scheduler):
    """
    Timers on an asyncio event loop.

    Must be created inside (or handed) the loop that will run the session.
    Timers may be armed from other threads (sensor callbacks); arming is
    then marshalled onto the loop thread.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self._loop = loop or asyncio.get_running_loop()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def now(self) -> float:
        return self._loop.time()

    def _in_loop_thread(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _arm(self, handle: TimerHandle, delay: float):
        if self._in_loop_thread():
            handle._backend = self._loop.call_later(delay, self._on_due, handle)
        else:
            self._loop.call_soon_threadsafe(self._arm, handle, delay)

    def _disarm(self, handle: TimerHandle):
        backend = handle._backend
        if backend is None:
            return
        if self._in_loop_thread():
            backend.cancel()
        else:
            self._loop.call_soon_threadsafe(backend.cancel)

    def _on_due(self, handle: TimerHandle):
        if self._fire(handle):
            handle._backend = self._loop.call_later(handle.interval, self._on_due, handle)


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler driven by advance().

    Timers due at the same instant fire in the order they were armed.
    Not thread-safe: drive it from one thread.

    Usage:
        scheduler = VirtualScheduler()
        scheduler.call_every(1.0, tick)
        scheduler.advance(30.0)   # tick runs 30 times
    """

    def __init__(self, start_time: float = 0.0):
        super().__init__()
        self._now = start_time
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def _arm(self, handle: TimerHandle, delay: float):
        heapq.heappush(self._queue, (self._now + delay, next(self._seq), handle))

    def advance(self, seconds: float) -> int:
        """
        Move the virtual clock forward, firing every timer that falls due.

        Returns:
            Number of callbacks run
        """
        if seconds < 0:
            raise ValueError(f"Cannot move clock backwards: {seconds}")

        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = due
            fired += 1
            if self._fire(handle):
                self._arm(handle, handle.interval)
        self._now = target
        return fired
