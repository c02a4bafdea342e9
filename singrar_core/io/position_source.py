"""
Position source contract.

The platform location service is push-based: a continuous watch delivers
raw fixes (or errors) to callbacks, and a one-shot request returns a single
fresh fix. Raw fixes are mappings with latitude, longitude, heading, speed,
accuracy and timestamp keys.

SimulatedPositionSource implements the contract in-process for replays,
the command-line runner and tests.
"""

import asyncio
import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

FixCallback = Callable[[Mapping[str, Any]], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class WatchOptions:
    """
    Options for a position watch or one-shot request.

    Attributes:
        high_accuracy: Ask for GPS-grade fixes rather than network location
        max_cached_age_s: Oldest cached fix the platform may return (0 = fresh only)
        timeout_s: How long the platform may take to produce a fix
    """

    high_accuracy: bool = True
    max_cached_age_s: float = 0.0
    timeout_s: float = 5.0


class PositionSource(ABC):
    """Platform geolocation service."""

    @property
    def available(self) -> bool:
        """False when the device has no geolocation capability."""
        return True

    @abstractmethod
    def start_watch(self, on_fix: FixCallback, on_error: ErrorCallback,
                    options: WatchOptions) -> Any:
        """Start continuous delivery; returns a handle for stop_watch()."""

    @abstractmethod
    def stop_watch(self, handle: Any):
        """Release a watch started with start_watch()."""

    @abstractmethod
    async def request_fix(self, options: WatchOptions) -> Mapping[str, Any]:
        """Obtain one fresh fix."""


class SimulatedPositionSource(PositionSource):
    """
    In-process position source driven by push_fix()/push_error().

    A pending request_fix() is satisfied by the next pushed fix, or
    immediately by a fix queued with queue_fix().
    """

    def __init__(self, available: bool = True):
        self._available = available
        self._lock = threading.Lock()
        self._watches: Dict[int, Tuple[FixCallback, ErrorCallback]] = {}
        self._ids = itertools.count(1)
        self._pending: List[asyncio.Future] = []
        self._queued: List[Mapping[str, Any]] = []

    @property
    def available(self) -> bool:
        return self._available

    @property
    def active_watches(self) -> int:
        with self._lock:
            return len(self._watches)

    def start_watch(self, on_fix: FixCallback, on_error: ErrorCallback,
                    options: WatchOptions) -> int:
        with self._lock:
            watch_id = next(self._ids)
            self._watches[watch_id] = (on_fix, on_error)
        logger.debug(f"Watch {watch_id} started (high_accuracy={options.high_accuracy}, "
                     f"timeout={options.timeout_s}s)")
        return watch_id

    def stop_watch(self, handle: int):
        with self._lock:
            self._watches.pop(handle, None)
        logger.debug(f"Watch {handle} stopped")

    def push_fix(self, raw: Mapping[str, Any]):
        """Deliver a fix to every watch and to pending one-shot requests."""
        with self._lock:
            watches = list(self._watches.values())
            pending, self._pending = self._pending, []

        for future in pending:
            future.get_loop().call_soon_threadsafe(_resolve, future, raw)

        for on_fix, _ in watches:
            on_fix(raw)

    def push_error(self, error: Exception):
        """Report a sensor error to every watch."""
        with self._lock:
            watches = list(self._watches.values())
        for _, on_error in watches:
            on_error(error)

    def queue_fix(self, raw: Mapping[str, Any]):
        """Make the next request_fix() return raw immediately."""
        with self._lock:
            self._queued.append(raw)

    async def request_fix(self, options: WatchOptions) -> Mapping[str, Any]:
        with self._lock:
            if self._queued:
                return self._queued.pop(0)
            future = asyncio.get_running_loop().create_future()
            self._pending.append(future)

        try:
            return await future
        finally:
            with self._lock:
                if future in self._pending:
                    self._pending.remove(future)


def _resolve(future: asyncio.Future, raw: Mapping[str, Any]):
    if not future.done():
        future.set_result(raw)
