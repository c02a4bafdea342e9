"""
GeoSampler: continuous position ingestion.

Wraps the platform position watch, turns raw fixes into PositionSamples and
publishes them to subscribers (track recorder, anchor watch, last known
location). Sensor errors are logged and the watch stays up.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional

from singrar_core.errors import SensorTimeout, SensorUnavailable
from singrar_core.io.position_source import PositionSource, WatchOptions
from singrar_core.metrics import get_metrics
from singrar_core.proto.position_sample import PositionSample
from .fix_quality import SignalStrength, classify_accuracy

logger = logging.getLogger(__name__)

SampleCallback = Callable[[PositionSample], None]


@dataclass
class GeoSamplerConfig:
    """
    Configuration for GeoSampler.

    Attributes:
        high_accuracy: Request GPS-grade fixes
        max_cached_age_s: Oldest cached fix accepted from the platform
        watch_timeout_s: Platform timeout for each continuous fix
        refresh_timeout_s: Give up on a forced refresh after this long
        max_accuracy_m: Drop fixes worse than this before publishing
            (None publishes everything; consumers apply their own limits)
    """

    high_accuracy: bool = True
    max_cached_age_s: float = 0.0
    watch_timeout_s: float = 5.0
    refresh_timeout_s: float = 5.0
    max_accuracy_m: Optional[float] = None


class GeoSampler:
    """
    Normalizes and fans out platform location fixes.

    Usage:
        sampler = GeoSampler(source)
        unsubscribe = sampler.subscribe(recorder.on_sample)

        with sampler:            # watch released on exit
            ...
            sample = await sampler.force_refresh()

    Notes:
        - The same fix delivered twice is published once
        - A failing subscriber does not stop delivery to the others
    """

    def __init__(
        self,
        source: PositionSource,
        config: Optional[GeoSamplerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize sampler.

        Args:
            source: Platform position source
            config: Sampler configuration (uses defaults if None)
            clock: Timestamp for fixes that arrive without one
        """
        self.source = source
        self.config = config or GeoSamplerConfig()
        self._clock = clock
        self.metrics = get_metrics()

        self._lock = threading.Lock()
        self._subscribers: List[SampleCallback] = []
        self._watch_handle: Optional[Any] = None
        self._last_received: Optional[PositionSample] = None
        self._last_sample: Optional[PositionSample] = None
        self._unavailable_reported = False

    @property
    def watch_options(self) -> WatchOptions:
        return WatchOptions(
            high_accuracy=self.config.high_accuracy,
            max_cached_age_s=self.config.max_cached_age_s,
            timeout_s=self.config.watch_timeout_s,
        )

    @property
    def is_running(self) -> bool:
        return self._watch_handle is not None

    @property
    def last_sample(self) -> Optional[PositionSample]:
        """Most recent published sample (kept across errors and timeouts)."""
        with self._lock:
            return self._last_sample

    @property
    def signal_strength(self) -> SignalStrength:
        sample = self.last_sample
        return classify_accuracy(sample.accuracy_m if sample else None)

    def subscribe(self, callback: SampleCallback) -> Callable[[], None]:
        """
        Register a sample consumer.

        Returns:
            Function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def start(self):
        """
        Start the continuous watch.

        Raises:
            SensorUnavailable: First time the source turns out to have no
                geolocation capability. Later calls return quietly.
        """
        if self._watch_handle is not None:
            return

        if not self.source.available:
            if self._unavailable_reported:
                logger.debug("Geolocation unavailable, not retrying")
                return
            self._unavailable_reported = True
            logger.error("Geolocation is not available on this device")
            raise SensorUnavailable("Device has no geolocation capability")

        self._watch_handle = self.source.start_watch(
            self._on_fix, self._on_error, self.watch_options
        )
        logger.info("Position watch started")

    def stop(self):
        """Release the platform watch."""
        handle, self._watch_handle = self._watch_handle, None
        if handle is not None:
            self.source.stop_watch(handle)
            logger.info("Position watch released")

    def __enter__(self) -> "GeoSampler":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    async def force_refresh(self, timeout_s: Optional[float] = None) -> PositionSample:
        """
        Request one fresh fix and publish it like any other.

        Args:
            timeout_s: Override of config.refresh_timeout_s

        Returns:
            The fresh PositionSample

        Raises:
            SensorUnavailable: No geolocation capability
            SensorTimeout: No fix within the timeout (last sample is kept)
            ValueError: The platform returned a malformed fix
        """
        if not self.source.available:
            raise SensorUnavailable("Device has no geolocation capability")

        timeout = self.config.refresh_timeout_s if timeout_s is None else timeout_s
        options = WatchOptions(
            high_accuracy=self.config.high_accuracy,
            max_cached_age_s=0.0,
            timeout_s=timeout,
        )

        try:
            raw = await asyncio.wait_for(self.source.request_fix(options), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Forced position refresh timed out after {timeout:.1f}s")
            raise SensorTimeout(f"No fix within {timeout:.1f}s") from None

        self.metrics.increment('fixes_in')
        sample = PositionSample.from_fix(raw, default_timestamp=self._clock())
        self._accept(sample)
        return sample

    def _on_fix(self, raw: Mapping[str, Any]):
        """Watch callback for each raw fix."""
        self.metrics.increment('fixes_in')
        try:
            sample = PositionSample.from_fix(raw, default_timestamp=self._clock())
        except (ValueError, TypeError) as e:
            logger.warning(f"Dropping malformed fix: {e}")
            self.metrics.increment_drop('malformed_fix')
            return
        self._accept(sample)

    def _on_error(self, error: Exception):
        """Watch error callback: log and keep watching."""
        logger.warning(f"Geolocation error: {error}")
        self.metrics.increment_drop('sensor_error')

    def _accept(self, sample: PositionSample) -> bool:
        """Publish sample unless it is a redelivery or too inaccurate."""
        with self._lock:
            if sample.same_fix_as(self._last_received):
                self.metrics.increment_drop('duplicate_fix')
                return False
            self._last_received = sample

            max_acc = self.config.max_accuracy_m
            if max_acc is not None and sample.accuracy_m > max_acc:
                self.metrics.increment_drop('low_accuracy')
                return False

            self._last_sample = sample
            subscribers = list(self._subscribers)

        self.metrics.increment('samples_published')
        self.metrics.record_histogram('fix_accuracy_m', sample.accuracy_m)

        for callback in subscribers:
            try:
                callback(sample)
            except Exception as e:
                logger.error(f"Sample subscriber {callback!r} failed: {e}", exc_info=True)
        return True
