"""
Track Recorder.

Builds a route from position samples while recording is active:
- samples with accuracy worse than 30 m are noise and are dropped
- a point is appended only if it is the first one or lies more than 5 m
  from the last recorded point, which thins dense GPS chatter without
  losing the shape of the route

Stopping materializes the points into a Track and persists it.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

from singrar_core.io.store import InMemoryRecordStore, RecordStore
from singrar_core.localization.fix_quality import is_accurate_enough
from singrar_core.localization.geodesy import haversine_m, track_length_m
from singrar_core.metrics import get_metrics
from singrar_core.proto.position_sample import PositionSample, Track, TrackPoint

logger = logging.getLogger(__name__)

TRACK_COLORS = (
    "#64ffda",
    "#ff6b00",
    "#00e5ff",
    "#f472b6",
    "#facc15",
    "#a78bfa",
)


@dataclass
class TrackRecorderConfig:
    """
    Configuration for track recording.

    Attributes:
        max_accuracy_m: Samples less accurate than this are dropped
        min_displacement_m: Minimum spacing between recorded points
        default_name_prefix: Name used when stop_recording() gets none
    """

    max_accuracy_m: float = 30.0
    min_displacement_m: float = 5.0
    default_name_prefix: str = "Track"


class TrackRecorder:
    """
    Records the current route from published samples.

    Usage:
        recorder = TrackRecorder(store)
        sampler.subscribe(recorder.on_sample)

        recorder.start_recording()
        ...
        track = recorder.stop_recording("Morning trolling")
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        config: Optional[TrackRecorderConfig] = None,
        lock: Optional[threading.RLock] = None,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        """
        Initialize recorder.

        Args:
            store: Where finished tracks are persisted
            config: Recorder configuration (uses defaults if None)
            lock: Shared session lock (private lock if None)
            id_factory: Generates track ids
        """
        self.store = store if store is not None else InMemoryRecordStore("tracks")
        self.config = config or TrackRecorderConfig()
        self._lock = lock or threading.RLock()
        self._new_id = id_factory
        self.metrics = get_metrics()

        self._is_recording = False
        self._points: List[TrackPoint] = []
        self._last_recorded: Optional[PositionSample] = None

    @property
    def is_recording(self) -> bool:
        return self._is_recording

    @property
    def current_track(self) -> Tuple[TrackPoint, ...]:
        with self._lock:
            return tuple(self._points)

    @property
    def last_recorded(self) -> Optional[PositionSample]:
        return self._last_recorded

    @property
    def distance_m(self) -> float:
        """Length of the track being recorded."""
        with self._lock:
            return track_length_m(self._points)

    def start_recording(self):
        """Begin a new recording, discarding any unsaved points."""
        with self._lock:
            if self._is_recording and self._points:
                logger.warning(f"Restarting recording, discarding {len(self._points)} points")
            self._is_recording = True
            self._points = []
            self._last_recorded = None
        logger.info("Track recording started")

    def on_sample(self, sample: PositionSample) -> bool:
        """
        Consume one published sample.

        Returns:
            True if a point was appended
        """
        with self._lock:
            if not self._is_recording:
                self._last_recorded = None
                return False

            if not is_accurate_enough(sample.accuracy_m, self.config.max_accuracy_m):
                self.metrics.increment_drop('low_accuracy')
                return False

            if self._last_recorded is not None:
                moved = haversine_m(
                    self._last_recorded.lat, self._last_recorded.lng,
                    sample.lat, sample.lng,
                )
                if moved <= self.config.min_displacement_m:
                    self.metrics.increment_drop('below_min_displacement')
                    return False

            self._points.append(TrackPoint.from_sample(sample))
            self._last_recorded = sample

        self.metrics.increment('track_points')
        return True

    def stop_recording(self, name: Optional[str] = None) -> Optional[Track]:
        """
        Finish the recording and persist it.

        Args:
            name: Track name (defaults to "<prefix> <n>")

        Returns:
            The persisted Track, or None if nothing was being recorded
        """
        with self._lock:
            if not self._is_recording:
                logger.warning("stop_recording() called while not recording")
                return None

            count = len(self.store.list())
            track = Track(
                id=self._new_id(),
                name=name or f"{self.config.default_name_prefix} {count + 1}",
                color=TRACK_COLORS[count % len(TRACK_COLORS)],
                points=tuple(self._points),
            )
            self._is_recording = False
            self._points = []
            self._last_recorded = None

        self.store.create(track.id, track)
        logger.info(f"Track '{track.name}' saved: {track.num_points} points, "
                    f"{track_length_m(track.points):.0f} m")
        return track

    def tracks(self) -> List[Track]:
        return self.store.list()

    def rename_track(self, track_id: str, name: str) -> Track:
        return self._edit(track_id, name=name)

    def set_track_visible(self, track_id: str, visible: bool) -> Track:
        return self._edit(track_id, visible=visible)

    def set_track_color(self, track_id: str, color: str) -> Track:
        return self._edit(track_id, color=color)

    def delete_track(self, track_id: str) -> bool:
        return self.store.delete(track_id)

    def _edit(self, track_id: str, **changes) -> Track:
        track = self.store.read(track_id)
        if track is None:
            raise KeyError(f"No track '{track_id}'")
        return self.store.update(track_id, replace(track, **changes))


def create_default_recorder(store: Optional[RecordStore] = None) -> TrackRecorder:
    """
    Create a track recorder with the standard noise filter.

    Returns:
        Configured TrackRecorder
    """
    config = TrackRecorderConfig(
        max_accuracy_m=30.0,      # worse fixes are GPS noise
        min_displacement_m=5.0,   # thin out chatter at anchor or slow speed
    )

    return TrackRecorder(store, config)
