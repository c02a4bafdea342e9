"""
Anchor Watch (drift geofence).

State machine:

    DISARMED --drop_anchor--> ARMED --outside radius--> ALERTING
                                ^                           |
                                +-------inside radius-------+
    any state --raise_anchor--> DISARMED

Entering ALERTING starts a repeating ANCHOR_DRIFT alert. Staying outside
does not restart it. dismiss() silences the repeat but keeps ALERTING until
the boat is back inside the circle or the anchor is raised.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from singrar_core.domain.alert_dispatcher import AlertDispatcher
from singrar_core.errors import InvalidGeofence, NoPositionFix
from singrar_core.io.store import RecordStore
from singrar_core.localization.geodesy import haversine_m
from singrar_core.metrics import get_metrics
from singrar_core.proto.alert_event import AlertEvent, AlertKind
from singrar_core.proto.position_sample import PositionSample

logger = logging.getLogger(__name__)


class AnchorState(Enum):
    DISARMED = "disarmed"
    ARMED = "armed"
    ALERTING = "alerting"


@dataclass(frozen=True)
class AnchorAlarm:
    """
    The anchor geofence.

    Attributes:
        active: True while the anchor is down
        origin_lat: Latitude where the anchor was dropped
        origin_lng: Longitude where the anchor was dropped
        radius_m: Swing radius in meters (> 0 when active)
    """

    active: bool
    origin_lat: float = 0.0
    origin_lng: float = 0.0
    radius_m: float = 0.0

    def __post_init__(self):
        if self.active and not self.radius_m > 0:
            raise InvalidGeofence(f"Anchor radius must be positive: {self.radius_m}")

    def distance_from_origin(self, lat: float, lng: float) -> float:
        return haversine_m(self.origin_lat, self.origin_lng, lat, lng)


INACTIVE_ALARM = AnchorAlarm(active=False)


@dataclass
class AnchorWatchConfig:
    """
    Configuration for anchor watch.

    Attributes:
        default_radius_m: Radius used when drop_anchor() gets none
        store_key: Record id of the persisted alarm
    """

    default_radius_m: float = 50.0
    store_key: str = "anchor"


class AnchorWatch:
    """
    Evaluates anchor drift on every position sample.

    Usage:
        watch = AnchorWatch(dispatcher, position_provider=sampler_last)
        sampler.subscribe(watch.on_sample)

        watch.drop_anchor(radius_m=30)
        ...
        watch.dismiss()        # silence, still ALERTING
        watch.raise_anchor()
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        position_provider: Callable[[], Optional[PositionSample]] = lambda: None,
        store: Optional[RecordStore] = None,
        config: Optional[AnchorWatchConfig] = None,
        lock: Optional[threading.RLock] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize anchor watch.

        Args:
            dispatcher: Receives the ANCHOR_DRIFT alert
            position_provider: Returns the current position (anchor origin)
            store: Persists the alarm (optional)
            config: Configuration (uses defaults if None)
            lock: Shared session lock (private lock if None)
            clock: Alert timestamps (dispatcher's scheduler clock if None)
        """
        self.dispatcher = dispatcher
        self.config = config or AnchorWatchConfig()
        self.store = store
        self._position = position_provider
        self._lock = lock or threading.RLock()
        self._clock = clock or dispatcher.scheduler.now
        self.metrics = get_metrics()

        self._state = AnchorState.DISARMED
        self._alarm = INACTIVE_ALARM
        self._last_distance_m: Optional[float] = None
        self._dismissed = False
        self._alert_starts = 0

    @property
    def state(self) -> AnchorState:
        return self._state

    @property
    def alarm(self) -> AnchorAlarm:
        return self._alarm

    @property
    def last_distance_m(self) -> Optional[float]:
        return self._last_distance_m

    @property
    def is_dismissed(self) -> bool:
        return self._dismissed

    @property
    def alert_starts(self) -> int:
        """How many times ALERTING was entered since the anchor was dropped."""
        return self._alert_starts

    def drop_anchor(self, radius_m: Optional[float] = None,
                    origin: Optional[PositionSample] = None) -> AnchorAlarm:
        """
        Arm the geofence around origin (current position if None).

        Raises:
            InvalidGeofence: radius_m <= 0 (state unchanged)
            NoPositionFix: No origin given and no position known yet
        """
        radius = self.config.default_radius_m if radius_m is None else radius_m
        if not radius > 0:
            raise InvalidGeofence(f"Anchor radius must be positive: {radius}")

        origin = origin or self._position()
        if origin is None:
            raise NoPositionFix("Cannot drop anchor without a position fix")

        alarm = AnchorAlarm(
            active=True,
            origin_lat=origin.lat,
            origin_lng=origin.lng,
            radius_m=float(radius),
        )

        with self._lock:
            if self._state is AnchorState.ALERTING:
                self.dispatcher.stop_repeating(AlertKind.ANCHOR_DRIFT)
            self._state = AnchorState.ARMED
            self._alarm = alarm
            self._last_distance_m = 0.0
            self._dismissed = False
            self._alert_starts = 0

        if self.store is not None:
            self.store.upsert(self.config.store_key, alarm)

        logger.info(f"Anchor dropped at ({alarm.origin_lat:.6f}, {alarm.origin_lng:.6f}), "
                    f"radius {alarm.radius_m:.0f} m")
        return alarm

    def raise_anchor(self):
        """Disarm from any state."""
        with self._lock:
            previous = self._state
            self._state = AnchorState.DISARMED
            self._alarm = INACTIVE_ALARM
            self._last_distance_m = None
            self._dismissed = False
            self.dispatcher.stop_repeating(AlertKind.ANCHOR_DRIFT)

        if self.store is not None:
            self.store.delete(self.config.store_key)

        if previous is not AnchorState.DISARMED:
            logger.info("Anchor raised")

    def dismiss(self) -> bool:
        """
        Silence the repeating alert; state stays ALERTING.

        Returns:
            True if a repeat was silenced
        """
        with self._lock:
            if self._state is not AnchorState.ALERTING:
                return False
            self._dismissed = True
            return self.dispatcher.stop_repeating(AlertKind.ANCHOR_DRIFT)

    def on_sample(self, sample: PositionSample):
        """
        Evaluate drift for one position sample.

        The repeat timer is armed and cancelled under the lock together with
        the state change; only the first rendering happens after it.
        """
        start_event = None
        back_inside = False

        with self._lock:
            if self._state is AnchorState.DISARMED:
                return

            distance = self._alarm.distance_from_origin(sample.lat, sample.lng)
            self._last_distance_m = distance

            if distance > self._alarm.radius_m:
                if self._state is not AnchorState.ALERTING:
                    self._state = AnchorState.ALERTING
                    self._dismissed = False
                    self._alert_starts += 1
                    event = AlertEvent(
                        kind=AlertKind.ANCHOR_DRIFT,
                        timestamp=self._clock(),
                        message=(f"Anchor alarm! Moved {distance:.0f} m "
                                 f"(limit {self._alarm.radius_m:.0f} m)"),
                        details={
                            'distance_m': distance,
                            'radius_m': self._alarm.radius_m,
                        },
                    )
                    if self.dispatcher.arm_repeat(event):
                        start_event = event
            elif self._state is AnchorState.ALERTING:
                self._state = AnchorState.ARMED
                self._dismissed = False
                self.dispatcher.stop_repeating(AlertKind.ANCHOR_DRIFT)
                back_inside = True

        self.metrics.record_histogram('anchor_drift_m', distance)

        if start_event is not None:
            self.metrics.increment('anchor_alerts')
            logger.warning(start_event.message)
            # Raised or dismissed meanwhile: nothing left to announce
            if self.dispatcher.is_repeating(AlertKind.ANCHOR_DRIFT):
                self.dispatcher.dispatch(start_event)
        elif back_inside:
            logger.info(f"Back inside anchor circle ({distance:.0f} m)")
