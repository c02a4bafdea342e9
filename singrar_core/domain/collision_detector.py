"""
Collision Detector.

State machine:

    IDLE --proximity or motion spike--> COUNTING_DOWN(30)
    COUNTING_DOWN(n) --1 Hz tick--> COUNTING_DOWN(n-1)
    COUNTING_DOWN(0) --same tick--> EMERGENCY
    COUNTING_DOWN --cancel()--> IDLE
    IDLE or COUNTING_DOWN --declare_emergency() (SOS)--> EMERGENCY
    EMERGENCY --clear_emergency()--> IDLE

Two producers can start a countdown:
- proximity check every 3 s: a peer closer than 50 m moving faster than
  1 m/s (own position known, radar active)
- motion spike: linear acceleration magnitude above 25 m/s^2

Both, plus the ticker, mutate the state under one lock. The first trigger
wins; a second trigger while counting or in emergency is ignored, so only
one countdown ever exists. Listeners are called with the lock held, in
transition order, and must not block; alerts are rendered after release.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional
import numpy as np

from singrar_core.domain.alert_dispatcher import AlertDispatcher
from singrar_core.io.motion import MotionEvent
from singrar_core.localization.geodesy import haversine_many
from singrar_core.metrics import get_metrics
from singrar_core.proto.alert_event import AlertEvent, AlertKind
from singrar_core.proto.peer_message import PeerPosition
from singrar_core.proto.position_sample import PositionSample
from singrar_core.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class CollisionPhase(Enum):
    IDLE = "idle"
    COUNTING_DOWN = "counting_down"
    EMERGENCY = "emergency"


class CollisionTrigger(Enum):
    PROXIMITY = "proximity"
    MOTION = "motion"
    MANUAL = "manual"


@dataclass(frozen=True)
class CollisionState:
    """
    Collision phase plus countdown.

    seconds_remaining is set (0 or more) only while COUNTING_DOWN.
    """

    phase: CollisionPhase = CollisionPhase.IDLE
    seconds_remaining: Optional[int] = None

    def __post_init__(self):
        if self.phase is CollisionPhase.COUNTING_DOWN:
            if self.seconds_remaining is None or self.seconds_remaining < 0:
                raise ValueError(f"Countdown needs seconds_remaining >= 0: {self.seconds_remaining}")
        elif self.seconds_remaining is not None:
            raise ValueError(f"{self.phase.value} cannot carry a countdown")

    @classmethod
    def counting(cls, seconds: int) -> "CollisionState":
        return cls(CollisionPhase.COUNTING_DOWN, seconds)

    @property
    def is_idle(self) -> bool:
        return self.phase is CollisionPhase.IDLE

    @property
    def is_counting(self) -> bool:
        return self.phase is CollisionPhase.COUNTING_DOWN

    @property
    def is_emergency(self) -> bool:
        return self.phase is CollisionPhase.EMERGENCY


IDLE = CollisionState()
EMERGENCY = CollisionState(CollisionPhase.EMERGENCY)

StateListener = Callable[[CollisionState], None]


@dataclass
class CollisionConfig:
    """
    Configuration for collision detection.

    Attributes:
        proximity_m: Peers closer than this are a threat
        min_peer_speed_mps: ...and only if moving faster than this
        motion_threshold_mps2: Acceleration magnitude treated as an impact
        countdown_s: Countdown length before emergency
        check_interval_s: Proximity check period
        tick_interval_s: Countdown tick period
        alert_on_motion: Dispatch COLLISION_IMMINENT for motion spikes too
    """

    proximity_m: float = 50.0
    min_peer_speed_mps: float = 1.0
    motion_threshold_mps2: float = 25.0
    countdown_s: int = 30
    check_interval_s: float = 3.0
    tick_interval_s: float = 1.0
    alert_on_motion: bool = True


class CollisionDetector:
    """
    Countdown-to-emergency state machine.

    Usage:
        detector = CollisionDetector(dispatcher, scheduler,
                                     peers_provider=radar.peers,
                                     position_provider=lambda: last_sample,
                                     self_id="me")
        detector.add_listener(lambda state: print(state))
        detector.start()

        detector.on_motion(MotionEvent(30.0, 0.0, 0.0))
        ...
        detector.cancel()            # crew is fine
        detector.declare_emergency()  # SOS button
        detector.clear_emergency()   # acknowledged
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher,
        scheduler: Scheduler,
        peers_provider: Callable[[], Iterable[PeerPosition]] = lambda: (),
        position_provider: Callable[[], Optional[PositionSample]] = lambda: None,
        self_id: Optional[str] = None,
        radar_active: Callable[[], bool] = lambda: True,
        config: Optional[CollisionConfig] = None,
        lock: Optional[threading.RLock] = None,
    ):
        """
        Initialize detector.

        Args:
            dispatcher: Receives COLLISION_IMMINENT alerts
            scheduler: Runs the proximity check and the countdown ticker
            peers_provider: Returns the current peer snapshot
            position_provider: Returns own last known position
            self_id: Own peer id (never treated as a threat)
            radar_active: Proximity checks run only while this is True
            config: Configuration (uses defaults if None)
            lock: Shared session lock (private lock if None)
        """
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.config = config or CollisionConfig()
        self.self_id = self_id
        self._peers = peers_provider
        self._position = position_provider
        self._radar_active = radar_active
        self._lock = lock or threading.RLock()
        self.metrics = get_metrics()

        self._state = IDLE
        self._trigger: Optional[CollisionTrigger] = None
        self._countdown_id = 0
        self._ticker: Optional[TimerHandle] = None
        self._check_timer: Optional[TimerHandle] = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> CollisionState:
        return self._state

    @property
    def trigger(self) -> Optional[CollisionTrigger]:
        """What started the current countdown or emergency."""
        return self._trigger

    @property
    def is_running(self) -> bool:
        return self._check_timer is not None

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """
        Observe every state change, including the transient COUNTING_DOWN(0).

        Returns:
            Function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def remove():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def start(self):
        """Start the periodic proximity check."""
        with self._lock:
            if self._check_timer is not None:
                return
            self._check_timer = self.scheduler.call_every(
                self.config.check_interval_s, self._check_tick, name="collision-check")
        logger.info("Collision detection started")

    def stop(self):
        """Cancel the proximity check and any running countdown ticker."""
        with self._lock:
            for timer in (self._check_timer, self._ticker):
                if timer is not None:
                    timer.cancel()
            self._check_timer = None
            self._ticker = None

    def check_proximity(self) -> Optional[PeerPosition]:
        """
        Look for a moving peer inside the proximity radius.

        Starts the countdown when one is found.

        Returns:
            Closest threatening peer, or None
        """
        if not self._state.is_idle or not self._radar_active():
            return None
        own = self._position()
        if own is None:
            return None

        peers = [p for p in self._peers() if p.peer_id != self.self_id]
        if not peers:
            return None

        distances = haversine_many(
            own.lat, own.lng,
            [p.lat for p in peers],
            [p.lng for p in peers],
        )
        speeds = np.array([p.speed_or_zero for p in peers], dtype=float)
        threats = (distances < self.config.proximity_m) & (speeds > self.config.min_peer_speed_mps)
        if not threats.any():
            return None

        idx = int(np.argmin(np.where(threats, distances, np.inf)))
        peer = peers[idx]
        distance = float(distances[idx])
        self.metrics.record_histogram('peer_distance_m', distance)

        event = AlertEvent(
            kind=AlertKind.COLLISION_IMMINENT,
            timestamp=self.scheduler.now(),
            message=f"Collision risk! Vessel {peer.peer_id} at {distance:.0f} m",
            details={
                'trigger': CollisionTrigger.PROXIMITY.value,
                'peer_id': peer.peer_id,
                'distance_m': distance,
                'peer_speed_mps': peer.speed_or_zero,
            },
        )
        self._start_countdown(CollisionTrigger.PROXIMITY, event)
        return peer

    def on_motion(self, event: MotionEvent) -> bool:
        """
        Feed one device-motion sample.

        Returns:
            True if this sample started a countdown
        """
        magnitude = event.magnitude
        if magnitude <= self.config.motion_threshold_mps2:
            return False
        if not self._state.is_idle:
            return False

        alert = None
        if self.config.alert_on_motion:
            alert = AlertEvent(
                kind=AlertKind.COLLISION_IMMINENT,
                timestamp=self.scheduler.now(),
                message=f"Impact detected ({magnitude:.1f} m/s2)",
                details={
                    'trigger': CollisionTrigger.MOTION.value,
                    'magnitude_mps2': magnitude,
                },
            )
        return self._start_countdown(CollisionTrigger.MOTION, alert)

    def tick(self):
        """Advance the countdown by one second."""
        with self._lock:
            if not self._state.is_counting:
                return
            remaining = self._state.seconds_remaining - 1
            self._state = CollisionState.counting(max(remaining, 0))
            changes = [self._state]

            if self._state.seconds_remaining == 0:
                self._cancel_ticker()
                self._state = EMERGENCY
                changes.append(self._state)
            self._notify(changes)

        if changes[-1].is_emergency:
            self.metrics.increment('emergencies')
            logger.critical(f"EMERGENCY: countdown expired "
                            f"(trigger: {self._trigger.value if self._trigger else 'unknown'})")

    def cancel(self) -> bool:
        """
        Abort a running countdown (COUNTING_DOWN -> IDLE).

        Returns:
            True if a countdown was cancelled
        """
        with self._lock:
            if not self._state.is_counting:
                return False
            remaining = self._state.seconds_remaining
            self._cancel_ticker()
            self._state = IDLE
            self._trigger = None
            self._notify([IDLE])

        logger.info(f"Collision countdown cancelled with {remaining}s left")
        return True

    def declare_emergency(self) -> bool:
        """
        Enter EMERGENCY by hand (SOS) from IDLE or COUNTING_DOWN.

        Returns:
            True if the state changed (False if already in emergency)
        """
        with self._lock:
            if self._state.is_emergency:
                return False
            self._cancel_ticker()
            self._state = EMERGENCY
            self._trigger = CollisionTrigger.MANUAL
            self._notify([EMERGENCY])

        self.metrics.increment('emergencies')
        logger.critical("EMERGENCY declared by crew")
        return True

    def clear_emergency(self) -> bool:
        """
        Leave EMERGENCY (EMERGENCY -> IDLE).

        Returns:
            True if an emergency was cleared
        """
        with self._lock:
            if not self._state.is_emergency:
                return False
            self._state = IDLE
            self._trigger = None
            self._notify([IDLE])

        logger.info("Emergency cleared")
        return True

    def _start_countdown(self, trigger: CollisionTrigger,
                         event: Optional[AlertEvent]) -> bool:
        with self._lock:
            if not self._state.is_idle:
                return False
            self._state = CollisionState.counting(self.config.countdown_s)
            self._trigger = trigger
            self._countdown_id += 1
            countdown_id = self._countdown_id
            self._ticker = self.scheduler.call_every(
                self.config.tick_interval_s, self.tick, name="collision-countdown")
            self._notify([self._state])

        self.metrics.increment('collision_countdowns')
        logger.warning(f"Collision countdown started ({trigger.value}): "
                       f"{self.config.countdown_s}s to emergency")

        if event is not None:
            with self._lock:
                # Cancelled (or already expired) before the alert went out
                current = countdown_id == self._countdown_id and not self._state.is_idle
            if current:
                self.dispatcher.dispatch(event)
        return True

    def _check_tick(self):
        self.check_proximity()

    def _cancel_ticker(self):
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _notify(self, states: List[CollisionState]):
        # Called with the lock held so listeners see transitions in order
        for state in states:
            for listener in list(self._listeners):
                try:
                    listener(state)
                except Exception as e:
                    logger.error(f"Collision listener failed: {e}", exc_info=True)
