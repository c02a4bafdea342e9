"""
SafetySession: one owner for the whole safety core.

The session builds every component around one shared RLock, so the anchor
watch, the collision countdown, the radar table and the track recorder are
all mutated in a serialized way, whichever thread (sensor callback, event
loop, UI) drives them. Alerts are rendered after the lock is released.

Radar runs only when all three hold: the user setting is on, the app is
online, and a user is authenticated (the user id is the radar id). Any
change of the three recomputes it.
"""

import logging
import threading
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from singrar_core.domain.alert_dispatcher import AlertConfig, AlertDispatcher, ToneSink, VisualSink
from singrar_core.domain.anchor_watch import AnchorWatch, AnchorWatchConfig
from singrar_core.domain.collision_detector import CollisionConfig, CollisionDetector
from singrar_core.domain.peer_radar import PeerRadar, PeerRadarConfig
from singrar_core.domain.track_recorder import TrackRecorder, TrackRecorderConfig
from singrar_core.domain.weather_alert import PressureDropConfig, PressureDropMonitor
from singrar_core.io.broadcast import BroadcastTransport
from singrar_core.io.motion import MotionEvent, OrientationEvent, heading_from_orientation
from singrar_core.io.position_source import PositionSource
from singrar_core.io.store import RecordStore
from singrar_core.localization.geo_sampler import GeoSampler, GeoSamplerConfig
from singrar_core.proto.position_sample import PositionSample
from singrar_core.scheduling import Scheduler
from singrar_core.units import SpeedUnit, convert_knots

logger = logging.getLogger(__name__)


def _build(config_cls, values: Optional[Mapping[str, Any]]):
    values = dict(values or {})
    known = {f.name for f in fields(config_cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"{config_cls.__name__}: unknown keys {sorted(unknown)}")
    if 'tone_frequencies_hz' in values:
        values['tone_frequencies_hz'] = tuple(values['tone_frequencies_hz'])
    return config_cls(**values)


@dataclass
class SessionConfig:
    """Every component configuration in one place."""

    sampler: GeoSamplerConfig = field(default_factory=GeoSamplerConfig)
    track: TrackRecorderConfig = field(default_factory=TrackRecorderConfig)
    anchor: AnchorWatchConfig = field(default_factory=AnchorWatchConfig)
    radar: PeerRadarConfig = field(default_factory=PeerRadarConfig)
    collision: CollisionConfig = field(default_factory=CollisionConfig)
    alert: AlertConfig = field(default_factory=AlertConfig)
    weather: PressureDropConfig = field(default_factory=PressureDropConfig)

    @classmethod
    def from_dict(cls, sections: Mapping[str, Mapping[str, Any]]) -> "SessionConfig":
        """
        Build from plain-dict sections.

        Args:
            sections: {'sampler': {...}, 'track': {...}, 'anchor': {...},
                'radar': {...}, 'collision': {...}, 'alert': {...},
                'weather': {...}}; missing sections use defaults

        Raises:
            ValueError: Unknown section or key
        """
        types = {f.name: f.default_factory for f in fields(cls)}
        unknown = set(sections) - set(types)
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")
        return cls(**{
            name: _build(config_cls, sections.get(name))
            for name, config_cls in types.items()
        })


class SafetySession:
    """
    Wires the position watch, recorder, anchor watch, radar, collision
    detector and alerting together.

    Usage:
        session = SafetySession(source, hub, scheduler, user_id="me")
        with session:
            session.set_radar_enabled(True)
            session.anchor.drop_anchor(radius_m=40)
            ...
    """

    def __init__(
        self,
        source: PositionSource,
        transport: BroadcastTransport,
        scheduler: Scheduler,
        user_id: Optional[str] = None,
        config: Optional[SessionConfig] = None,
        track_store: Optional[RecordStore] = None,
        settings_store: Optional[RecordStore] = None,
        tone_sink: Optional[ToneSink] = None,
        visual_sink: Optional[VisualSink] = None,
    ):
        """
        Initialize session.

        Args:
            source: Platform position source
            transport: Broadcast transport for the radar channel
            scheduler: Timer backend for every periodic activity
            user_id: Authenticated user id (None = signed out)
            config: Component configuration (defaults if None)
            track_store: Persistence for finished tracks
            settings_store: Persistence for the anchor alarm
            tone_sink: Plays the alarm tone
            visual_sink: Shows banners/modals
        """
        self.config = config or SessionConfig()
        self.scheduler = scheduler
        self.lock = threading.RLock()

        self._user_id = user_id
        self._radar_setting = False
        self._online = True
        self._last_position: Optional[PositionSample] = None
        self._device_heading: Optional[float] = None
        self.speed_unit = SpeedUnit.KNOTS
        self._started = False

        self.dispatcher = AlertDispatcher(scheduler, tone_sink, visual_sink, self.config.alert)
        self.sampler = GeoSampler(source, self.config.sampler)
        self.recorder = TrackRecorder(track_store, self.config.track, lock=self.lock)
        self.anchor = AnchorWatch(
            self.dispatcher,
            position_provider=lambda: self.last_position,
            store=settings_store,
            config=self.config.anchor,
            lock=self.lock,
        )
        self.radar = PeerRadar(
            transport,
            scheduler,
            self_id=user_id or "",
            position_provider=lambda: self.last_position,
            config=self.config.radar,
            lock=self.lock,
        )
        self.collision = CollisionDetector(
            self.dispatcher,
            scheduler,
            peers_provider=self.radar.peers,
            position_provider=lambda: self.last_position,
            self_id=user_id,
            radar_active=lambda: self.radar.enabled,
            config=self.config.collision,
            lock=self.lock,
        )
        self.weather = PressureDropMonitor(self.dispatcher, self.config.weather)

        # Last known position first, so the consumers below can rely on it
        self.sampler.subscribe(self._remember_position)
        self.sampler.subscribe(self.recorder.on_sample)
        self.sampler.subscribe(self.anchor.on_sample)

    @property
    def last_position(self) -> Optional[PositionSample]:
        return self._last_position

    @property
    def device_heading(self) -> Optional[float]:
        return self._device_heading

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def radar_should_run(self) -> bool:
        return self._radar_setting and self._online and self._user_id is not None

    def start(self):
        """
        Start collision detection, the radar (if allowed) and the position watch.

        Raises:
            SensorUnavailable: Device has no geolocation; everything else
                keeps running
        """
        self._started = True
        self.collision.start()
        self._apply_radar()
        self.sampler.start()
        logger.info("Safety session started")

    def close(self):
        """Cancel every timer, release the position watch and leave the channel."""
        self._started = False
        self.sampler.stop()
        self.radar.disable()
        self.collision.stop()
        self.dispatcher.close()
        self.scheduler.cancel_all()
        logger.info("Safety session closed")

    def __enter__(self) -> "SafetySession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def set_radar_enabled(self, enabled: bool):
        """User radar setting."""
        self._radar_setting = enabled
        self._apply_radar()

    def set_offline_mode(self, offline: bool):
        self._online = not offline
        self._apply_radar()

    def set_authenticated(self, user_id: Optional[str]):
        """Sign in (user id) or out (None)."""
        if user_id != self._user_id and self.radar.enabled:
            # The radar id changes with the user; leave under the old one
            self.radar.disable()
        with self.lock:
            self._user_id = user_id
            self.radar.self_id = user_id or ""
            self.collision.self_id = user_id
        self._apply_radar()

    def on_motion(self, event: MotionEvent) -> bool:
        return self.collision.on_motion(event)

    def toggle_emergency(self) -> bool:
        """
        SOS button: declare an emergency, or clear the one in progress.

        Returns:
            True if the session is now in emergency
        """
        with self.lock:
            if self.collision.state.is_emergency:
                self.collision.clear_emergency()
                return False
            self.collision.declare_emergency()
            return True

    def on_orientation(self, event: OrientationEvent) -> Optional[float]:
        """Update the device heading; returns it (None if unchanged)."""
        heading = heading_from_orientation(event)
        if heading is not None:
            with self.lock:
                self._device_heading = heading
        return heading

    def cycle_speed_unit(self) -> SpeedUnit:
        self.speed_unit = self.speed_unit.next()
        return self.speed_unit

    def display_speed(self) -> float:
        """Current speed in the selected unit (0 without a position)."""
        position = self.last_position
        knots = position.speed_knots if position is not None else 0.0
        return convert_knots(knots, self.speed_unit)

    def status(self) -> Dict[str, Any]:
        """Snapshot for display and logging."""
        with self.lock:
            position = self._last_position
            collision = self.collision.state
            return {
                'position': position.to_dict() if position is not None else None,
                'signal': self.sampler.signal_strength.name,
                'speed': round(self.display_speed(), 1),
                'speed_unit': self.speed_unit.value,
                'device_heading': self._device_heading,
                'recording': self.recorder.is_recording,
                'track_points': len(self.recorder.current_track),
                'anchor': self.anchor.state.value,
                'anchor_distance_m': self.anchor.last_distance_m,
                'radar': self.radar.enabled,
                'peers': len(self.radar),
                'collision': collision.phase.value,
                'countdown_s': collision.seconds_remaining,
                'weather_alert': self.weather.active,
            }

    def _remember_position(self, sample: PositionSample):
        with self.lock:
            self._last_position = sample

    def _apply_radar(self):
        if not self._started:
            return
        if self.radar_should_run:
            # Also re-joins after a dropped channel
            self.radar.enable()
        elif self.radar.enabled:
            self.radar.disable()
