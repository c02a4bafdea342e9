"""
Integration tests for SafetySession.

Tests cover:
- Radar gating on setting, connectivity and authentication
- Anchor drift end to end (fix -> ALERTING -> one repeating alert -> raise)
- Collision end to end (peer broadcast -> countdown -> emergency)
- Motion and orientation routing, speed units, status snapshot
- SessionConfig.from_dict and teardown
"""

import pytest

import config
from singrar_core.domain import AnchorState, CollisionState
from singrar_core.errors import SensorUnavailable
from singrar_core.io import (
    InMemoryBroadcastHub,
    InMemoryRecordStore,
    MotionEvent,
    OrientationEvent,
    SimulatedPositionSource,
)
from singrar_core.proto import AlertKind, PeerBroadcast
from singrar_core.session import SafetySession, SessionConfig
from singrar_core.units import SpeedUnit


def fix(lat: float, lng: float, timestamp: float, speed: float = 0.5, accuracy: float = 5.0) -> dict:
    return {"latitude": lat, "longitude": lng, "heading": 0.0, "speed": speed,
            "accuracy": accuracy, "timestamp": timestamp}


@pytest.fixture
def source() -> SimulatedPositionSource:
    return SimulatedPositionSource()


@pytest.fixture
def hub() -> InMemoryBroadcastHub:
    return InMemoryBroadcastHub()


@pytest.fixture
def session(source, hub, scheduler, sinks) -> SafetySession:
    s = SafetySession(
        source, hub, scheduler,
        user_id="me",
        track_store=InMemoryRecordStore("tracks"),
        settings_store=InMemoryRecordStore("settings"),
        tone_sink=sinks.tone,
        visual_sink=sinks.visual,
    )
    yield s
    s.close()


class TestRadarGating:
    """Radar runs only with setting on, online and signed in."""

    def test_requires_setting(self, session):
        session.start()
        assert not session.radar.enabled

        session.set_radar_enabled(True)
        assert session.radar.enabled

        session.set_radar_enabled(False)
        assert not session.radar.enabled

    def test_offline_disables(self, session, hub):
        session.start()
        session.set_radar_enabled(True)

        session.set_offline_mode(True)
        assert not session.radar.enabled
        assert hub.members("radar") == 0

        session.set_offline_mode(False)
        assert session.radar.enabled

    def test_requires_authentication(self, session):
        session.set_authenticated(None)
        session.start()
        session.set_radar_enabled(True)
        assert not session.radar.enabled

        session.set_authenticated("skipper-2")
        assert session.radar.enabled
        assert session.radar.self_id == "skipper-2"
        assert session.collision.self_id == "skipper-2"

    def test_nothing_runs_before_start(self, session, hub):
        session.set_radar_enabled(True)
        assert hub.members("radar") == 0


class TestAnchorScenario:
    """Anchor drift from fix to alarm and back."""

    def test_drift_alarm_end_to_end(self, session, source, sinks, scheduler):
        session.start()
        source.push_fix(fix(10.0, 10.0, 1.0))
        session.anchor.drop_anchor(radius_m=30.0)

        source.push_fix(fix(10.0003, 10.0, 2.0))   # ~33 m
        assert session.anchor.state is AnchorState.ALERTING
        assert sinks.kinds() == [AlertKind.ANCHOR_DRIFT]

        source.push_fix(fix(10.0004, 10.0, 3.0))   # ~44 m
        assert session.anchor.alert_starts == 1

        scheduler.advance(3.0)
        assert len(sinks.events) == 2

        session.anchor.raise_anchor()
        assert session.anchor.state is AnchorState.DISARMED

        scheduler.advance(30.0)
        assert [e.kind for e in sinks.events].count(AlertKind.ANCHOR_DRIFT) == 2

    def test_equator_anchor_one_alert_before_dismissal(self, session, source, sinks, scheduler):
        """Anchor at (0, 0) r=20 m, boat fixes at (0, 0.0002): one ANCHOR_DRIFT until dismissed."""
        session.start()
        source.push_fix(fix(0.0, 0.0, 1.0))
        session.anchor.drop_anchor(radius_m=20.0)

        source.push_fix(fix(0.0, 0.0002, 2.0))
        source.push_fix(fix(0.0, 0.0002, 2.5, speed=0.6))
        assert session.anchor.state is AnchorState.ALERTING
        assert sinks.kinds() == [AlertKind.ANCHOR_DRIFT]

        assert session.anchor.dismiss()
        scheduler.advance(30.0)
        assert sinks.kinds() == [AlertKind.ANCHOR_DRIFT]

    def test_drop_without_fix(self, session):
        from singrar_core.errors import NoPositionFix
        with pytest.raises(NoPositionFix):
            session.anchor.drop_anchor(radius_m=30.0)


class TestCollisionScenario:
    """Peer on the radar channel drives the collision countdown."""

    def test_peer_proximity_to_emergency(self, session, source, hub, sinks, scheduler):
        session.start()
        session.set_radar_enabled(True)
        source.push_fix(fix(10.0, 10.0, 1.0))

        other = hub.join("radar", lambda payload: None)
        other.send(PeerBroadcast("boat-2", 10.0003, 10.0, 180.0, 2.0).to_payload())

        scheduler.advance(3.0)
        state = session.collision.state
        assert state.is_counting and state.seconds_remaining == 30
        assert sinks.kinds() == [AlertKind.COLLISION_IMMINENT]

        scheduler.advance(30.0)
        assert session.collision.state.is_emergency

    def test_peer_just_inside_fifty_meters(self, session, source, hub, sinks, scheduler):
        """Self at (10, 10) stopped, peer at (10.00044, 10) (~48.9 m) doing 2 m/s."""
        session.start()
        session.set_radar_enabled(True)
        source.push_fix(fix(10.0, 10.0, 1.0, speed=0.0))

        other = hub.join("radar", lambda payload: None)
        other.send(PeerBroadcast("boat-2", 10.00044, 10.0, 0.0, 2.0).to_payload())

        scheduler.advance(2.9)
        assert session.collision.state.is_idle

        scheduler.advance(0.1)
        assert session.collision.state == CollisionState.counting(30)
        assert sinks.kinds() == [AlertKind.COLLISION_IMMINENT]
        assert sinks.events[0].details['distance_m'] == pytest.approx(48.93, abs=0.05)

    def test_sos_toggle(self, session, scheduler):
        session.start()
        session.on_motion(MotionEvent(30.0))

        assert session.toggle_emergency()
        assert session.collision.state.is_emergency
        assert session.status()['collision'] == 'emergency'

        scheduler.advance(60.0)
        assert not session.toggle_emergency()
        assert session.collision.state.is_idle

    def test_no_check_without_radar(self, session, source, hub, scheduler):
        session.start()
        source.push_fix(fix(10.0, 10.0, 1.0))

        scheduler.advance(30.0)
        assert session.collision.state.is_idle

    def test_motion_routed_to_detector(self, session):
        session.start()
        assert session.on_motion(MotionEvent(30.0, 0.0, 0.0))
        assert session.collision.state.is_counting


class TestSessionState:
    """Tests for the small session-owned state."""

    def test_recording_through_session(self, session, source):
        session.start()
        session.recorder.start_recording()
        source.push_fix(fix(10.0, 10.0, 1.0))
        source.push_fix(fix(10.0001, 10.0, 2.0))   # ~11 m
        source.push_fix(fix(10.0001, 10.0, 3.0, accuracy=50.0))

        track = session.recorder.stop_recording()
        assert track.num_points == 2

    def test_orientation(self, session):
        assert session.on_orientation(OrientationEvent(alpha=90.0)) == 270.0
        assert session.device_heading == 270.0

        assert session.on_orientation(OrientationEvent()) is None
        assert session.device_heading == 270.0

    def test_speed_units(self, session, source):
        session.start()
        source.push_fix(fix(10.0, 10.0, 1.0, speed=1.0))

        assert session.display_speed() == pytest.approx(1.94384)
        assert session.cycle_speed_unit() is SpeedUnit.KMH
        assert session.display_speed() == pytest.approx(1.94384 * 1.852)

    def test_status(self, session, source):
        session.start()
        source.push_fix(fix(10.0, 10.0, 1.0))
        status = session.status()

        assert status['signal'] == 'STRONG'
        assert status['anchor'] == 'disarmed'
        assert status['collision'] == 'idle'
        assert status['countdown_s'] is None
        assert status['peers'] == 0

    def test_close_releases_everything(self, session, source, hub, scheduler):
        session.start()
        session.set_radar_enabled(True)
        session.on_motion(MotionEvent(30.0))

        session.close()

        assert source.active_watches == 0
        assert hub.members("radar") == 0
        assert scheduler.active_timers == 0

    def test_context_manager(self, source, hub, scheduler):
        with SafetySession(source, hub, scheduler, user_id="me") as session:
            assert session.sampler.is_running
        assert source.active_watches == 0

    def test_unavailable_sensor(self, hub, scheduler):
        session = SafetySession(SimulatedPositionSource(available=False), hub, scheduler)
        with pytest.raises(SensorUnavailable):
            session.start()
        assert session.collision.is_running
        session.close()


class TestSessionConfig:
    """Tests for building configuration from dict sections."""

    def test_from_config_module(self):
        cfg = SessionConfig.from_dict(config.session_sections())

        assert cfg.radar.stale_after_s == 60.0
        assert cfg.collision.countdown_s == 30
        assert cfg.alert.tone_frequencies_hz == (880.0, 1108.73, 880.0)

    def test_missing_sections_use_defaults(self):
        cfg = SessionConfig.from_dict({"anchor": {"default_radius_m": 25.0}})
        assert cfg.anchor.default_radius_m == 25.0
        assert cfg.track.min_displacement_m == 5.0

    def test_unknown_section(self):
        with pytest.raises(ValueError):
            SessionConfig.from_dict({"tides": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            SessionConfig.from_dict({"radar": {"chanel": "x"}})
