"""
Unit tests for record and message schemas.

Tests cover:
- PositionSample validation and platform-fix parsing
- Track derived values
- Peer broadcast payload parsing
"""

import math

import pytest

from singrar_core.errors import PeerMessageError
from singrar_core.proto import PeerBroadcast, PeerPosition, PositionSample, Track, TrackPoint


class TestPositionSample:
    """Tests for PositionSample."""

    def test_valid_sample(self):
        sample = PositionSample(10.0, 20.0, 90.0, 2.0, 5.0, 1.0)
        assert sample.position == (10.0, 20.0)
        assert sample.speed_knots == pytest.approx(3.88768)

    @pytest.mark.parametrize("kwargs", [
        dict(lat=91.0),
        dict(lat=-90.5),
        dict(lng=180.5),
        dict(accuracy_m=-1.0),
        dict(speed_mps=-0.1),
    ])
    def test_validation(self, kwargs):
        values = dict(lat=10.0, lng=20.0, heading_deg=None, speed_mps=None,
                      accuracy_m=5.0, timestamp=0.0)
        values.update(kwargs)
        with pytest.raises(ValueError):
            PositionSample(**values)

    def test_immutable(self):
        sample = PositionSample(10.0, 20.0, None, None, 5.0, 0.0)
        with pytest.raises(AttributeError):
            sample.lat = 11.0

    def test_unknown_speed_is_zero_knots(self):
        assert PositionSample(10.0, 20.0, None, None, 5.0, 0.0).speed_knots == 0.0

    def test_from_w3c_fix(self):
        sample = PositionSample.from_fix({
            "latitude": 10.0, "longitude": 20.0, "heading": None,
            "speed": 1.5, "accuracy": 8.0, "timestamp": 42.0,
        })
        assert sample.lat == 10.0
        assert sample.heading_deg is None
        assert sample.speed_mps == 1.5
        assert sample.timestamp == 42.0

    def test_from_short_fix_with_default_timestamp(self):
        sample = PositionSample.from_fix({"lat": 1.0, "lng": 2.0, "accuracy": 3.0},
                                         default_timestamp=7.0)
        assert sample.timestamp == 7.0

    def test_from_fix_missing_fields(self):
        with pytest.raises(ValueError):
            PositionSample.from_fix({"lat": 1.0, "lng": 2.0})
        with pytest.raises(ValueError):
            PositionSample.from_fix({"lat": 1.0, "lng": 2.0, "accuracy": 3.0})

    def test_same_fix(self):
        a = PositionSample(10.0, 20.0, None, None, 5.0, 1.0)
        b = PositionSample(10.0, 20.0, 45.0, 2.0, 9.0, 1.0)
        c = PositionSample(10.0, 20.0, None, None, 5.0, 2.0)
        assert a.same_fix_as(b)
        assert not a.same_fix_as(c)
        assert not a.same_fix_as(None)

    def test_to_dict(self):
        data = PositionSample(10.0, 20.0, None, 1.0, 5.0, 1.0).to_dict()
        assert data == {'lat': 10.0, 'lng': 20.0, 'heading': None, 'speed': 1.0,
                        'accuracy': 5.0, 'timestamp': 1.0}


class TestTrack:
    """Tests for Track."""

    def test_duration_and_points(self):
        track = Track("t1", "Track 1", "#64ffda", (
            TrackPoint(10.0, 10.0, 100.0),
            TrackPoint(10.001, 10.0, 160.0),
        ))
        assert track.num_points == 2
        assert track.duration_s == 60.0
        assert track.visible

    def test_empty_track(self):
        track = Track("t1", "Track 1", "#64ffda")
        assert track.duration_s == 0.0
        assert track.to_dict()['points'] == []


class TestPeerMessages:
    """Tests for the radar payload."""

    def test_round_trip_payload(self):
        message = PeerBroadcast("boat", 10.0, 20.0, 90.0, 2.0)
        payload = message.to_payload()

        assert payload == {'id': 'boat', 'lat': 10.0, 'lng': 20.0, 'heading': 90.0, 'speed': 2.0}
        assert PeerBroadcast.from_payload(payload) == message

    def test_numeric_id_normalized(self):
        message = PeerBroadcast.from_payload({'id': 42, 'lat': 1.0, 'lng': 2.0})
        assert message.peer_id == "42"

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {'id': '', 'lat': 1.0, 'lng': 2.0},
        {'id': 'x', 'lat': math.nan, 'lng': 2.0},
        {'id': 'x', 'lat': 1.0, 'lng': 200.0},
        {'id': 'x', 'lat': 1.0, 'lng': 2.0, 'speed': 'fast'},
    ])
    def test_rejects_bad_payloads(self, payload):
        with pytest.raises(PeerMessageError):
            PeerBroadcast.from_payload(payload)

    def test_peer_position_age(self):
        position = PeerPosition.from_broadcast(PeerBroadcast("boat", 1.0, 2.0), updated_at=100.0)
        assert position.age(160.5) == 60.5
        assert position.speed_or_zero == 0.0
