"""
Position Sample and Track Schemas.

PositionSample is the normalized form of one platform location fix. It is
produced by GeoSampler at sensor cadence and never mutated afterwards.
TrackPoint/Track are the recorded-route records built by TrackRecorder.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from singrar_core.units import ms_to_knots


@dataclass(frozen=True)
class PositionSample:
    """
    One normalized location fix.

    Attributes:
        lat: Latitude in decimal degrees (positive = North)
        lng: Longitude in decimal degrees (positive = East)
        heading_deg: Course over ground in degrees, None if unknown
        speed_mps: Speed over ground in m/s, None if unknown
        accuracy_m: Horizontal accuracy radius in meters
        timestamp: Fix time in seconds

    Notes:
        - Platforms report heading/speed as null when stationary or
          unsupported; both stay None rather than defaulting to 0
    """

    lat: float
    lng: float
    heading_deg: Optional[float]
    speed_mps: Optional[float]
    accuracy_m: float
    timestamp: float

    def __post_init__(self):
        """Validate sample."""
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")

        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lng}")

        if self.accuracy_m < 0:
            raise ValueError(f"Accuracy cannot be negative: {self.accuracy_m}")

        if self.speed_mps is not None and self.speed_mps < 0:
            raise ValueError(f"Speed cannot be negative: {self.speed_mps}")

    @property
    def speed_knots(self) -> float:
        """Speed in knots (0 when unknown)."""
        return ms_to_knots(self.speed_mps)

    @property
    def position(self) -> Tuple[float, float]:
        """(lat, lng) tuple."""
        return (self.lat, self.lng)

    def same_fix_as(self, other: Optional["PositionSample"]) -> bool:
        """True if other is the same platform fix delivered again."""
        if other is None:
            return False
        return (
            self.timestamp == other.timestamp and
            self.lat == other.lat and
            self.lng == other.lng
        )

    @classmethod
    def from_fix(cls, raw: Mapping[str, Any],
                 default_timestamp: Optional[float] = None) -> "PositionSample":
        """
        Build a sample from a platform fix mapping.

        Accepts either W3C-style keys (latitude, longitude, heading, speed,
        accuracy, timestamp) or the short lat/lng form.

        Raises:
            ValueError: If a required field is missing or out of range
        """
        try:
            lat = raw["latitude"] if "latitude" in raw else raw["lat"]
            lng = raw["longitude"] if "longitude" in raw else raw["lng"]
            accuracy = raw["accuracy"]
        except KeyError as e:
            raise ValueError(f"Fix missing field {e}") from None

        timestamp = raw.get("timestamp", default_timestamp)
        if timestamp is None:
            raise ValueError("Fix has no timestamp")

        heading = raw.get("heading")
        speed = raw.get("speed")

        return cls(
            lat=float(lat),
            lng=float(lng),
            heading_deg=float(heading) if heading is not None else None,
            speed_mps=float(speed) if speed is not None else None,
            accuracy_m=float(accuracy),
            timestamp=float(timestamp),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'lat': self.lat,
            'lng': self.lng,
            'heading': self.heading_deg,
            'speed': self.speed_mps,
            'accuracy': self.accuracy_m,
            'timestamp': self.timestamp,
        }


@dataclass(frozen=True)
class TrackPoint:
    """One recorded point of a track."""

    lat: float
    lng: float
    timestamp: float
    speed_knots: float = 0.0

    @classmethod
    def from_sample(cls, sample: PositionSample) -> "TrackPoint":
        return cls(
            lat=sample.lat,
            lng=sample.lng,
            timestamp=sample.timestamp,
            speed_knots=sample.speed_knots,
        )


@dataclass(frozen=True)
class Track:
    """
    A finished, persisted recording.

    Attributes:
        id: Store key
        name: Display name
        color: Display colour (#rrggbb)
        points: Ordered TrackPoints
        visible: Whether the route is shown on the map
    """

    id: str
    name: str
    color: str
    points: Tuple[TrackPoint, ...] = field(default_factory=tuple)
    visible: bool = True

    @property
    def num_points(self) -> int:
        return len(self.points)

    @property
    def duration_s(self) -> float:
        """Time between first and last point (0 for fewer than 2 points)."""
        if len(self.points) < 2:
            return 0.0
        return self.points[-1].timestamp - self.points[0].timestamp

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'color': self.color,
            'visible': self.visible,
            'points': [
                {'lat': p.lat, 'lng': p.lng, 'timestamp': p.timestamp,
                 'speed_knots': p.speed_knots}
                for p in self.points
            ],
        }
