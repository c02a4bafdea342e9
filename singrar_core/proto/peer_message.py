"""
Peer Radar Message Schemas.

PeerBroadcast is what each vessel sends on the radar channel every few
seconds. PeerPosition is the last-known-state record PeerRadar keeps for a
remote vessel; it never owns the vessel itself.

Payload format (one JSON-compatible mapping per broadcast):
    {"id": "<peer id>", "lat": 10.0, "lng": 10.0,
     "heading": 90.0 | null, "speed": 2.0 | null}
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from singrar_core.errors import PeerMessageError


def _optional_float(payload: Mapping[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    if value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise PeerMessageError(f"Field '{key}' is not a number: {value!r}") from None
    if not math.isfinite(result):
        raise PeerMessageError(f"Field '{key}' is not finite: {value!r}")
    return result


@dataclass(frozen=True)
class PeerBroadcast:
    """
    Own-position announcement sent on the radar channel.

    Attributes:
        peer_id: Sender id (the authenticated user id)
        lat: Latitude in decimal degrees
        lng: Longitude in decimal degrees
        heading_deg: Course in degrees, None if unknown
        speed_mps: Speed in m/s, None if unknown
    """

    peer_id: str
    lat: float
    lng: float
    heading_deg: Optional[float] = None
    speed_mps: Optional[float] = None

    def to_payload(self) -> dict:
        return {
            'id': self.peer_id,
            'lat': self.lat,
            'lng': self.lng,
            'heading': self.heading_deg,
            'speed': self.speed_mps,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PeerBroadcast":
        """
        Parse a received payload.

        Raises:
            PeerMessageError: If the payload is not a mapping, the id is
                missing, or coordinates are missing/out of range
        """
        if not isinstance(payload, Mapping):
            raise PeerMessageError(f"Payload is not a mapping: {type(payload).__name__}")

        peer_id = payload.get('id')
        if peer_id is None or str(peer_id) == "":
            raise PeerMessageError("Payload has no sender id")

        lat = _optional_float(payload, 'lat')
        lng = _optional_float(payload, 'lng')
        if lat is None or lng is None:
            raise PeerMessageError(f"Payload from {peer_id} has no position")
        if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
            raise PeerMessageError(f"Payload from {peer_id} out of range: ({lat}, {lng})")

        return cls(
            peer_id=str(peer_id),
            lat=lat,
            lng=lng,
            heading_deg=_optional_float(payload, 'heading'),
            speed_mps=_optional_float(payload, 'speed'),
        )


@dataclass(frozen=True)
class PeerPosition:
    """
    Last known state of a remote vessel.

    Attributes:
        peer_id: Remote vessel id
        lat: Latitude in decimal degrees
        lng: Longitude in decimal degrees
        heading_deg: Course in degrees, None if unknown
        speed_mps: Speed in m/s, None if unknown
        updated_at: Local receive time (scheduler clock, seconds)
    """

    peer_id: str
    lat: float
    lng: float
    heading_deg: Optional[float]
    speed_mps: Optional[float]
    updated_at: float

    @property
    def speed_or_zero(self) -> float:
        return self.speed_mps or 0.0

    def age(self, now: float) -> float:
        """Seconds since this record was last updated."""
        return now - self.updated_at

    @classmethod
    def from_broadcast(cls, message: PeerBroadcast, updated_at: float) -> "PeerPosition":
        return cls(
            peer_id=message.peer_id,
            lat=message.lat,
            lng=message.lng,
            heading_deg=message.heading_deg,
            speed_mps=message.speed_mps,
            updated_at=updated_at,
        )
