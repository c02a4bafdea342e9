"""
Protocol Module: Record and message schemas.

- Position samples and recorded tracks
- Peer radar broadcasts and last-known peer positions
- Alert trigger events
"""

from .position_sample import (
    PositionSample,
    TrackPoint,
    Track,
)
from .peer_message import (
    PeerBroadcast,
    PeerPosition,
)
from .alert_event import (
    AlertEvent,
    AlertKind,
    AlertPresentation,
)

__all__ = [
    'PositionSample',
    'TrackPoint',
    'Track',
    'PeerBroadcast',
    'PeerPosition',
    'AlertEvent',
    'AlertKind',
    'AlertPresentation',
]
