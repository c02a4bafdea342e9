"""
I/O Module: Contracts for the platform and network collaborators.

- Position source (continuous watch + one-shot request)
- Broadcast transport for the peer radar
- Device motion / orientation events
- Record store for tracks and the anchor alarm

Each contract ships an in-process implementation used by replays and tests.
"""

from .position_source import (
    PositionSource,
    SimulatedPositionSource,
    WatchOptions,
)
from .broadcast import (
    BroadcastSubscription,
    BroadcastTransport,
    InMemoryBroadcastHub,
)
from .motion import (
    MotionEvent,
    OrientationEvent,
    heading_from_orientation,
)
from .store import (
    RecordStore,
    InMemoryRecordStore,
)

__all__ = [
    'PositionSource',
    'SimulatedPositionSource',
    'WatchOptions',
    'BroadcastSubscription',
    'BroadcastTransport',
    'InMemoryBroadcastHub',
    'MotionEvent',
    'OrientationEvent',
    'heading_from_orientation',
    'RecordStore',
    'InMemoryRecordStore',
]
