"""
Domain Module: Safety logic.

Implements:
- Track recording with noise filtering
- Anchor drift geofence
- Peer radar (shared positions over a broadcast channel)
- Collision countdown-to-emergency
- Pressure-drop storm warning
- Alert dispatch (tone + banner/modal)
"""

from .alert_dispatcher import (
    AlertConfig,
    AlertDispatcher,
    synthesize_alarm_tone,
    create_default_dispatcher,
)
from .track_recorder import (
    TRACK_COLORS,
    TrackRecorder,
    TrackRecorderConfig,
    create_default_recorder,
)
from .anchor_watch import (
    AnchorAlarm,
    AnchorState,
    AnchorWatch,
    AnchorWatchConfig,
)
from .peer_radar import (
    PeerRadar,
    PeerRadarConfig,
)
from .collision_detector import (
    CollisionConfig,
    CollisionDetector,
    CollisionPhase,
    CollisionState,
    CollisionTrigger,
)
from .weather_alert import (
    PressureDropConfig,
    PressureDropMonitor,
    pressure_drop_hpa,
)

__all__ = [
    'AlertConfig',
    'AlertDispatcher',
    'synthesize_alarm_tone',
    'create_default_dispatcher',
    'TRACK_COLORS',
    'TrackRecorder',
    'TrackRecorderConfig',
    'create_default_recorder',
    'AnchorAlarm',
    'AnchorState',
    'AnchorWatch',
    'AnchorWatchConfig',
    'PeerRadar',
    'PeerRadarConfig',
    'CollisionConfig',
    'CollisionDetector',
    'CollisionPhase',
    'CollisionState',
    'CollisionTrigger',
    'PressureDropConfig',
    'PressureDropMonitor',
    'pressure_drop_hpa',
]
