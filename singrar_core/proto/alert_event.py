"""
Alert Event Schema.

Discrete trigger events fed into AlertDispatcher by the alarm-producing
components.
"""

from dataclasses import dataclass, field
from enum import Enum


class AlertKind(Enum):
    """What raised the alert."""

    ANCHOR_DRIFT = "anchor_drift"
    COLLISION_IMMINENT = "collision_imminent"
    WEATHER_PRESSURE_DROP = "weather_pressure_drop"


class AlertPresentation(Enum):
    """How the alert is shown besides the tone."""

    BANNER = "banner"   # Persistent strip at the top of the screen
    MODAL = "modal"     # Blocking dialog that needs a user action


_PRESENTATION = {
    AlertKind.ANCHOR_DRIFT: AlertPresentation.MODAL,
    AlertKind.COLLISION_IMMINENT: AlertPresentation.MODAL,
    AlertKind.WEATHER_PRESSURE_DROP: AlertPresentation.BANNER,
}


@dataclass(frozen=True)
class AlertEvent:
    """
    One alert trigger.

    Attributes:
        kind: Trigger kind
        timestamp: When the trigger was raised (scheduler clock)
        message: Human-readable text for the banner/modal
        details: Kind-specific numbers (distance, radius, pressure drop)
    """

    kind: AlertKind
    timestamp: float
    message: str = ""
    details: dict = field(default_factory=dict)

    @property
    def presentation(self) -> AlertPresentation:
        return _PRESENTATION[self.kind]

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'timestamp': self.timestamp,
            'message': self.message,
            'presentation': self.presentation.value,
            'details': dict(self.details),
        }
