"""
Device motion and orientation events.

MotionEvent carries linear acceleration (gravity excluded) in m/s^2.
OrientationEvent carries the raw platform fields from which the compass
heading is derived.

Heading derivation keeps the platform quirks of the mobile app:
- iOS reports a compass heading field; it is used when truthy, so a
  heading of exactly 0 falls through to alpha
- elsewhere the heading is 360 - alpha (counter-clockwise alpha), which is
  not normalized: alpha 0 gives 360
"""

import math
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MotionEvent:
    """Linear acceleration sample; axes the device did not report are None."""

    ax: Optional[float] = None
    ay: Optional[float] = None
    az: Optional[float] = None
    timestamp: float = 0.0

    @property
    def magnitude(self) -> float:
        """sqrt(ax^2 + ay^2 + az^2) with missing axes as 0."""
        return math.sqrt(
            (self.ax or 0.0) ** 2 +
            (self.ay or 0.0) ** 2 +
            (self.az or 0.0) ** 2
        )


@dataclass(frozen=True)
class OrientationEvent:
    """
    Raw orientation fields.

    Attributes:
        alpha: Rotation around the z axis in degrees (None if unsupported)
        compass_heading: iOS compass heading in degrees (None elsewhere)
    """

    alpha: Optional[float] = None
    compass_heading: Optional[float] = None


def heading_from_orientation(event: OrientationEvent) -> Optional[float]:
    """
    Compass heading in degrees, or None when the event has no usable field.
    """
    if event.compass_heading:
        return event.compass_heading
    if event.alpha is not None:
        return 360 - event.alpha
    return None
