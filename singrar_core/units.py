"""
Speed unit conversions used across the safety core.

Platform fixes report speed in m/s; tracks and the speed readout use knots.
"""

from enum import Enum

MS_TO_KNOTS = 1.94384
KNOTS_TO_KMH = 1.852
KNOTS_TO_MPH = 1.15078


class SpeedUnit(Enum):
    """Display unit for vessel speed."""

    KNOTS = "kt"
    KMH = "kmh"
    MPH = "mph"

    def next(self) -> "SpeedUnit":
        """Cycle kt -> kmh -> mph -> kt (speed readout toggle)."""
        order = [SpeedUnit.KNOTS, SpeedUnit.KMH, SpeedUnit.MPH]
        return order[(order.index(self) + 1) % len(order)]


def ms_to_knots(speed_mps) -> float:
    """Convert m/s to knots; unknown speed counts as stationary."""
    if speed_mps is None:
        return 0.0
    return speed_mps * MS_TO_KNOTS


def convert_knots(speed_knots: float, unit: SpeedUnit) -> float:
    """Express a speed given in knots in the requested display unit."""
    if unit is SpeedUnit.KMH:
        return speed_knots * KNOTS_TO_KMH
    if unit is SpeedUnit.MPH:
        return speed_knots * KNOTS_TO_MPH
    return speed_knots
