"""
GPS fix quality assessment.

Maps a fix's reported horizontal accuracy to the signal indicator shown to
the skipper, and decides whether a fix is good enough to record.
"""

from enum import Enum
from typing import Optional

# Accuracy bands (meters)
STRONG_ACCURACY_M = 10.0
MEDIUM_ACCURACY_M = 30.0


class SignalStrength(Enum):
    """GPS signal indicator."""

    NO_SIGNAL = 0
    STRONG = 1      # accuracy <= 10 m
    MEDIUM = 2      # accuracy <= 30 m
    WEAK = 3        # accuracy > 30 m


def classify_accuracy(accuracy_m: Optional[float]) -> SignalStrength:
    """
    Classify a fix by its accuracy radius.

    Args:
        accuracy_m: Horizontal accuracy in meters, None when there is no fix

    Returns:
        SignalStrength band
    """
    if accuracy_m is None:
        return SignalStrength.NO_SIGNAL
    if accuracy_m <= STRONG_ACCURACY_M:
        return SignalStrength.STRONG
    if accuracy_m <= MEDIUM_ACCURACY_M:
        return SignalStrength.MEDIUM
    return SignalStrength.WEAK


def is_accurate_enough(accuracy_m: float, max_accuracy_m: float = MEDIUM_ACCURACY_M) -> bool:
    """True if the fix is within the accuracy threshold (inclusive)."""
    return accuracy_m <= max_accuracy_m
