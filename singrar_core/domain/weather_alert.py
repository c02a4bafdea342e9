"""
Pressure-drop storm warning.

The forecast itself is out of scope; this module only turns the hourly
surface-pressure series into an alert trigger. A fall of 3 hPa or more
over the last three hours raises WEATHER_PRESSURE_DROP, once per
inactive -> active transition.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence
import numpy as np

from singrar_core.domain.alert_dispatcher import AlertDispatcher
from singrar_core.proto.alert_event import AlertEvent, AlertKind

logger = logging.getLogger(__name__)


@dataclass
class PressureDropConfig:
    """
    Configuration for the pressure-drop alert.

    Attributes:
        threshold_hpa: Drop at or below this (negative) raises the alert
        lookback_samples: Hourly samples between past and current reading
    """

    threshold_hpa: float = -3.0
    lookback_samples: int = 3


def current_hour_index(hourly_times: Sequence[float], now: float) -> int:
    """
    Index of the hourly slot containing now.

    That is the slot before the first time strictly after now, clamped to 0.
    When every time is in the past the series is treated as not covering
    now and slot 0 is used.
    """
    times = np.asarray(hourly_times, dtype=float)
    first_future = int(np.searchsorted(times, now, side='right'))
    if first_future >= len(times):
        return 0
    return max(first_future - 1, 0)


def pressure_drop_hpa(current_hpa: float, hourly_pressures: Sequence[float],
                      hourly_times: Sequence[float], now: float,
                      lookback_samples: int = 3) -> float:
    """
    Pressure change over the lookback window.

    Returns:
        current_hpa - pressure lookback_samples hours before the current
        slot (negative when falling)
    """
    if len(hourly_pressures) == 0:
        raise ValueError("Hourly pressure series is empty")
    index = current_hour_index(hourly_times, now)
    past_index = max(0, index - lookback_samples)
    return float(current_hpa - hourly_pressures[past_index])


class PressureDropMonitor:
    """
    Evaluates each weather refresh.

    Usage:
        monitor = PressureDropMonitor(dispatcher)
        active = monitor.evaluate(current_hpa, hourly_hpa, hourly_times, now)
    """

    def __init__(self, dispatcher: AlertDispatcher,
                 config: Optional[PressureDropConfig] = None):
        self.dispatcher = dispatcher
        self.config = config or PressureDropConfig()
        self._active = False
        self._last_drop_hpa: Optional[float] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def last_drop_hpa(self) -> Optional[float]:
        return self._last_drop_hpa

    def evaluate(self, current_hpa: float, hourly_pressures: Sequence[float],
                 hourly_times: Sequence[float], now: float,
                 simulated: bool = False) -> bool:
        """
        Recompute the alert flag for one weather refresh.

        Args:
            current_hpa: Current surface pressure
            hourly_pressures: Hourly surface pressure series
            hourly_times: Start time of each hourly slot (epoch seconds, sorted)
            now: Current time (epoch seconds)
            simulated: Force the alert on (storm drill)

        Returns:
            True while the alert is active
        """
        drop = pressure_drop_hpa(current_hpa, hourly_pressures, hourly_times, now,
                                 self.config.lookback_samples)
        self._last_drop_hpa = drop

        was_active = self._active
        self._active = drop <= self.config.threshold_hpa or simulated

        if self._active and not was_active:
            reason = "simulated" if simulated and drop > self.config.threshold_hpa else "measured"
            event = AlertEvent(
                kind=AlertKind.WEATHER_PRESSURE_DROP,
                timestamp=now,
                message=f"Storm warning: pressure {drop:+.1f} hPa in 3h",
                details={
                    'drop_hpa': drop,
                    'current_hpa': current_hpa,
                    'source': reason,
                },
            )
            logger.warning(event.message)
            self.dispatcher.dispatch(event)
        elif was_active and not self._active:
            logger.info(f"Pressure drop alert cleared ({drop:+.1f} hPa)")

        return self._active

    def reset(self):
        self._active = False
        self._last_drop_hpa = None
