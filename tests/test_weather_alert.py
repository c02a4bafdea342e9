"""
Unit tests for the pressure-drop storm warning.

Tests cover:
- Current hour lookup in the hourly series
- 3-hour pressure change
- Alert raised once per inactive -> active transition
- Simulated storm drill
"""

import pytest

from singrar_core.domain import PressureDropConfig, PressureDropMonitor, pressure_drop_hpa
from singrar_core.domain.weather_alert import current_hour_index
from singrar_core.proto import AlertKind

HOUR = 3600.0
TIMES = [i * HOUR for i in range(8)]


@pytest.fixture
def monitor(dispatcher) -> PressureDropMonitor:
    return PressureDropMonitor(dispatcher)


class TestHourLookup:
    """Tests for locating the current hourly slot."""

    def test_inside_series(self):
        """Now within hour 5 gives index 5."""
        assert current_hour_index(TIMES, 5 * HOUR + 1200.0) == 5

    def test_exactly_on_slot_start(self):
        assert current_hour_index(TIMES, 5 * HOUR) == 5

    def test_before_series(self):
        assert current_hour_index(TIMES, -10.0) == 0

    def test_after_series(self):
        """A series that ends before now falls back to slot 0."""
        assert current_hour_index(TIMES, 100 * HOUR) == 0


class TestPressureDrop:
    """Tests for the pressure change."""

    def test_three_hour_change(self):
        pressures = [1015.0, 1014.0, 1013.0, 1012.0, 1011.0, 1010.0, 1009.0, 1008.0]
        # Slot 5, compare with slot 2
        drop = pressure_drop_hpa(1009.5, pressures, TIMES, 5 * HOUR + 60.0)
        assert drop == pytest.approx(1009.5 - 1013.0)

    def test_lookback_clamped_at_start(self):
        pressures = [1015.0] * 8
        assert pressure_drop_hpa(1013.0, pressures, TIMES, 1 * HOUR + 60.0) == pytest.approx(-2.0)

    def test_empty_series(self):
        with pytest.raises(ValueError):
            pressure_drop_hpa(1013.0, [], [], 0.0)


class TestMonitor:
    """Tests for alert dispatch."""

    def test_drop_of_three_raises_alert(self, monitor, sinks):
        pressures = [1015.0] * 8
        now = 5 * HOUR

        assert monitor.evaluate(1012.0, pressures, TIMES, now)
        assert monitor.active
        assert monitor.last_drop_hpa == pytest.approx(-3.0)
        assert sinks.kinds() == [AlertKind.WEATHER_PRESSURE_DROP]

    def test_small_drop_no_alert(self, monitor, sinks):
        pressures = [1015.0] * 8
        assert not monitor.evaluate(1012.5, pressures, TIMES, 5 * HOUR)
        assert sinks.events == []

    def test_alert_only_on_transition(self, monitor, sinks):
        """Staying active does not re-alert; clearing and re-entering does."""
        pressures = [1015.0] * 8
        now = 5 * HOUR

        monitor.evaluate(1010.0, pressures, TIMES, now)
        monitor.evaluate(1009.0, pressures, TIMES, now)
        assert len(sinks.events) == 1

        assert not monitor.evaluate(1014.0, pressures, TIMES, now)
        monitor.evaluate(1010.0, pressures, TIMES, now)
        assert len(sinks.events) == 2

    def test_simulated_alert(self, monitor, sinks):
        pressures = [1015.0] * 8
        assert monitor.evaluate(1015.0, pressures, TIMES, 5 * HOUR, simulated=True)
        assert sinks.events[0].details['source'] == 'simulated'

    def test_custom_threshold(self, dispatcher):
        monitor = PressureDropMonitor(dispatcher, PressureDropConfig(threshold_hpa=-1.0))
        assert monitor.evaluate(1014.0, [1015.0] * 8, TIMES, 5 * HOUR)

    def test_reset(self, monitor):
        monitor.evaluate(1010.0, [1015.0] * 8, TIMES, 5 * HOUR)
        monitor.reset()
        assert not monitor.active
        assert monitor.last_drop_hpa is None
