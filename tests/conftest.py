"""
Pytest configuration and shared fixtures for the safety core tests.

This module provides reusable fixtures for position samples, the virtual
clock scheduler, alert capture sinks and fully wired components.
"""

import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from singrar_core.domain.alert_dispatcher import AlertDispatcher
from singrar_core.localization.geodesy import offset_position
from singrar_core.metrics import reset_metrics
from singrar_core.proto.alert_event import AlertEvent
from singrar_core.proto.position_sample import PositionSample
from singrar_core.scheduling import VirtualScheduler


# =============================================================================
# Metrics isolation
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metrics():
    """
    Give every test a clean global metrics collector.

    Components grab the collector when they are built, so this runs before
    any component fixture.
    """
    reset_metrics()
    yield


# =============================================================================
# Position Fixtures
# =============================================================================


BASE_LAT = 38.6916
BASE_LNG = -9.4160


def make_sample(
    north_m: float = 0.0,
    east_m: float = 0.0,
    accuracy_m: float = 5.0,
    speed_mps: Optional[float] = 0.0,
    heading_deg: Optional[float] = None,
    timestamp: float = 0.0,
    base: tuple = (BASE_LAT, BASE_LNG),
) -> PositionSample:
    """
    Build a PositionSample offset from the base point.

    Args:
        north_m: Meters north of base
        east_m: Meters east of base
        accuracy_m: Horizontal accuracy
        speed_mps: Speed over ground
        heading_deg: Course over ground
        timestamp: Fix time
        base: (lat, lng) reference point

    Returns:
        PositionSample
    """
    lat, lng = offset_position(base[0], base[1], north_m, east_m)
    return PositionSample(
        lat=lat,
        lng=lng,
        heading_deg=heading_deg,
        speed_mps=speed_mps,
        accuracy_m=accuracy_m,
        timestamp=timestamp,
    )


def raw_fix(north_m: float = 0.0, east_m: float = 0.0, accuracy: float = 5.0,
            speed: Optional[float] = 1.0, timestamp: float = 100.0) -> dict:
    """Platform-style fix mapping at an offset from the base point."""
    lat, lng = offset_position(BASE_LAT, BASE_LNG, north_m, east_m)
    return {
        "latitude": lat,
        "longitude": lng,
        "heading": 90.0,
        "speed": speed,
        "accuracy": accuracy,
        "timestamp": timestamp,
    }


@pytest.fixture
def sample_factory() -> Callable[..., PositionSample]:
    """Factory building samples relative to the base point."""
    return make_sample


@pytest.fixture
def base_sample() -> PositionSample:
    """Accurate stationary sample at the base point."""
    return make_sample()


# =============================================================================
# Scheduling / Alerting Fixtures
# =============================================================================


@pytest.fixture
def scheduler() -> VirtualScheduler:
    """Deterministic scheduler starting at t=0."""
    return VirtualScheduler()


class RecordingSinks:
    """Captures everything an AlertDispatcher renders."""

    def __init__(self):
        self.tones: List[int] = []
        self.events: List[AlertEvent] = []

    def tone(self, samples, sample_rate: int):
        self.tones.append(len(samples))

    def visual(self, event: AlertEvent):
        self.events.append(event)

    def kinds(self) -> list:
        return [e.kind for e in self.events]


@pytest.fixture
def sinks() -> RecordingSinks:
    return RecordingSinks()


@pytest.fixture
def dispatcher(scheduler: VirtualScheduler, sinks: RecordingSinks) -> AlertDispatcher:
    """Dispatcher on the virtual clock, rendering into RecordingSinks."""
    return AlertDispatcher(scheduler, tone_sink=sinks.tone, visual_sink=sinks.visual)
