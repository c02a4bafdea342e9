"""
Safety core simulation runner.

Runs a full SafetySession on the asyncio event loop with a simulated GPS
(own boat slowly dragging its anchor) and a simulated peer vessel
approaching on the in-memory radar channel, then prints the metrics.
"""

import asyncio
import signal
import logging
import argparse
import time
from typing import Optional

import config
from singrar_core.errors import SensorUnavailable
from singrar_core.io import InMemoryBroadcastHub, SimulatedPositionSource
from singrar_core.localization import offset_position
from singrar_core.metrics import get_metrics
from singrar_core.proto import AlertEvent, PeerBroadcast
from singrar_core.scheduling import AsyncioScheduler
from singrar_core.session import SafetySession, SessionConfig

logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


class SafetySimulation:
    """Simulated boat, peer and session."""

    def __init__(self, duration_s: float, with_anchor: bool = True, with_peer: bool = True):
        self.duration_s = duration_s
        self.with_anchor = with_anchor
        self.with_peer = with_peer
        self.sim = config.SIMULATION_CONFIG

        self.alerts = []
        self._stop: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._elapsed_s = 0.0

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        if self._loop is not None and self._stop is not None:
            self._loop.call_soon_threadsafe(self._stop.set)

    def _on_alert(self, event: AlertEvent):
        self.alerts.append(event)
        print(f"[ALERT {event.presentation.value.upper()}] {event.message}")

    def _own_fix(self) -> dict:
        lat, lng = offset_position(
            self.sim["base_lat"], self.sim["base_lng"],
            north_m=-self.sim["drift_mps"] * self._elapsed_s, east_m=0.0,
        )
        return {
            "latitude": lat,
            "longitude": lng,
            "heading": 180.0,
            "speed": self.sim["drift_mps"],
            "accuracy": self.sim["fix_accuracy_m"],
            "timestamp": time.time(),
        }

    def _peer_payload(self) -> dict:
        north = self.sim["peer_start_m"] - self.sim["peer_speed_mps"] * self._elapsed_s
        lat, lng = offset_position(self.sim["base_lat"], self.sim["base_lng"],
                                   north_m=north, east_m=5.0)
        return PeerBroadcast(
            peer_id=self.sim["peer_id"],
            lat=lat,
            lng=lng,
            heading_deg=180.0,
            speed_mps=self.sim["peer_speed_mps"],
        ).to_payload()

    async def run(self):
        self._loop = asyncio.get_running_loop()
        self._stop = asyncio.Event()

        scheduler = AsyncioScheduler(self._loop)
        source = SimulatedPositionSource()
        hub = InMemoryBroadcastHub()
        session = SafetySession(
            source, hub, scheduler,
            user_id=self.sim["user_id"],
            config=SessionConfig.from_dict(config.session_sections()),
            visual_sink=self._on_alert,
        )
        peer = hub.join(session.config.radar.channel, on_message=lambda payload: None)
        interval = self.sim["fix_interval_s"]

        def step():
            self._elapsed_s += interval
            source.push_fix(self._own_fix())

        def peer_step():
            if peer.connected:
                peer.send(self._peer_payload())

        def report():
            status = session.status()
            logger.info(
                f"anchor={status['anchor']} ({status['anchor_distance_m'] or 0:.0f} m) "
                f"peers={status['peers']} collision={status['collision']} "
                f"countdown={status['countdown_s']} track_points={status['track_points']}"
            )

        try:
            session.start()
        except SensorUnavailable as e:
            logger.error(f"Cannot run simulation: {e}")
            session.close()
            return

        try:
            session.set_radar_enabled(True)
            source.push_fix(self._own_fix())
            session.recorder.start_recording()
            if self.with_anchor:
                session.anchor.drop_anchor(radius_m=self.sim["anchor_radius_m"])

            scheduler.call_every(interval, step, name="sim-gps")
            if self.with_peer:
                scheduler.call_every(session.config.radar.broadcast_interval_s,
                                     peer_step, name="sim-peer")
            scheduler.call_every(5.0, report, name="sim-report")

            try:
                await asyncio.wait_for(self._stop.wait(), self.duration_s)
            except asyncio.TimeoutError:
                pass

            track = session.recorder.stop_recording()
            if track is not None:
                print(f"Track '{track.name}': {track.num_points} points, "
                      f"{track.duration_s:.0f}s")
        finally:
            session.close()
            peer.leave()

        print(f"Alerts raised: {len(self.alerts)}")
        get_metrics().print_summary()


def main():
    parser = argparse.ArgumentParser(description='Vessel safety core simulation')
    parser.add_argument('--duration', '-t', type=float, default=150.0,
                        help='Simulated run time in seconds')
    parser.add_argument('--no-anchor', action='store_true',
                        help='Do not drop the anchor')
    parser.add_argument('--no-peer', action='store_true',
                        help='No approaching peer vessel')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    simulation = SafetySimulation(
        duration_s=args.duration,
        with_anchor=not args.no_anchor,
        with_peer=not args.no_peer,
    )
    asyncio.run(simulation.run())


if __name__ == "__main__":
    main()
