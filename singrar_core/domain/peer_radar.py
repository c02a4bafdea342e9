"""
Peer Radar.

Shares own position with nearby vessels over a broadcast channel and keeps
a last-known-state table of everyone else:

- every received payload upserts a PeerPosition stamped with the local
  receive time (strictly increasing per peer)
- own position is broadcast every 5 s while a position is known
- every 10 s, peers silent for more than 60 s are evicted

A dropped channel stops updates until the next enable(); there is no
automatic reconnect.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from singrar_core.errors import PeerMessageError, TransportDisconnected
from singrar_core.io.broadcast import BroadcastSubscription, BroadcastTransport
from singrar_core.metrics import get_metrics
from singrar_core.proto.peer_message import PeerBroadcast, PeerPosition
from singrar_core.proto.position_sample import PositionSample
from singrar_core.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

# Smallest step used to keep updated_at strictly increasing
_UPDATE_EPSILON_S = 1e-6


@dataclass
class PeerRadarConfig:
    """
    Configuration for the peer radar.

    Attributes:
        channel: Broadcast channel name
        broadcast_interval_s: Own-position broadcast period
        sweep_interval_s: Stale-peer eviction period
        stale_after_s: Peers older than this are evicted
    """

    channel: str = "radar"
    broadcast_interval_s: float = 5.0
    sweep_interval_s: float = 10.0
    stale_after_s: float = 60.0


class PeerRadar:
    """
    Peer table fed by the radar channel.

    Usage:
        radar = PeerRadar(hub, scheduler, self_id="me",
                          position_provider=lambda: session.last_position)
        radar.enable()
        ...
        nearby = radar.peers()
        radar.disable()
    """

    def __init__(
        self,
        transport: BroadcastTransport,
        scheduler: Scheduler,
        self_id: str,
        position_provider: Callable[[], Optional[PositionSample]] = lambda: None,
        config: Optional[PeerRadarConfig] = None,
        lock: Optional[threading.RLock] = None,
    ):
        self.transport = transport
        self.scheduler = scheduler
        self.self_id = self_id
        self.config = config or PeerRadarConfig()
        self._position = position_provider
        self._lock = lock or threading.RLock()
        self.metrics = get_metrics()

        self._peers: Dict[str, PeerPosition] = {}
        self._subscription: Optional[BroadcastSubscription] = None
        self._broadcast_timer: Optional[TimerHandle] = None
        self._sweep_timer: Optional[TimerHandle] = None
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connected(self) -> bool:
        subscription = self._subscription
        return subscription is not None and subscription.connected

    def peers(self) -> List[PeerPosition]:
        """Snapshot of the known peers."""
        with self._lock:
            return list(self._peers.values())

    def get_peer(self, peer_id: str) -> Optional[PeerPosition]:
        with self._lock:
            return self._peers.get(peer_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def enable(self):
        """
        Join the channel and start both timers.

        Calling it again after a disconnect re-joins; calling it while
        connected does nothing.
        """
        with self._lock:
            if self._enabled and self.connected:
                return
            self._cancel_timers()
            self._enabled = True

        subscription = self.transport.join(
            self.config.channel,
            on_message=self._on_message,
            on_disconnect=self._on_disconnect,
        )

        with self._lock:
            # disable() ran while joining
            abandoned = not self._enabled
            if not abandoned:
                self._subscription = subscription
                self._broadcast_timer = self.scheduler.call_every(
                    self.config.broadcast_interval_s, self.broadcast_now, name="radar-broadcast")
                self._sweep_timer = self.scheduler.call_every(
                    self.config.sweep_interval_s, self._sweep_tick, name="radar-sweep")

        if abandoned:
            subscription.leave()
            logger.info("Radar disabled while joining; left the channel")
            return

        logger.info(f"Radar enabled on channel '{self.config.channel}' as {self.self_id}")

    def disable(self):
        """Leave the channel, cancel the timers and forget every peer."""
        with self._lock:
            was_enabled = self._enabled
            self._enabled = False
            self._cancel_timers()
            subscription, self._subscription = self._subscription, None
            self._peers.clear()

        if subscription is not None:
            subscription.leave()
        if was_enabled:
            logger.info("Radar disabled")

    def broadcast_now(self) -> bool:
        """
        Send own position once.

        Returns:
            True if a payload was sent
        """
        position = self._position()
        subscription = self._subscription
        if position is None or subscription is None:
            return False

        message = PeerBroadcast(
            peer_id=self.self_id,
            lat=position.lat,
            lng=position.lng,
            heading_deg=position.heading_deg,
            speed_mps=position.speed_mps,
        )
        try:
            subscription.send(message.to_payload())
        except TransportDisconnected as e:
            logger.warning(f"Radar broadcast failed: {e}")
            self.metrics.increment_drop('broadcast_failed')
            return False

        self.metrics.increment('peer_broadcasts')
        return True

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """
        Evict peers not heard from for more than stale_after_s.

        Returns:
            Evicted peer ids
        """
        now = self.scheduler.now() if now is None else now
        with self._lock:
            stale = [
                peer_id for peer_id, peer in self._peers.items()
                if peer.age(now) > self.config.stale_after_s
            ]
            for peer_id in stale:
                del self._peers[peer_id]

        for peer_id in stale:
            self.metrics.increment_drop('stale_peer')
            logger.info(f"Peer {peer_id} lost (no update for {self.config.stale_after_s:.0f}s)")
        return stale

    def _sweep_tick(self):
        self.sweep()

    def _on_message(self, payload: Mapping[str, Any]):
        try:
            message = PeerBroadcast.from_payload(payload)
        except PeerMessageError as e:
            logger.warning(f"Dropping radar payload: {e}")
            self.metrics.increment_drop('malformed_peer_message')
            return

        if message.peer_id == self.self_id:
            self.metrics.increment_drop('own_broadcast')
            return

        now = self.scheduler.now()
        with self._lock:
            if not self._enabled:
                return
            previous = self._peers.get(message.peer_id)
            if previous is not None:
                now = max(now, previous.updated_at + _UPDATE_EPSILON_S)
            self._peers[message.peer_id] = PeerPosition.from_broadcast(message, updated_at=now)

        self.metrics.increment('peer_updates')
        if previous is None:
            logger.info(f"Peer {message.peer_id} appeared at ({message.lat:.6f}, {message.lng:.6f})")
        else:
            logger.debug(f"Peer {message.peer_id} updated")

    def _on_disconnect(self):
        with self._lock:
            if self._broadcast_timer is not None:
                self._broadcast_timer.cancel()
                self._broadcast_timer = None
        logger.warning(f"Radar channel '{self.config.channel}' disconnected; "
                       f"peer updates stopped until re-enabled")

    def _cancel_timers(self):
        for timer in (self._broadcast_timer, self._sweep_timer):
            if timer is not None:
                timer.cancel()
        self._broadcast_timer = None
        self._sweep_timer = None
