"""
Broadcast transport contract for the peer radar.

A transport offers named channels. Joining a channel returns a
subscription that can send payloads to every other member and leave the
channel. Senders never receive their own payloads. When the channel drops,
the on_disconnect callback fires once and later sends fail with
TransportDisconnected; there is no automatic reconnect.

InMemoryBroadcastHub implements the contract in-process (replays,
command-line runner, tests).
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional

from singrar_core.errors import TransportDisconnected

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Mapping[str, Any]], None]
DisconnectCallback = Callable[[], None]


class BroadcastSubscription(ABC):
    """Membership of one channel."""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """False once left or disconnected."""

    @abstractmethod
    def send(self, payload: Mapping[str, Any]):
        """
        Send payload to the other members.

        Raises:
            TransportDisconnected: Subscription is no longer connected
        """

    @abstractmethod
    def leave(self):
        """Leave the channel. Safe to call more than once."""


class BroadcastTransport(ABC):
    """Low-latency pub/sub keyed by channel name."""

    @abstractmethod
    def join(
        self,
        channel: str,
        on_message: MessageCallback,
        on_disconnect: Optional[DisconnectCallback] = None,
    ) -> BroadcastSubscription:
        """Join channel and start receiving payloads."""


class _HubSubscription(BroadcastSubscription):

    def __init__(self, hub: "InMemoryBroadcastHub", channel: str,
                 on_message: MessageCallback,
                 on_disconnect: Optional[DisconnectCallback]):
        self._hub = hub
        self.channel = channel
        self.on_message = on_message
        self.on_disconnect = on_disconnect
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    def send(self, payload: Mapping[str, Any]):
        if not self._connected:
            raise TransportDisconnected(f"Not connected to channel '{self.channel}'")
        self._hub._deliver(self, payload)

    def leave(self):
        if not self._connected:
            return
        self._connected = False
        self._hub._remove(self)

    def _drop(self):
        self._connected = False
        if self.on_disconnect is not None:
            try:
                self.on_disconnect()
            except Exception as e:
                logger.error(f"Disconnect handler failed on '{self.channel}': {e}")


class InMemoryBroadcastHub(BroadcastTransport):
    """
    Process-local broadcast hub.

    Usage:
        hub = InMemoryBroadcastHub()
        sub_a = hub.join("radar", on_message_a)
        sub_b = hub.join("radar", on_message_b)
        sub_a.send({"id": "a", ...})     # delivered to on_message_b only
        hub.disconnect("radar")          # simulate a dropped channel
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[str, List[_HubSubscription]] = {}
        self.sent_count = 0

    def join(
        self,
        channel: str,
        on_message: MessageCallback,
        on_disconnect: Optional[DisconnectCallback] = None,
    ) -> BroadcastSubscription:
        subscription = _HubSubscription(self, channel, on_message, on_disconnect)
        with self._lock:
            self._channels.setdefault(channel, []).append(subscription)
        logger.debug(f"Joined channel '{channel}'")
        return subscription

    def members(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, []))

    def disconnect(self, channel: str):
        """Drop every member of channel, as a lost connection would."""
        with self._lock:
            members = self._channels.pop(channel, [])
        for subscription in members:
            subscription._drop()
        logger.info(f"Channel '{channel}' disconnected ({len(members)} members)")

    def _remove(self, subscription: _HubSubscription):
        with self._lock:
            members = self._channels.get(subscription.channel, [])
            if subscription in members:
                members.remove(subscription)
            if not members:
                self._channels.pop(subscription.channel, None)

    def _deliver(self, sender: _HubSubscription, payload: Mapping[str, Any]):
        with self._lock:
            receivers = [
                s for s in self._channels.get(sender.channel, [])
                if s is not sender
            ]
            self.sent_count += 1

        for subscription in receivers:
            try:
                subscription.on_message(dict(payload))
            except Exception as e:
                logger.error(f"Receiver on '{sender.channel}' failed: {e}", exc_info=True)
