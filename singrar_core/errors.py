"""
Error taxonomy for the safety core.

Low-accuracy samples are not errors: they are dropped with the
'low_accuracy' reason code (see singrar_core.metrics).
"""


class SafetyCoreError(Exception):
    """Base class for every error raised by singrar_core."""


class SensorUnavailable(SafetyCoreError):
    """Device has no geolocation capability. Reported once, never retried."""


class SensorTimeout(SafetyCoreError):
    """A requested fix was not obtained in time. Last known position is kept."""


class NoPositionFix(SafetyCoreError):
    """An operation needs the current position but none is known yet."""


class InvalidGeofence(SafetyCoreError, ValueError):
    """Anchor radius is not strictly positive."""


class TransportDisconnected(SafetyCoreError):
    """Peer broadcast channel dropped or was left."""


class PeerMessageError(SafetyCoreError, ValueError):
    """Peer radar payload could not be parsed."""
