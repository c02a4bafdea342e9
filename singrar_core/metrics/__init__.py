"""
Process-wide safety metrics.

Components fetch the shared collector once at construction:

    from singrar_core.metrics import get_metrics

    self.metrics = get_metrics()
    self.metrics.increment_drop('stale_peer')

Tests swap in a fresh collector with reset_metrics().
"""

import threading

from .counters import COUNTER_GROUPS, DROP_REASONS, CounterSnapshot, MetricsCollector

_collector = None
_collector_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Shared collector, created on first use."""
    global _collector
    if _collector is None:
        with _collector_lock:
            if _collector is None:
                _collector = MetricsCollector()
    return _collector


def reset_metrics():
    """Replace the shared collector with an empty one."""
    global _collector
    with _collector_lock:
        _collector = MetricsCollector()


__all__ = [
    'COUNTER_GROUPS',
    'DROP_REASONS',
    'CounterSnapshot',
    'MetricsCollector',
    'get_metrics',
    'reset_metrics',
]
