"""
Safety metrics: counters, drop reasons and bounded histograms.

Every fix or peer message a component throws away is counted under a
reason code, so an alarm that stays quiet because nothing happened can be
told apart from one that stays quiet because it was starved of data.

Histograms keep only their most recent values (ring buffer), so a
long anchor watch does not grow memory.
"""

import logging
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional
import numpy as np

logger = logging.getLogger(__name__)

DROP_REASONS = {
    'low_accuracy': 'Fix accuracy worse than threshold',
    'duplicate_fix': 'Same fix delivered twice by the platform',
    'malformed_fix': 'Raw fix missing fields or out of range',
    'sensor_error': 'Position source reported an error',
    'below_min_displacement': 'Moved less than the track spacing',
    'malformed_peer_message': 'Peer payload failed to parse',
    'own_broadcast': 'Own radar broadcast echoed back',
    'stale_peer': 'Peer not updated within staleness window',
    'broadcast_failed': 'Radar broadcast could not be sent',
}

# Summary layout; counters not listed here are printed under "other"
COUNTER_GROUPS = {
    'position': ('fixes_in', 'samples_published', 'track_points', 'dropped'),
    'safety': ('anchor_alerts', 'collision_countdowns', 'emergencies'),
    'radar': ('peer_updates', 'peer_broadcasts'),
    'alerting': ('alerts_dispatched', 'alert_render_failures'),
}

DEFAULT_HISTOGRAM_SIZE = 5000


def _rank(sorted_values: np.ndarray, fraction: float) -> float:
    """Nearest-rank percentile of an already sorted array."""
    return float(sorted_values[int(len(sorted_values) * fraction)])


class _Histogram:
    """Most recent values of one measurement."""

    def __init__(self, max_samples: int):
        self.values: Deque[float] = deque(maxlen=max_samples)

    def stats(self) -> Optional[Dict[str, float]]:
        if not self.values:
            return None
        data = np.sort(np.fromiter(self.values, dtype=float))
        return {
            'count': len(data),
            'min': float(data[0]),
            'max': float(data[-1]),
            'mean': float(data.mean()),
            'median': float(np.median(data)),
            'p95': _rank(data, 0.95),
            'p99': _rank(data, 0.99),
        }


@dataclass
class CounterSnapshot:
    """Copy of every metric at one instant."""

    timestamp: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]]

    def total_dropped(self) -> int:
        return sum(self.drop_reasons.values())

    def drop_rate(self, total_in: int) -> float:
        """Dropped items as a percentage of total_in (0 when nothing came in)."""
        if total_in == 0:
            return 0.0
        return 100.0 * self.total_dropped() / total_in


class MetricsCollector:
    """
    Thread-safe metrics shared by the sampler, the domain components and
    the alert dispatcher.

    Usage:
        metrics = MetricsCollector()
        metrics.increment('fixes_in')
        metrics.increment_drop('low_accuracy')
        metrics.record_histogram('anchor_drift_m', 22.4)

        if metrics.snapshot().drop_rate(metrics.get_counter('fixes_in')) > 50:
            ...
    """

    DROP_REASONS = DROP_REASONS

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Counter = Counter()
        self._drops: Counter = Counter()
        self._histograms: Dict[str, _Histogram] = {}
        self._started_at = time.time()

    def increment(self, counter_name: str, value: int = 1):
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Count value dropped items under reason.

        Reasons outside DROP_REASONS are still counted, with a warning, so a
        typo never hides drops.
        """
        if reason not in DROP_REASONS:
            logger.warning(f"Unknown drop reason '{reason}'")

        with self._lock:
            self._drops[reason] += value
            self._counters['dropped'] += value

    def get_counter(self, counter_name: str) -> int:
        with self._lock:
            return self._counters[counter_name]

    def get_drop_count(self, reason: str) -> int:
        with self._lock:
            return self._drops[reason]

    def record_histogram(self, histogram_name: str, value: float,
                         max_samples: int = DEFAULT_HISTOGRAM_SIZE):
        """
        Record one measurement.

        Args:
            histogram_name: e.g. 'fix_accuracy_m', 'anchor_drift_m'
            value: Measurement
            max_samples: Ring size, fixed by the first recording
        """
        with self._lock:
            histogram = self._histograms.get(histogram_name)
            if histogram is None:
                histogram = self._histograms[histogram_name] = _Histogram(max_samples)
            histogram.values.append(float(value))

    def get_histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Summary statistics of one histogram.

        Returns:
            Dict with count, min, max, mean, median, p95, p99
            (None if nothing was recorded)
        """
        with self._lock:
            histogram = self._histograms.get(histogram_name)
            return histogram.stats() if histogram is not None else None

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            counters = {name: 0 for group in COUNTER_GROUPS.values() for name in group}
            counters.update(self._counters)
            drops = dict.fromkeys(DROP_REASONS, 0)
            drops.update(self._drops)
            return CounterSnapshot(
                timestamp=time.time(),
                counters=counters,
                drop_reasons=drops,
                histograms={name: list(h.values) for name, h in self._histograms.items()},
            )

    def reset(self):
        """Zero everything and restart the uptime clock."""
        with self._lock:
            self._counters.clear()
            self._drops.clear()
            self._histograms.clear()
            self._started_at = time.time()

    def get_uptime(self) -> float:
        return time.time() - self._started_at

    def print_summary(self):
        """Print counters by group, non-zero drop reasons and histogram stats."""
        snapshot = self.snapshot()
        width = 70

        print("\n" + "=" * width)
        print(f"  SAFETY METRICS (uptime: {self.get_uptime():.1f}s)")
        print("=" * width)

        grouped = set()
        for group, names in COUNTER_GROUPS.items():
            print(f"\n{group.upper()}:")
            for name in names:
                print(f"  {name:30s}: {snapshot.counters[name]:8d}")
            grouped.update(names)

        others = sorted(set(snapshot.counters) - grouped)
        if others:
            print("\nOTHER:")
            for name in others:
                print(f"  {name:30s}: {snapshot.counters[name]:8d}")

        total = snapshot.total_dropped()
        if total:
            print(f"\nDROPPED ({total}):")
            for reason, count in sorted(snapshot.drop_reasons.items(), key=lambda kv: -kv[1]):
                if count:
                    print(f"  {reason:30s}: {count:8d} ({100.0 * count / total:5.1f}%)")

        for name in sorted(snapshot.histograms):
            stats = self.get_histogram_stats(name)
            if stats:
                print(f"\n{name}: n={stats['count']} median={stats['median']:.2f} "
                      f"p95={stats['p95']:.2f} max={stats['max']:.2f}")

        print("=" * width + "\n")
