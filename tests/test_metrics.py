"""
Unit tests for metrics module.

Tests cover:
- Counter increment (single-threaded and multi-threaded)
- Drop reason catalogue and tracking
- Histogram recording and statistics
- Snapshot and reset functionality
- Global singleton
"""

import logging
import threading
import time

from singrar_core.metrics import MetricsCollector, get_metrics, reset_metrics


class TestCounters:
    """Tests for plain counters."""

    def test_standard_counters_start_at_zero(self):
        """Safety counters exist from the start so summaries are complete."""
        collector = MetricsCollector()
        snapshot = collector.snapshot()

        for name in ('fixes_in', 'samples_published', 'anchor_alerts',
                     'collision_countdowns', 'emergencies', 'alerts_dispatched'):
            assert snapshot.counters[name] == 0

        assert collector.get_counter('never_used') == 0

    def test_increment(self):
        collector = MetricsCollector()

        collector.increment('fixes_in')
        collector.increment('fixes_in', 4)

        assert collector.get_counter('fixes_in') == 5


class TestDropReasons:
    """Tests for drop reason tracking."""

    def test_catalogue(self):
        """Every reason a component records is in the catalogue."""
        expected = [
            'low_accuracy',
            'duplicate_fix',
            'malformed_fix',
            'sensor_error',
            'below_min_displacement',
            'malformed_peer_message',
            'own_broadcast',
            'stale_peer',
            'broadcast_failed',
        ]
        for reason in expected:
            assert reason in MetricsCollector.DROP_REASONS

    def test_drop_counts_per_reason_and_total(self):
        collector = MetricsCollector()

        collector.increment_drop('low_accuracy', 3)
        collector.increment_drop('stale_peer')

        assert collector.get_drop_count('low_accuracy') == 3
        assert collector.get_drop_count('stale_peer') == 1
        assert collector.get_counter('dropped') == 4
        assert collector.snapshot().total_dropped() == 4

    def test_unknown_reason_logged_and_counted(self, caplog):
        collector = MetricsCollector()

        with caplog.at_level(logging.WARNING):
            collector.increment_drop('cosmic_ray')

        assert 'cosmic_ray' in caplog.text
        assert collector.get_drop_count('cosmic_ray') == 1

    def test_drop_rate(self):
        collector = MetricsCollector()
        collector.increment('fixes_in', 50)
        collector.increment_drop('duplicate_fix', 2)
        collector.increment_drop('malformed_fix', 3)

        assert collector.snapshot().drop_rate(50) == 10.0
        assert collector.snapshot().drop_rate(0) == 0.0


class TestHistograms:
    """Tests for histogram functionality."""

    def test_stats(self):
        collector = MetricsCollector()
        for accuracy in (4.0, 6.0, 8.0, 30.0):
            collector.record_histogram('fix_accuracy_m', accuracy)

        stats = collector.get_histogram_stats('fix_accuracy_m')

        assert stats['count'] == 4
        assert stats['min'] == 4.0
        assert stats['max'] == 30.0
        assert stats['mean'] == 12.0
        assert stats['median'] == 7.0

    def test_empty(self):
        assert MetricsCollector().get_histogram_stats('anchor_drift_m') is None

    def test_percentiles(self):
        collector = MetricsCollector()
        for i in range(200):
            collector.record_histogram('peer_distance_m', float(i))

        stats = collector.get_histogram_stats('peer_distance_m')

        assert stats['p95'] == 190.0
        assert stats['p99'] == 198.0

    def test_bounded(self):
        """Histograms never grow past max_samples."""
        collector = MetricsCollector()
        for i in range(5000):
            collector.record_histogram('anchor_drift_m', float(i), max_samples=400)

        assert len(collector.snapshot().histograms['anchor_drift_m']) <= 400


class TestSnapshotAndReset:
    """Tests for snapshot copies and reset."""

    def test_snapshot_is_a_copy(self):
        collector = MetricsCollector()
        collector.increment('peer_updates', 2)
        first = collector.snapshot()

        collector.increment('peer_updates', 3)

        assert first.counters['peer_updates'] == 2
        assert collector.snapshot().counters['peer_updates'] == 5

    def test_snapshot_timestamp(self):
        before = time.time()
        snapshot = MetricsCollector().snapshot()
        assert before <= snapshot.timestamp <= time.time()

    def test_reset(self):
        collector = MetricsCollector()
        collector.increment('anchor_alerts', 2)
        collector.increment_drop('sensor_error')
        collector.record_histogram('anchor_drift_m', 40.0)

        collector.reset()

        snapshot = collector.snapshot()
        assert snapshot.counters['anchor_alerts'] == 0
        assert snapshot.total_dropped() == 0
        assert snapshot.histograms == {}
        assert 'sensor_error' in snapshot.drop_reasons


class TestThreadSafety:
    """Counters stay exact under concurrent sensor and timer threads."""

    def test_concurrent_increments_and_drops(self):
        collector = MetricsCollector()

        def worker():
            for _ in range(500):
                collector.increment('fixes_in')
                collector.increment_drop('duplicate_fix')

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert collector.get_counter('fixes_in') == 4000
        assert collector.get_drop_count('duplicate_fix') == 4000


class TestGlobalSingleton:
    """Tests for the process-wide collector."""

    def test_same_instance(self):
        assert get_metrics() is get_metrics()

    def test_reset_metrics_replaces_instance(self):
        old = get_metrics()
        old.increment('emergencies')

        reset_metrics()

        assert get_metrics() is not old
        assert get_metrics().get_counter('emergencies') == 0


class TestPrintSummary:
    """Tests for the human-readable summary."""

    def test_summary(self, capsys):
        collector = MetricsCollector()
        collector.increment('anchor_alerts')
        collector.increment_drop('low_accuracy')
        collector.record_histogram('fix_accuracy_m', 5.0)

        collector.print_summary()

        out = capsys.readouterr().out
        assert 'SAFETY METRICS' in out
        assert 'anchor_alerts' in out
        assert 'low_accuracy' in out
        assert 'fix_accuracy_m' in out
