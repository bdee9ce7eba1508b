"""
Tests for storage operation metrics.
"""
import pytest
from datetime import datetime, timedelta

from ontograph.monitoring import PerformanceMonitor


def test_average_times_per_operation():
    monitor = PerformanceMonitor()
    assert monitor.get_average_times() == {}

    for duration in (1.0, 2.0, 3.0):
        monitor.record_operation('list_nodes', duration)
    monitor.record_operation('create_or_update_nodes', 0.5)
    monitor.record_operation('create_or_update_nodes', 1.5)

    assert monitor.get_average_times() == {'list_nodes': 2.0, 'create_or_update_nodes': 1.0}


def test_track_records_failures():
    monitor = PerformanceMonitor()
    with monitor.track('retrieve_node'):
        pass
    with pytest.raises(KeyError):
        with monitor.track('retrieve_node'):
            raise KeyError('missing')

    stats = monitor.get_detailed_metrics()['retrieve_node']
    assert stats['count'] == 2
    assert stats['error_rate'] == 0.5
    assert monitor.metrics['retrieve_node'].last_error == "'missing'"


def test_detailed_metrics_only_cover_the_window():
    monitor = PerformanceMonitor(window=60)
    monitor.record_operation('list_nodes', 1.0)
    monitor.metrics['list_nodes'].samples[0].recorded_at = datetime.now() - timedelta(minutes=5)
    monitor.record_operation('list_nodes', 3.0)

    stats = monitor.get_detailed_metrics()['list_nodes']
    assert stats['count'] == 1
    assert stats['max_duration'] == 3.0
    assert stats['median_duration'] == 3.0


def test_reset():
    monitor = PerformanceMonitor()
    monitor.record_operation('list_nodes', 1.0)
    monitor.reset()
    assert monitor.get_average_times() == {}
