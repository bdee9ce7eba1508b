"""
Timing and error metrics for graph storage operations.

Every storage call made through ``GraphStore`` runs inside
``PerformanceMonitor.track`` so slow or failing backends show up in
``GraphStore.get_performance_metrics``.
"""
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from statistics import mean, median
from typing import Dict, List, Optional


@dataclass
class Sample:
    recorded_at: datetime
    duration: float
    failed: bool = False


@dataclass
class OperationStats:
    """Samples and failure counts for one storage operation."""
    samples: List[Sample] = field(default_factory=list)
    last_error: Optional[str] = None

    def add(self, duration: float, error: Optional[str] = None):
        self.samples.append(Sample(datetime.now(), duration, failed=error is not None))
        if error is not None:
            self.last_error = error

    def prune(self, cutoff: datetime):
        self.samples = [s for s in self.samples if s.recorded_at >= cutoff]

    def summary(self) -> Dict[str, float]:
        durations = [s.duration for s in self.samples]
        if not durations:
            return {'count': 0, 'avg_duration': 0.0, 'median_duration': 0.0, 'max_duration': 0.0,
                    'error_rate': 0.0}
        failures = sum(1 for s in self.samples if s.failed)
        return {
            'count': len(durations),
            'avg_duration': mean(durations),
            'median_duration': median(durations),
            'max_duration': max(durations),
            'error_rate': failures / len(durations),
        }


class PerformanceMonitor:
    def __init__(self, window: int = 3600):
        """
        Args:
            window: Seconds of history kept for the detailed summary
        """
        self.metrics: Dict[str, OperationStats] = defaultdict(OperationStats)
        self.window = window

    def record_operation(self, operation: str, duration: float, error: Optional[str] = None):
        self.metrics[operation].add(duration, error)

    @contextmanager
    def track(self, operation: str):
        """Time the wrapped block; a raised error is recorded and re-raised."""
        started = time.perf_counter()
        try:
            yield
        except Exception as e:
            self.record_operation(operation, time.perf_counter() - started, str(e))
            raise
        self.record_operation(operation, time.perf_counter() - started)

    def get_average_times(self) -> Dict[str, float]:
        return {op: stats.summary()['avg_duration'] for op, stats in self.metrics.items()}

    def get_detailed_metrics(self) -> Dict[str, Dict[str, float]]:
        """Summaries per operation over the configured window."""
        cutoff = datetime.now() - timedelta(seconds=self.window)
        for stats in self.metrics.values():
            stats.prune(cutoff)
        return {op: stats.summary() for op, stats in self.metrics.items()}

    def reset(self):
        self.metrics.clear()
