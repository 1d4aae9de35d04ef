"""
Engine services for racecheck.

This module contains the reservation client, timing generator, concurrent
dispatcher, concurrency tracker, anomaly classifier and metrics aggregator.
The stress test runner lives in racecheck.services.stress_runner.
"""

from .reservation_client import ReservationClient, HttpReservationClient, build_reserve_payload
from .timing_generator import TimingGenerator, default_spike_phases
from .concurrency_tracker import ConcurrencyTracker, TrackerMisuseError, wall_clock_ms
from .dispatcher import ConcurrentDispatcher
from .anomaly_classifier import AnomalyClassifier, DEFAULT_CONCURRENCY_PHRASES, DEFAULT_PROXIMITY_WINDOW_MS
from .metrics_aggregator import MetricsAggregator, percentile, error_histogram

__all__ = [
    'ReservationClient',
    'HttpReservationClient',
    'build_reserve_payload',
    'TimingGenerator',
    'default_spike_phases',
    'ConcurrencyTracker',
    'TrackerMisuseError',
    'wall_clock_ms',
    'ConcurrentDispatcher',
    'AnomalyClassifier',
    'DEFAULT_CONCURRENCY_PHRASES',
    'DEFAULT_PROXIMITY_WINDOW_MS',
    'MetricsAggregator',
    'percentile',
    'error_histogram'
]
