"""
Metrics aggregator: pure reduction of outcomes into RunMetrics.

Holds no mutable state. Every rate guards its denominator: an empty run
reports zeros, and a zero-length run reports its total count as throughput.
"""

import math
from typing import Dict, List, Optional, Sequence

from ..models.enums import FailureKind
from ..models.metrics import ClassificationReport, ErrorCount, RunMetrics
from ..models.outcome import Outcome
from ..models.timeline import TimelineEvent


def percentile(sorted_values: Sequence[float], pct: float) -> float:
    """
    Nearest-rank percentile of an already sorted sequence.

    Args:
        sorted_values: Values in ascending order
        pct: Percentile in (0, 100]

    Returns:
        float: The percentile value, 0.0 for an empty sequence
    """
    if not sorted_values:
        return 0.0
    rank = max(1, math.ceil(pct * len(sorted_values) / 100))
    return float(sorted_values[min(rank, len(sorted_values)) - 1])


def error_histogram(outcomes: Sequence[Outcome]) -> List[ErrorCount]:
    """Failed outcomes grouped by exact error descriptor, in first-seen order."""
    counts: Dict[str, int] = {}
    for outcome in outcomes:
        if not outcome.success:
            counts[outcome.error] = counts.get(outcome.error, 0) + 1
    return [ErrorCount(error=error, count=count) for error, count in counts.items()]


class MetricsAggregator:
    """Reduces an outcome set (plus tracker peak depth) to RunMetrics."""

    @staticmethod
    def wall_clock_ms(outcomes: Sequence[Outcome]) -> float:
        """Span from the first dispatch to the last completion."""
        if not outcomes:
            return 0.0
        first_start = min(outcome.dispatched_at_ms for outcome in outcomes)
        last_end = max(outcome.completed_at_ms for outcome in outcomes)
        return max(0.0, last_end - first_start)

    def aggregate(
        self,
        outcomes: Sequence[Outcome],
        peak_concurrency: Optional[int] = None,
        wall_clock_ms: Optional[float] = None,
        classification: Optional[ClassificationReport] = None,
        timeline: Optional[Sequence[TimelineEvent]] = None,
    ) -> RunMetrics:
        """
        Compute descriptive statistics for a run.

        Args:
            outcomes: Completed outcomes
            peak_concurrency: Tracker peak depth; derived from the timeline when omitted
            wall_clock_ms: Run duration; derived from outcome timestamps when omitted
            classification: Anomaly classification; without it every failure is ordinary
            timeline: Tracker timeline, used only to derive the peak depth

        Returns:
            RunMetrics: Aggregate snapshot
        """
        total = len(outcomes)
        successful = sum(1 for outcome in outcomes if outcome.success)
        failed = total - successful
        transport_failures = sum(
            1 for outcome in outcomes
            if not outcome.success and outcome.failure_kind == FailureKind.TRANSPORT
        )

        if peak_concurrency is None:
            peak_concurrency = max((event.depth_after for event in timeline or []), default=0)

        if wall_clock_ms is None:
            wall_clock_ms = self.wall_clock_ms(outcomes)

        latencies = sorted(outcome.latency_ms for outcome in outcomes)

        if wall_clock_ms > 0:
            throughput = total / (wall_clock_ms / 1000)
        else:
            throughput = float(total)

        if classification is not None:
            anomaly_count = classification.anomaly_count
            ordinary_count = classification.ordinary_failure_count
        else:
            anomaly_count = 0
            ordinary_count = failed

        return RunMetrics(
            total_requests=total,
            successful_requests=successful,
            failed_requests=failed,
            transport_failures=transport_failures,
            success_rate=successful / total if total else 0.0,
            peak_concurrency=peak_concurrency,
            avg_latency_ms=sum(latencies) / total if total else 0.0,
            min_latency_ms=latencies[0] if latencies else 0.0,
            max_latency_ms=latencies[-1] if latencies else 0.0,
            p50_latency_ms=percentile(latencies, 50),
            p95_latency_ms=percentile(latencies, 95),
            p99_latency_ms=percentile(latencies, 99),
            wall_clock_ms=wall_clock_ms,
            throughput_rps=throughput,
            anomaly_count=anomaly_count,
            ordinary_failure_count=ordinary_count,
            anomaly_rate=anomaly_count / total if total else 0.0,
            error_histogram=error_histogram(outcomes),
        )
