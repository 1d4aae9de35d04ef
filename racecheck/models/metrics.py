"""
Metrics and result models for the racecheck engine.

This module contains models for aggregate run metrics, anomaly
classification results and complete scenario results.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from .client import DispatchPlan
from .enums import LoadPattern
from .outcome import Outcome
from .timeline import TimelineEvent, TrackerSnapshot


class ErrorCount(BaseModel):
    """One error histogram bucket."""
    model_config = ConfigDict(frozen=True)

    error: str = Field(..., description="Exact error descriptor")
    count: int = Field(..., ge=1, description="Number of failed outcomes with this descriptor")


class RunMetrics(BaseModel):
    """
    Aggregate snapshot of one run.

    Derived from the outcome set and the tracker peak depth; recomputed on
    demand, never mutated independently.
    """
    model_config = ConfigDict(frozen=True)

    total_requests: int = Field(default=0, ge=0, description="Total completed requests")
    successful_requests: int = Field(default=0, ge=0, description="Successful requests")
    failed_requests: int = Field(default=0, ge=0, description="Failed requests")
    transport_failures: int = Field(default=0, ge=0, description="Failures raised by the client call itself")
    success_rate: float = Field(default=0.0, ge=0.0, le=1.0, description="Successful / total")
    peak_concurrency: int = Field(default=0, ge=0, description="Peak in-flight depth")
    avg_latency_ms: float = Field(default=0.0, ge=0.0, description="Average latency")
    min_latency_ms: float = Field(default=0.0, ge=0.0, description="Minimum latency")
    max_latency_ms: float = Field(default=0.0, ge=0.0, description="Maximum latency")
    p50_latency_ms: float = Field(default=0.0, ge=0.0, description="Median latency")
    p95_latency_ms: float = Field(default=0.0, ge=0.0, description="95th percentile latency")
    p99_latency_ms: float = Field(default=0.0, ge=0.0, description="99th percentile latency")
    wall_clock_ms: float = Field(default=0.0, ge=0.0, description="Wall-clock run duration")
    throughput_rps: float = Field(default=0.0, ge=0.0, description="Requests per second of wall-clock time")
    anomaly_count: int = Field(default=0, ge=0, description="Concurrency anomalies detected")
    ordinary_failure_count: int = Field(default=0, ge=0, description="Failures not attributed to concurrency")
    anomaly_rate: float = Field(default=0.0, ge=0.0, le=1.0, description="Anomalies / total")
    error_histogram: List[ErrorCount] = Field(default_factory=list, description="Failures by descriptor, first-seen order")

    def top_errors(self, k: int = 5) -> List[ErrorCount]:
        """
        Most frequent error descriptors.

        Args:
            k: Maximum number of buckets to return

        Returns:
            List[ErrorCount]: Buckets by count descending, ties in first-seen order
        """
        if k <= 0:
            return []
        # sorted() is stable, so equal counts keep histogram (first-seen) order
        return sorted(self.error_histogram, key=lambda bucket: -bucket.count)[:k]


class ClassifiedOutcome(BaseModel):
    """Classification of one failed outcome."""
    model_config = ConfigDict(frozen=True)

    outcome: Outcome
    cohort_size: int = Field(..., ge=0, description="Other starts within the proximity window")
    is_anomaly: bool = Field(..., description="Flagged as concurrency-induced")
    matched_phrase: Optional[str] = Field(None, description="Concurrency phrase found in the error text")


class ClassificationReport(BaseModel):
    """Disjoint split of all failures into anomalies and ordinary failures."""
    model_config = ConfigDict(frozen=True)

    proximity_window_ms: float = Field(..., gt=0)
    anomalies: List[ClassifiedOutcome] = Field(default_factory=list)
    ordinary_failures: List[ClassifiedOutcome] = Field(default_factory=list)

    @property
    def anomaly_count(self) -> int:
        return len(self.anomalies)

    @property
    def ordinary_failure_count(self) -> int:
        return len(self.ordinary_failures)

    @property
    def total_failures(self) -> int:
        return self.anomaly_count + self.ordinary_failure_count


class ScenarioResult(BaseModel):
    """Everything produced by one scenario run."""
    model_config = ConfigDict(frozen=True)

    pattern: LoadPattern
    iteration: int = Field(default=1, ge=1)
    started_at: datetime = Field(default_factory=datetime.now)
    plan: DispatchPlan
    outcomes: List[Outcome] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)
    classification: ClassificationReport
    snapshot: TrackerSnapshot
    metrics: RunMetrics
