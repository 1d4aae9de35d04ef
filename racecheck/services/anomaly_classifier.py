"""
Anomaly classifier: separates concurrency-induced failures from ordinary ones.

For every failed outcome, the cohort is the set of other requests whose
start timestamps lie strictly within the proximity window of its own
actual dispatch time. A failure is a concurrency anomaly when its cohort is
non-empty and its error text contains (case-insensitively) one of the
configured concurrency phrases. Everything else is an ordinary failure.

This favours precision over recall: anomalies whose error text matches no
phrase are counted as ordinary failures.
"""

import bisect
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..models.enums import EventKind
from ..models.metrics import ClassificationReport, ClassifiedOutcome
from ..models.outcome import Outcome
from ..models.timeline import TimelineEvent

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_WINDOW_MS = 100.0

DEFAULT_CONCURRENCY_PHRASES = (
    "insufficient tokens",
    "not available",
    "concurrent modification",
    "conflict",
    "race condition",
)


class AnomalyClassifier:
    """Temporal-proximity plus error-text heuristic for concurrency failures."""

    def __init__(
        self,
        phrases: Optional[Iterable[str]] = None,
        proximity_window_ms: float = DEFAULT_PROXIMITY_WINDOW_MS,
    ):
        """
        Initialize anomaly classifier.

        Args:
            phrases: Concurrency-indicative phrases (defaults to DEFAULT_CONCURRENCY_PHRASES)
            proximity_window_ms: Cohort window around each failure's dispatch time
        """
        source = DEFAULT_CONCURRENCY_PHRASES if phrases is None else phrases
        self.phrases: List[str] = [phrase.strip().lower() for phrase in source if phrase and phrase.strip()]
        if not self.phrases:
            raise ValueError("At least one concurrency phrase is required")
        if proximity_window_ms <= 0:
            raise ValueError(f"Proximity window must be positive, got {proximity_window_ms}ms")
        self.proximity_window_ms = proximity_window_ms

    def match_phrase(self, error: Optional[str]) -> Optional[str]:
        """Return the first configured phrase contained in the error text, if any."""
        if not error:
            return None
        text = error.lower()
        for phrase in self.phrases:
            if phrase in text:
                return phrase
        return None

    def classify(self, outcomes: Sequence[Outcome], timeline: Sequence[TimelineEvent]) -> ClassificationReport:
        """
        Classify every failed outcome exactly once.

        Args:
            outcomes: Completed outcomes of the run
            timeline: Tracker timeline; when it holds no start events the
                outcomes' own dispatch timestamps are used instead

        Returns:
            ClassificationReport: Disjoint anomaly and ordinary-failure lists
        """
        start_times: Dict[str, float] = {
            event.request_id: event.timestamp_ms
            for event in timeline
            if event.kind == EventKind.START
        }
        if not start_times:
            start_times = {outcome.request_id: outcome.dispatched_at_ms for outcome in outcomes}

        sorted_starts = sorted(start_times.values())

        anomalies: List[ClassifiedOutcome] = []
        ordinary: List[ClassifiedOutcome] = []

        for outcome in outcomes:
            if outcome.success:
                continue

            cohort_size = self._cohort_size(outcome, start_times, sorted_starts)
            phrase = self.match_phrase(outcome.error)
            classified = ClassifiedOutcome(
                outcome=outcome,
                cohort_size=cohort_size,
                is_anomaly=cohort_size >= 1 and phrase is not None,
                matched_phrase=phrase,
            )

            if classified.is_anomaly:
                anomalies.append(classified)
                logger.debug(
                    f"Race condition detected: user={outcome.client_label} "
                    f"cohort={cohort_size} error={outcome.error}"
                )
            else:
                ordinary.append(classified)

        if anomalies:
            logger.info(f"🚨 {len(anomalies)} concurrency anomalies out of {len(anomalies) + len(ordinary)} failures")

        return ClassificationReport(
            proximity_window_ms=self.proximity_window_ms,
            anomalies=anomalies,
            ordinary_failures=ordinary,
        )

    def _cohort_size(self, outcome: Outcome, start_times: Dict[str, float], sorted_starts: List[float]) -> int:
        """Other starts with |t - dispatch time| < window."""
        center = outcome.dispatched_at_ms
        window = self.proximity_window_ms

        low = bisect.bisect_right(sorted_starts, center - window)
        high = bisect.bisect_left(sorted_starts, center + window)
        count = high - low

        own_start = start_times.get(outcome.request_id)
        if own_start is not None and abs(own_start - center) < window:
            count -= 1
        return max(0, count)
