"""
Concurrency tracker: authoritative in-flight state for one run.

Every start/end notification funnels through a single mutex, which is the
only total order the engine guarantees. The tracker owns the live set of
in-flight requests (keyed by request id) and the append-only timeline that
the anomaly classifier reads after the run.

Misuse policy: ending an unknown request id raises TrackerMisuseError in
strict mode (debug runs). Otherwise it is logged, counted in
unknown_end_events and ignored. In both modes the state of every other
in-flight request is left untouched.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from ..models.enums import EventKind
from ..models.timeline import InFlightRequest, TimelineEvent, TrackerSnapshot

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Milliseconds since the epoch."""
    return time.time() * 1000


class TrackerMisuseError(RuntimeError):
    """Raised for unknown or duplicate request ids."""
    pass


class ConcurrencyTracker:
    """
    Thread-safe tracker of in-flight requests and concurrency depth.

    State machine per request: Dispatched -> Completed.
    current_depth is the number of dispatched, not yet completed requests;
    peak_depth is the largest current_depth ever observed.
    """

    def __init__(self, clock: Optional[Clock] = None, strict: bool = False):
        """
        Initialize concurrency tracker.

        Args:
            clock: Millisecond clock shared with the dispatcher
            strict: Raise on unknown request ids instead of ignoring them
        """
        self.clock = clock or wall_clock_ms
        self.strict = strict

        self._lock = threading.Lock()
        self._in_flight: Dict[str, InFlightRequest] = {}
        self._timeline: List[TimelineEvent] = []

        self._peak_depth = 0
        self._total_started = 0
        self._total_completed = 0
        self._successful = 0
        self._failed = 0
        self._unknown_end_events = 0

    def on_start(self, request_id: str, client_label: str) -> InFlightRequest:
        """
        Register a newly dispatched request.

        Args:
            request_id: Unique per dispatch
            client_label: Client label for the timeline

        Returns:
            InFlightRequest: Handle carrying the recorded start timestamp

        Raises:
            TrackerMisuseError: If the request id is already in flight
        """
        with self._lock:
            if request_id in self._in_flight:
                raise TrackerMisuseError(f"Request {request_id} is already in flight")

            timestamp = self.clock()
            request = InFlightRequest(
                request_id=request_id,
                client_label=client_label,
                started_at_ms=timestamp,
            )
            self._in_flight[request_id] = request
            self._total_started += 1

            depth = len(self._in_flight)
            if depth > self._peak_depth:
                self._peak_depth = depth

            self._timeline.append(
                TimelineEvent(
                    timestamp_ms=timestamp,
                    kind=EventKind.START,
                    request_id=request_id,
                    client_label=client_label,
                    depth_after=depth,
                )
            )

        logger.debug(f"start {request_id} ({client_label}) depth={depth}")
        return request

    def on_end(
        self,
        request_id: str,
        success: bool,
        latency_ms: float,
        error: Optional[str] = None,
    ) -> Optional[InFlightRequest]:
        """
        Complete an in-flight request.

        Args:
            request_id: Id passed to on_start
            success: Whether the reservation succeeded
            latency_ms: Completion minus start
            error: Error descriptor for failures

        Returns:
            Optional[InFlightRequest]: The completed request, or None when the
            id was unknown in non-strict mode

        Raises:
            TrackerMisuseError: In strict mode, if the id is not in flight
        """
        with self._lock:
            request = self._in_flight.pop(request_id, None)

            if request is None:
                self._unknown_end_events += 1
                if self.strict:
                    raise TrackerMisuseError(f"Cannot end unknown request {request_id}")
                logger.warning(f"Ignoring end notification for unknown request {request_id}")
                return None

            self._total_completed += 1
            if success:
                self._successful += 1
            else:
                self._failed += 1

            depth = len(self._in_flight)
            self._timeline.append(
                TimelineEvent(
                    timestamp_ms=self.clock(),
                    kind=EventKind.END,
                    request_id=request_id,
                    client_label=request.client_label,
                    depth_after=depth,
                    success=success,
                    latency_ms=max(0.0, latency_ms),
                    error=None if success else error,
                )
            )

        logger.debug(f"end {request_id} success={success} latency={latency_ms:.1f}ms depth={depth}")
        return request

    def snapshot(self) -> TrackerSnapshot:
        """Consistent point-in-time view; safe during ongoing traffic."""
        with self._lock:
            return TrackerSnapshot(
                current_depth=len(self._in_flight),
                peak_depth=self._peak_depth,
                total_started=self._total_started,
                total_completed=self._total_completed,
                successful=self._successful,
                failed=self._failed,
                unknown_end_events=self._unknown_end_events,
            )

    @property
    def current_depth(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def peak_depth(self) -> int:
        with self._lock:
            return self._peak_depth

    @property
    def timeline(self) -> List[TimelineEvent]:
        """Copy of the timeline in tracker processing order."""
        with self._lock:
            return list(self._timeline)

    def in_flight(self) -> List[InFlightRequest]:
        """Requests dispatched but not yet completed."""
        with self._lock:
            return list(self._in_flight.values())
