"""
Concurrent dispatcher: runs a DispatchPlan against the reservation client.

One scheduler owns every (delay, task) pair: each plan entry becomes a
task that sleeps until its planned offset, passes admission control, then
issues the reservation while the concurrency tracker records its start and
end. Admission is the only place the concurrency ceiling is enforced:
- SLOTS: a semaphore of C slots; a request past the ceiling waits until
  any slot frees, so its real dispatch time can lag its planned offset
- WAVES: the plan is split into consecutive groups of C entries and each
  group completes before the next one is released
A ceiling of 0 means unbounded: every entry is dispatched as scheduled.

A transport failure (the client call raising, or returning something that
is not a reservation result) is recorded as a failed outcome and never
aborts sibling dispatches. The tracker always sees the matching end.
"""

import asyncio
import itertools
import logging
import uuid
from typing import Callable, List, Optional

from ..models.client import DispatchPlan, PlannedDispatch
from ..models.enums import AdmissionMode, FailureKind
from ..models.outcome import UNKNOWN_ERROR, Outcome, ReservationResult
from .concurrency_tracker import ConcurrencyTracker
from .reservation_client import ReservationClient

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[Outcome], None]


def describe_exception(exc: BaseException) -> str:
    """Error descriptor for a transport failure."""
    message = str(exc).strip()
    return message or exc.__class__.__name__


class ConcurrentDispatcher:
    """
    Executes dispatch plans under a concurrency ceiling.

    Features:
    - Planned offsets honoured relative to the pattern start
    - Slot or wave admission control, or none when the ceiling is 0
    - Tracker start/end notification for every dispatch
    - Transport failures coerced into failed outcomes
    """

    def __init__(
        self,
        client: ReservationClient,
        tracker: ConcurrencyTracker,
        base_url: str,
        project_id: str,
        concurrency_limit: int = 0,
        admission_mode: AdmissionMode = AdmissionMode.SLOTS,
        on_outcome: Optional[OutcomeCallback] = None,
    ):
        """
        Initialize concurrent dispatcher.

        Args:
            client: Reservation client used for every dispatch
            tracker: Tracker notified of every start and end
            base_url: Reservation API base URL
            project_id: Target project
            concurrency_limit: In-flight ceiling C, 0 for unbounded
            admission_mode: How the ceiling is enforced when C > 0
            on_outcome: Optional callback invoked as each outcome completes
        """
        if concurrency_limit < 0:
            raise ValueError(f"Concurrency limit cannot be negative, got {concurrency_limit}")

        self.client = client
        self.tracker = tracker
        self.base_url = base_url
        self.project_id = project_id
        self.concurrency_limit = concurrency_limit
        self.admission_mode = admission_mode
        self.on_outcome = on_outcome

        self.dispatcher_id = uuid.uuid4().hex[:8]
        self._sequence = itertools.count(1)

    async def dispatch(self, plan: DispatchPlan) -> List[Outcome]:
        """
        Execute every entry of the plan.

        Args:
            plan: Plan to execute; read-only and shared by all tasks

        Returns:
            List[Outcome]: One outcome per dispatched entry, in completion order
        """
        outcomes: List[Outcome] = []
        if plan.is_empty:
            return outcomes

        loop = asyncio.get_running_loop()
        pattern_start = loop.time()

        logger.info(
            f"Dispatching {plan.size} {plan.pattern.value} requests over {plan.window_ms:.0f}ms "
            f"(ceiling: {self.concurrency_limit or 'unbounded'}, mode: {self.admission_mode.value})"
        )

        if self.concurrency_limit and self.admission_mode == AdmissionMode.WAVES:
            for wave_start in range(0, plan.size, self.concurrency_limit):
                wave = plan.entries[wave_start:wave_start + self.concurrency_limit]
                logger.debug(
                    f"Releasing wave of {len(wave)} requests "
                    f"({wave_start + 1}-{wave_start + len(wave)} of {plan.size})"
                )
                results = await asyncio.gather(
                    *(self._run_entry(entry, pattern_start, None, outcomes) for entry in wave),
                    return_exceptions=True,
                )
                self._log_task_errors(results)
        else:
            semaphore = asyncio.Semaphore(self.concurrency_limit) if self.concurrency_limit else None
            results = await asyncio.gather(
                *(self._run_entry(entry, pattern_start, semaphore, outcomes) for entry in plan.entries),
                return_exceptions=True,
            )
            self._log_task_errors(results)

        return outcomes

    @staticmethod
    def _log_task_errors(results: List[object]) -> None:
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Dispatch task failed: {describe_exception(result)}")

    @staticmethod
    def _coerce_result(raw: object) -> ReservationResult:
        """Accept a ReservationResult or an equivalent dict; reject anything else."""
        if isinstance(raw, ReservationResult):
            return raw
        if isinstance(raw, dict):
            return ReservationResult(**raw)
        raise TypeError(f"Unexpected reservation result of type {type(raw).__name__}")

    async def _run_entry(
        self,
        entry: PlannedDispatch,
        pattern_start: float,
        semaphore: Optional[asyncio.Semaphore],
        outcomes: List[Outcome],
    ) -> None:
        """Wait for the planned offset, pass admission, then issue the request."""
        loop = asyncio.get_running_loop()
        delay = pattern_start + entry.offset_ms / 1000 - loop.time()
        if delay > 0:
            await asyncio.sleep(delay)

        if semaphore is None:
            outcome = await self._issue(entry)
        else:
            async with semaphore:
                outcome = await self._issue(entry)

        outcomes.append(outcome)
        if self.on_outcome is not None:
            try:
                self.on_outcome(outcome)
            except Exception as e:
                logger.warning(f"Outcome callback failed for {outcome.request_id}: {describe_exception(e)}")

    async def _issue(self, entry: PlannedDispatch) -> Outcome:
        """Issue one reservation, bracketed by tracker start/end notifications."""
        client = entry.client
        request_id = f"req_{self.dispatcher_id}_{next(self._sequence)}"

        handle = self.tracker.on_start(request_id, client.label)
        result = ReservationResult(success=False, error="Request cancelled")
        failure_kind: Optional[FailureKind] = FailureKind.TRANSPORT

        try:
            raw = await self.client.reserve(
                self.base_url,
                client.email,
                self.project_id,
                client.token_amount,
                client.user_id,
                client.wallet,
            )
            result = self._coerce_result(raw)
            failure_kind = None if result.success else FailureKind.BUSINESS
        except Exception as e:
            logger.warning(f"Transport failure for {client.label}: {describe_exception(e)}")
            result = ReservationResult(success=False, error=describe_exception(e))
            failure_kind = FailureKind.TRANSPORT
        finally:
            latency_ms = max(0.0, self.tracker.clock() - handle.started_at_ms)
            error = None if result.success else (result.error or UNKNOWN_ERROR)
            self.tracker.on_end(request_id, result.success, latency_ms, error)

        if failure_kind == FailureKind.BUSINESS:
            logger.debug(f"Reservation failed for {client.label}: {error}")

        return Outcome(
            request_id=request_id,
            client_label=client.label,
            token_amount=client.token_amount,
            success=result.success,
            latency_ms=latency_ms,
            error=error,
            failure_kind=failure_kind,
            dispatched_at_ms=handle.started_at_ms,
            planned_offset_ms=entry.offset_ms,
            phase=entry.phase,
            data=result.data if result.success else None,
        )
