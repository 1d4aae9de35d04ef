"""
Stress test runner for concurrent reservation scenarios.

This module ties the engine together for complete runs:
- Pre-run validation that fails fast before anything is dispatched
- Predefined burst, sustained, spike and gradual scenarios
- Repeated iterations and a full suite over every scenario
- A concurrency monitor running repeated rounds for a fixed duration
- Periodic live snapshots of the tracker while requests are in flight
- Verdicts on success rate, anomaly level and concurrency
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from ..models.client import DispatchPlan, SimulatedClient
from ..models.enums import LoadPattern
from ..models.metrics import RunMetrics, ScenarioResult
from ..models.outcome import Outcome
from ..utils.config import ConfigurationError, RaceTestConfig
from .anomaly_classifier import AnomalyClassifier
from .concurrency_tracker import Clock, ConcurrencyTracker, wall_clock_ms
from .dispatcher import ConcurrentDispatcher, OutcomeCallback
from .metrics_aggregator import MetricsAggregator
from .reservation_client import ReservationClient
from .timing_generator import TimingGenerator, default_spike_phases

logger = logging.getLogger(__name__)

MONITOR_ROUND_WINDOW_MS = 1.0
MONITOR_ROUND_PAUSE_MS = 100.0
HIGH_CONCURRENCY_THRESHOLD = 10


@dataclass
class StressScenario:
    """A predefined load scenario."""
    name: str
    pattern: LoadPattern
    description: str


@dataclass
class Assessment:
    """Verdicts derived from a run's metrics."""
    performance: str          # "excellent", "degraded", "failing"
    anomaly_level: str        # "none", "few", "many"
    high_concurrency: bool
    notes: List[str] = field(default_factory=list)


def assess_metrics(metrics: RunMetrics) -> Assessment:
    """
    Judge a run the way the reports present it.

    Args:
        metrics: Aggregate run metrics

    Returns:
        Assessment: Performance, anomaly and concurrency verdicts
    """
    notes: List[str] = []

    if metrics.success_rate >= 0.95:
        performance = "excellent"
        notes.append("System handles simultaneous load well")
    elif metrics.success_rate >= 0.80:
        performance = "degraded"
        notes.append("System shows some problems under load")
    else:
        performance = "failing"
        notes.append("System has serious problems under simultaneous load")

    if metrics.anomaly_count == 0:
        anomaly_level = "none"
        notes.append("No race conditions detected")
    elif metrics.anomaly_count < metrics.total_requests * 0.05:
        anomaly_level = "few"
        notes.append("Few race conditions detected, system stable")
    else:
        anomaly_level = "many"
        notes.append("Multiple race conditions, needs attention")

    high_concurrency = metrics.peak_concurrency > HIGH_CONCURRENCY_THRESHOLD
    if high_concurrency:
        notes.append(f"High concurrency detected ({metrics.peak_concurrency} simultaneous requests)")

    return Assessment(
        performance=performance,
        anomaly_level=anomaly_level,
        high_concurrency=high_concurrency,
        notes=notes,
    )


class StressTestRunner:
    """
    Runs complete load scenarios against the reservation service.

    Each scenario run gets a fresh tracker, so timelines and peak depths
    never leak between runs.
    """

    def __init__(
        self,
        config: RaceTestConfig,
        client: ReservationClient,
        generator: Optional[TimingGenerator] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize stress test runner.

        Args:
            config: Validated run configuration
            client: Reservation client shared by every dispatch
            generator: Timing generator (seeded from config by default)
            clock: Millisecond clock shared by tracker and runner
        """
        self.config = config
        self.client = client
        self.generator = generator or TimingGenerator(config.seed)
        self.clock = clock or wall_clock_ms
        self.classifier = AnomalyClassifier(config.concurrency_phrases, config.proximity_window_ms)
        self.aggregator = MetricsAggregator()

        self.scenarios: Dict[str, StressScenario] = {
            LoadPattern.BURST.value: StressScenario(
                name="Burst - Simultaneous Clicks",
                pattern=LoadPattern.BURST,
                description=(
                    f"Every user clicks within a {config.burst_window_ms:.0f}ms window"
                ),
            ),
            LoadPattern.SUSTAINED.value: StressScenario(
                name="Sustained - Constant Load",
                pattern=LoadPattern.SUSTAINED,
                description=(
                    f"One {config.selection_policy.value} user every {config.sustained_interval_ms:.0f}ms "
                    f"for {config.sustained_duration_ms:.0f}ms"
                ),
            ),
            LoadPattern.SPIKE.value: StressScenario(
                name="Spike - Sudden Load Increase",
                pattern=LoadPattern.SPIKE,
                description="20% of users for 2s, 100% for 1s, then 30% for 3s",
            ),
            LoadPattern.GRADUAL.value: StressScenario(
                name="Gradual - Progressive Ramp-Up",
                pattern=LoadPattern.GRADUAL,
                description=(
                    f"Users activated in {config.gradual_steps} steps, "
                    f"{config.gradual_step_pause_ms:.0f}ms apart"
                ),
            ),
        }

        logger.info("StressTestRunner initialized with predefined scenarios")

    def get_available_scenarios(self) -> Dict[str, Dict[str, Any]]:
        """
        Get information about available scenarios.

        Returns:
            Dict[str, Dict[str, Any]]: Scenario information keyed by pattern name
        """
        return {
            key: {
                "scenario_name": scenario.name,
                "pattern": scenario.pattern.value,
                "description": scenario.description,
            }
            for key, scenario in self.scenarios.items()
        }

    def _resolve_pattern(self, pattern: Union[LoadPattern, str]) -> LoadPattern:
        try:
            return LoadPattern(pattern)
        except ValueError:
            raise ConfigurationError(
                f"Unknown scenario: {pattern}. Choose one of: {', '.join(self.scenarios)}"
            ) from None

    def _validate(self, clients: Sequence[SimulatedClient]) -> None:
        """Fail fast before any dispatch."""
        if not self.config.base_url:
            raise ConfigurationError("API URL is required")
        if not self.config.project_id:
            raise ConfigurationError("Project ID is required")
        if not clients:
            raise ConfigurationError("No users found in configuration")

    def build_plan(self, pattern: Union[LoadPattern, str], clients: Sequence[SimulatedClient]) -> DispatchPlan:
        """
        Generate the dispatch plan for a scenario from the configured defaults.

        Args:
            pattern: Scenario pattern
            clients: Participating clients

        Returns:
            DispatchPlan: Plan for one scenario run
        """
        pattern = self._resolve_pattern(pattern)
        cfg = self.config

        try:
            if pattern == LoadPattern.BURST:
                return self.generator.burst(clients, cfg.burst_window_ms)
            if pattern == LoadPattern.SUSTAINED:
                return self.generator.sustained(
                    clients, cfg.sustained_interval_ms, cfg.sustained_duration_ms, cfg.selection_policy
                )
            if pattern == LoadPattern.SPIKE:
                phases = cfg.spike_phases if cfg.spike_phases is not None else default_spike_phases(len(clients))
                return self.generator.spike(clients, phases)
            return self.generator.gradual(clients, cfg.gradual_steps, cfg.gradual_step_pause_ms)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    async def _report_progress(self, tracker: ConcurrencyTracker, interval_ms: float) -> None:
        """Log tracker snapshots until cancelled."""
        while True:
            await asyncio.sleep(interval_ms / 1000)
            snap = tracker.snapshot()
            logger.info(
                f"📊 [{datetime.now().isoformat(timespec='seconds')}] Active requests: {snap.current_depth}, "
                f"Total: {snap.total_started}, Successful: {snap.successful}, Peak: {snap.peak_depth}"
            )

    async def _dispatch_with_monitor(
        self,
        dispatcher: ConcurrentDispatcher,
        plan: DispatchPlan,
        monitor_interval_ms: Optional[float],
    ) -> List[Outcome]:
        if not monitor_interval_ms:
            return await dispatcher.dispatch(plan)

        monitor = asyncio.create_task(self._report_progress(dispatcher.tracker, monitor_interval_ms))
        try:
            return await dispatcher.dispatch(plan)
        finally:
            monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor

    def _new_tracker(self) -> ConcurrencyTracker:
        return ConcurrencyTracker(clock=self.clock, strict=self.config.debug)

    def _new_dispatcher(
        self,
        tracker: ConcurrencyTracker,
        concurrency_limit: Optional[int],
        on_outcome: Optional[OutcomeCallback],
    ) -> ConcurrentDispatcher:
        limit = self.config.concurrency_limit if concurrency_limit is None else concurrency_limit
        return ConcurrentDispatcher(
            client=self.client,
            tracker=tracker,
            base_url=self.config.base_url,
            project_id=self.config.project_id,
            concurrency_limit=limit,
            admission_mode=self.config.admission_mode,
            on_outcome=on_outcome,
        )

    def _build_result(
        self,
        pattern: LoadPattern,
        iteration: int,
        started_at: datetime,
        plan: DispatchPlan,
        outcomes: List[Outcome],
        tracker: ConcurrencyTracker,
        wall_clock: float,
    ) -> ScenarioResult:
        timeline = tracker.timeline
        snapshot = tracker.snapshot()
        classification = self.classifier.classify(outcomes, timeline)
        metrics = self.aggregator.aggregate(
            outcomes,
            peak_concurrency=snapshot.peak_depth,
            wall_clock_ms=wall_clock,
            classification=classification,
        )

        if snapshot.current_depth:
            logger.warning(f"{snapshot.current_depth} requests still in flight when the run was summarized")

        logger.info(
            f"Scenario {pattern.value} completed: {metrics.successful_requests} successful, "
            f"{metrics.failed_requests} failed, {metrics.anomaly_count} race conditions, "
            f"peak concurrency {metrics.peak_concurrency}"
        )

        return ScenarioResult(
            pattern=pattern,
            iteration=iteration,
            started_at=started_at,
            plan=plan,
            outcomes=outcomes,
            timeline=timeline,
            classification=classification,
            snapshot=snapshot,
            metrics=metrics,
        )

    async def run_scenario(
        self,
        pattern: Union[LoadPattern, str],
        clients: Optional[Sequence[SimulatedClient]] = None,
        *,
        concurrency_limit: Optional[int] = None,
        monitor_interval_ms: Optional[float] = None,
        iteration: int = 1,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> ScenarioResult:
        """
        Run one scenario end to end.

        Args:
            pattern: Scenario pattern
            clients: Participating clients (defaults to every configured client)
            concurrency_limit: Overrides the configured ceiling
            monitor_interval_ms: Log tracker snapshots at this interval while dispatching
            iteration: Iteration number recorded on the result
            on_outcome: Callback invoked as each outcome completes

        Returns:
            ScenarioResult: Plan, outcomes, timeline, classification and metrics

        Raises:
            ConfigurationError: If the input is invalid; raised before dispatch
        """
        pattern = self._resolve_pattern(pattern)
        clients = list(self.config.clients if clients is None else clients)
        self._validate(clients)

        plan = self.build_plan(pattern, clients)
        tracker = self._new_tracker()
        dispatcher = self._new_dispatcher(tracker, concurrency_limit, on_outcome)

        logger.info(
            f"Starting scenario '{self.scenarios[pattern.value].name}' for project {self.config.project_id} "
            f"with {len(clients)} users"
        )

        started_at = datetime.now()
        run_start = self.clock()
        outcomes = await self._dispatch_with_monitor(dispatcher, plan, monitor_interval_ms)
        wall_clock = max(0.0, self.clock() - run_start)

        return self._build_result(pattern, iteration, started_at, plan, outcomes, tracker, wall_clock)

    async def run_iterations(
        self,
        pattern: Union[LoadPattern, str],
        iterations: int = 1,
        **kwargs: Any,
    ) -> List[ScenarioResult]:
        """
        Repeat a scenario, pausing between iterations.

        Args:
            pattern: Scenario pattern
            iterations: Number of runs
            **kwargs: Passed through to run_scenario

        Returns:
            List[ScenarioResult]: One result per iteration
        """
        if iterations < 1:
            raise ConfigurationError(f"Iterations must be at least 1, got {iterations}")

        results: List[ScenarioResult] = []
        for index in range(1, iterations + 1):
            logger.info(f"🚀 Running iteration {index}/{iterations}")
            results.append(await self.run_scenario(pattern, iteration=index, **kwargs))

            if index < iterations and self.config.iteration_pause_ms > 0:
                logger.info(f"⏸️  Pausing {self.config.iteration_pause_ms / 1000:.1f}s between iterations...")
                await asyncio.sleep(self.config.iteration_pause_ms / 1000)

        return results

    async def run_suite(
        self,
        patterns: Optional[Sequence[Union[LoadPattern, str]]] = None,
        **kwargs: Any,
    ) -> Dict[LoadPattern, ScenarioResult]:
        """
        Run every scenario in sequence.

        Args:
            patterns: Scenarios to include (defaults to all four)
            **kwargs: Passed through to run_scenario

        Returns:
            Dict[LoadPattern, ScenarioResult]: Results keyed by pattern, in run order
        """
        selected = [self._resolve_pattern(p) for p in (patterns or list(LoadPattern))]
        results: Dict[LoadPattern, ScenarioResult] = {}

        for index, pattern in enumerate(selected):
            results[pattern] = await self.run_scenario(pattern, **kwargs)
            if index < len(selected) - 1 and self.config.iteration_pause_ms > 0:
                await asyncio.sleep(self.config.iteration_pause_ms / 1000)

        return results

    async def run_monitor(
        self,
        duration_ms: float,
        interval_ms: float = 1000.0,
        clients: Optional[Sequence[SimulatedClient]] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> ScenarioResult:
        """
        Fire repeated rounds of simultaneous requests for a wall-clock duration.

        Every round dispatches all clients at once against one shared tracker,
        with a short pause between rounds; tracker snapshots are logged every
        interval_ms.

        Args:
            duration_ms: How long to keep starting new rounds
            interval_ms: Snapshot logging interval
            clients: Participating clients (defaults to every configured client)
            on_outcome: Callback invoked as each outcome completes

        Returns:
            ScenarioResult: All rounds combined into one result
        """
        if duration_ms <= 0:
            raise ConfigurationError(f"Monitor duration must be positive, got {duration_ms}ms")
        if interval_ms <= 0:
            raise ConfigurationError(f"Monitor interval must be positive, got {interval_ms}ms")

        clients = list(self.config.clients if clients is None else clients)
        self._validate(clients)

        tracker = self._new_tracker()
        dispatcher = self._new_dispatcher(tracker, None, on_outcome)
        monitor = asyncio.create_task(self._report_progress(tracker, interval_ms))

        logger.info(f"🔍 Starting concurrency monitor for {duration_ms / 1000:.1f}s with {len(clients)} users")

        started_at = datetime.now()
        run_start = self.clock()
        deadline = run_start + duration_ms
        outcomes: List[Outcome] = []
        entries = []
        rounds = 0

        try:
            while self.clock() < deadline:
                plan = self.generator.burst(clients, MONITOR_ROUND_WINDOW_MS)
                entries.extend(plan.entries)
                outcomes.extend(await dispatcher.dispatch(plan))
                rounds += 1
                await asyncio.sleep(MONITOR_ROUND_PAUSE_MS / 1000)
        finally:
            monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor

        wall_clock = max(0.0, self.clock() - run_start)
        logger.info(f"Concurrency monitor finished after {rounds} rounds")

        combined_plan = DispatchPlan(pattern=LoadPattern.BURST, window_ms=MONITOR_ROUND_WINDOW_MS, entries=entries)
        return self._build_result(LoadPattern.BURST, 1, started_at, combined_plan, outcomes, tracker, wall_clock)
