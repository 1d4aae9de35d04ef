"""
Stress test runner tests: complete scenario runs against scripted clients.
"""

import pytest

from racecheck.models import LoadPattern, ReservationResult, RunMetrics
from racecheck.services.concurrency_tracker import TrackerMisuseError
from racecheck.services.stress_runner import StressTestRunner, assess_metrics
from racecheck.utils.config import ConfigurationError


class TestStressTestRunner:
    """Test stress test runner functionality."""

    @pytest.fixture
    def runner(self, race_config, scripted_client):
        return StressTestRunner(race_config, scripted_client)

    def test_available_scenarios(self, runner):
        scenarios = runner.get_available_scenarios()
        assert set(scenarios) == {"burst", "sustained", "spike", "gradual"}
        assert scenarios["burst"]["scenario_name"] == "Burst - Simultaneous Clicks"
        assert all(info["description"] for info in scenarios.values())

    @pytest.mark.asyncio
    async def test_burst_scenario(self, runner, scripted_client, race_config):
        result = await runner.run_scenario(LoadPattern.BURST)

        assert result.pattern == LoadPattern.BURST
        assert result.plan.size == 5
        assert result.metrics.total_requests == 5
        assert result.metrics.success_rate == 1.0
        assert result.metrics.anomaly_count == 0
        assert result.snapshot.current_depth == 0
        assert len(result.timeline) == 10
        assert result.metrics.wall_clock_ms > 0
        assert {call["base_url"] for call in scripted_client.calls} == {"http://reserve.test/api"}
        assert {call["project_id"] for call in scripted_client.calls} == {race_config.project_id}

    @pytest.mark.asyncio
    async def test_pattern_by_name(self, runner):
        result = await runner.run_scenario("gradual")
        assert result.pattern == LoadPattern.GRADUAL
        assert result.metrics.total_requests == 5

    @pytest.mark.asyncio
    async def test_sustained_is_duration_bound(self, runner):
        result = await runner.run_scenario(LoadPattern.SUSTAINED)
        assert result.metrics.total_requests == 4

    @pytest.mark.asyncio
    async def test_spike_uses_configured_phases(self, runner):
        result = await runner.run_scenario(LoadPattern.SPIKE)
        assert result.metrics.total_requests == 8

    @pytest.mark.asyncio
    async def test_detects_race_conditions(self, race_config, scripted_client_factory, clients):
        client = scripted_client_factory(responses={
            clients[1].email: ReservationResult(success=False, error="Insufficient tokens available"),
            clients[3].email: ReservationResult(success=False, error="Insufficient tokens available"),
            clients[4].email: ReservationResult(success=False, error="Invalid email"),
        })
        runner = StressTestRunner(race_config, client)

        result = await runner.run_scenario(LoadPattern.BURST)

        assert result.metrics.failed_requests == 3
        assert result.metrics.anomaly_count == 2
        assert result.metrics.ordinary_failure_count == 1
        assert result.metrics.top_errors(1)[0].error == "Insufficient tokens available"

    @pytest.mark.asyncio
    async def test_concurrency_limit_override(self, race_config, scripted_client_factory):
        client = scripted_client_factory(delay_s=0.01)
        runner = StressTestRunner(race_config, client)

        result = await runner.run_scenario(LoadPattern.BURST, concurrency_limit=1)

        assert result.metrics.peak_concurrency == 1
        assert client.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_each_run_gets_a_fresh_tracker(self, runner):
        await runner.run_scenario(LoadPattern.BURST)
        second = await runner.run_scenario(LoadPattern.BURST)
        assert second.snapshot.total_started == 5
        assert len(second.timeline) == 10

    @pytest.mark.asyncio
    async def test_subset_of_clients(self, runner, clients):
        result = await runner.run_scenario(LoadPattern.BURST, clients[:2])
        assert result.metrics.total_requests == 2

    @pytest.mark.asyncio
    async def test_empty_clients_fail_before_dispatch(self, runner, scripted_client):
        with pytest.raises(ConfigurationError):
            await runner.run_scenario(LoadPattern.BURST, clients=[])
        assert scripted_client.calls == []

    @pytest.mark.asyncio
    async def test_unknown_pattern(self, runner):
        with pytest.raises(ConfigurationError):
            await runner.run_scenario("stampede")

    @pytest.mark.asyncio
    async def test_live_monitor_does_not_change_results(self, race_config, scripted_client_factory):
        runner = StressTestRunner(race_config, scripted_client_factory(delay_s=0.005))
        result = await runner.run_scenario(LoadPattern.BURST, monitor_interval_ms=1)
        assert result.metrics.total_requests == 5

    @pytest.mark.asyncio
    async def test_iterations(self, runner):
        results = await runner.run_iterations(LoadPattern.BURST, 3)
        assert [r.iteration for r in results] == [1, 2, 3]
        assert all(r.metrics.total_requests == 5 for r in results)

    @pytest.mark.asyncio
    async def test_iterations_must_be_positive(self, runner):
        with pytest.raises(ConfigurationError):
            await runner.run_iterations(LoadPattern.BURST, 0)

    @pytest.mark.asyncio
    async def test_suite_runs_every_scenario(self, runner):
        results = await runner.run_suite()
        assert list(results) == [LoadPattern.BURST, LoadPattern.SUSTAINED, LoadPattern.SPIKE, LoadPattern.GRADUAL]

    @pytest.mark.asyncio
    async def test_monitor_runs_rounds(self, runner):
        result = await runner.run_monitor(duration_ms=30, interval_ms=10)

        assert result.metrics.total_requests >= 5
        assert result.metrics.total_requests % 5 == 0
        assert result.snapshot.total_completed == result.metrics.total_requests

    @pytest.mark.asyncio
    async def test_monitor_rejects_zero_duration(self, runner):
        with pytest.raises(ConfigurationError):
            await runner.run_monitor(duration_ms=0)

    @pytest.mark.asyncio
    async def test_debug_runs_use_strict_tracker(self, race_config, scripted_client):
        runner = StressTestRunner(race_config.model_copy(update={"debug": True}), scripted_client)
        tracker = runner._new_tracker()
        with pytest.raises(TrackerMisuseError):
            tracker.on_end("ghost", True, 0)


class TestAssessment:
    """Test run verdicts."""

    def test_excellent_run(self):
        assessment = assess_metrics(RunMetrics(total_requests=100, success_rate=0.96, peak_concurrency=5))
        assert assessment.performance == "excellent"
        assert assessment.anomaly_level == "none"
        assert assessment.high_concurrency is False

    def test_degraded_run_with_few_anomalies(self):
        assessment = assess_metrics(RunMetrics(total_requests=100, success_rate=0.85, anomaly_count=3))
        assert assessment.performance == "degraded"
        assert assessment.anomaly_level == "few"

    def test_failing_run_with_many_anomalies(self):
        assessment = assess_metrics(
            RunMetrics(total_requests=100, success_rate=0.5, anomaly_count=10, peak_concurrency=11)
        )
        assert assessment.performance == "failing"
        assert assessment.anomaly_level == "many"
        assert assessment.high_concurrency is True
        assert any("11 simultaneous" in note for note in assessment.notes)
