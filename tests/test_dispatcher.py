"""
Concurrent dispatcher tests using scripted reservation clients.
"""

from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from racecheck.models import (
    UNKNOWN_ERROR,
    AdmissionMode,
    DispatchPlan,
    EventKind,
    FailureKind,
    LoadPattern,
    PlannedDispatch,
    ReservationResult,
)
from racecheck.services.concurrency_tracker import ConcurrencyTracker
from racecheck.services.dispatcher import ConcurrentDispatcher, describe_exception


def simultaneous_plan(clients):
    """Every client at offset 0."""
    return DispatchPlan(
        pattern=LoadPattern.BURST,
        window_ms=1,
        entries=[PlannedDispatch(client=client, offset_ms=0) for client in clients],
    )


def make_dispatcher(client, tracker, **kwargs):
    return ConcurrentDispatcher(
        client=client,
        tracker=tracker,
        base_url="http://reserve.test",
        project_id="project-42",
        **kwargs,
    )


class TestConcurrentDispatcher:
    """Test dispatcher behaviour."""

    @pytest.mark.asyncio
    async def test_dispatches_every_entry(self, clients, scripted_client):
        tracker = ConcurrencyTracker()
        dispatcher = make_dispatcher(scripted_client, tracker)

        outcomes = await dispatcher.dispatch(simultaneous_plan(clients))

        assert len(outcomes) == 5
        assert all(outcome.success for outcome in outcomes)
        assert {call["user_email"] for call in scripted_client.calls} == {c.email for c in clients}
        assert all(call["project_id"] == "project-42" for call in scripted_client.calls)

        snapshot = tracker.snapshot()
        assert snapshot.total_completed == 5
        assert snapshot.current_depth == 0

    @pytest.mark.asyncio
    async def test_unbounded_dispatch_overlaps(self, clients, scripted_client_factory):
        client = scripted_client_factory(delay_s=0.05)
        tracker = ConcurrencyTracker()

        await make_dispatcher(client, tracker).dispatch(simultaneous_plan(clients))

        assert tracker.peak_depth == 5

    @pytest.mark.asyncio
    async def test_slot_ceiling_bounds_peak_depth(self, clients, scripted_client_factory):
        """Test a ceiling of 2 is never exceeded with 5 planned dispatches."""
        client = scripted_client_factory(delay_s=0.02)
        tracker = ConcurrencyTracker()
        dispatcher = make_dispatcher(client, tracker, concurrency_limit=2)

        outcomes = await dispatcher.dispatch(simultaneous_plan(clients))

        assert len(outcomes) == 5
        assert tracker.peak_depth == 2
        assert client.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_wave_ceiling_bounds_peak_depth(self, clients, scripted_client_factory):
        client = scripted_client_factory(delay_s=0.02)
        tracker = ConcurrencyTracker()
        dispatcher = make_dispatcher(client, tracker, concurrency_limit=2, admission_mode=AdmissionMode.WAVES)

        outcomes = await dispatcher.dispatch(simultaneous_plan(clients))

        assert len(outcomes) == 5
        assert tracker.peak_depth <= 2
        # each wave completes before the next one starts
        assert [call["user_email"] for call in client.calls[:2]] == [clients[0].email, clients[1].email]
        assert [event.depth_after for event in tracker.timeline][-1] == 0

    @pytest.mark.asyncio
    async def test_transport_failure_is_recorded_not_raised(self, clients, scripted_client_factory):
        client = scripted_client_factory(responses={clients[0].email: httpx.ConnectError("connection refused")})
        dispatcher = make_dispatcher(client, ConcurrencyTracker())

        outcomes = await dispatcher.dispatch(simultaneous_plan(clients))

        failed = [outcome for outcome in outcomes if not outcome.success]
        assert len(outcomes) == 5
        assert len(failed) == 1
        assert failed[0].client_label == clients[0].email
        assert failed[0].failure_kind == FailureKind.TRANSPORT
        assert failed[0].error == "connection refused"

    @pytest.mark.asyncio
    async def test_business_failure_keeps_error_text(self, clients, scripted_client_factory):
        client = scripted_client_factory(
            responses={clients[1].email: ReservationResult(success=False, error="Insufficient tokens available")}
        )
        dispatcher = make_dispatcher(client, ConcurrencyTracker())

        outcomes = await dispatcher.dispatch(simultaneous_plan(clients))

        failed = [outcome for outcome in outcomes if not outcome.success]
        assert failed[0].error == "Insufficient tokens available"
        assert failed[0].failure_kind == FailureKind.BUSINESS

    @pytest.mark.asyncio
    async def test_failure_without_error_text(self, clients, scripted_client_factory):
        client = scripted_client_factory(default={"success": False})
        outcomes = await make_dispatcher(client, ConcurrencyTracker()).dispatch(simultaneous_plan(clients[:1]))
        assert outcomes[0].error == UNKNOWN_ERROR

    @pytest.mark.asyncio
    async def test_dispatch_time_matches_tracker_start(self, clients, scripted_client):
        tracker = ConcurrencyTracker()
        outcomes = await make_dispatcher(scripted_client, tracker).dispatch(simultaneous_plan(clients))

        starts = {event.request_id: event.timestamp_ms for event in tracker.timeline if event.kind == EventKind.START}
        for outcome in outcomes:
            assert outcome.dispatched_at_ms == starts[outcome.request_id]
            assert outcome.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_request_ids_are_unique(self, clients, scripted_client):
        outcomes = await make_dispatcher(scripted_client, ConcurrencyTracker()).dispatch(simultaneous_plan(clients))
        assert len({outcome.request_id for outcome in outcomes}) == 5

    @pytest.mark.asyncio
    async def test_on_outcome_callback(self, clients, scripted_client):
        seen = []
        dispatcher = make_dispatcher(scripted_client, ConcurrencyTracker(), on_outcome=seen.append)
        outcomes = await dispatcher.dispatch(simultaneous_plan(clients))
        assert seen == outcomes

    @pytest.mark.asyncio
    async def test_malformed_result_is_recorded_as_transport_failure(self, clients, scripted_client_factory):
        client = scripted_client_factory(responses={clients[2].email: "garbage"})
        tracker = ConcurrencyTracker()

        outcomes = await make_dispatcher(client, tracker).dispatch(simultaneous_plan(clients))

        assert len(outcomes) == 5
        failed = [outcome for outcome in outcomes if not outcome.success]
        assert len(failed) == 1
        assert failed[0].client_label == clients[2].email
        assert failed[0].failure_kind == FailureKind.TRANSPORT
        assert "Unexpected reservation result" in failed[0].error

        snapshot = tracker.snapshot()
        assert snapshot.current_depth == 0
        assert snapshot.total_completed == 5

    @pytest.mark.asyncio
    async def test_invalid_result_dict_is_recorded_as_transport_failure(self, clients, scripted_client_factory):
        client = scripted_client_factory(responses={clients[0].email: {"success": "not-a-bool"}})
        tracker = ConcurrencyTracker()

        outcomes = await make_dispatcher(client, tracker).dispatch(simultaneous_plan(clients[:2]))

        assert len(outcomes) == 2
        failed = [outcome for outcome in outcomes if not outcome.success]
        assert [outcome.failure_kind for outcome in failed] == [FailureKind.TRANSPORT]
        assert tracker.snapshot().current_depth == 0

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_abort_siblings(self, clients, scripted_client_factory):
        client = scripted_client_factory(responses={clients[2].email: "garbage"}, delay_s=0.01)
        tracker = ConcurrencyTracker()
        on_outcome = Mock(side_effect=[RuntimeError("display closed"), None, None, None, None])

        outcomes = await make_dispatcher(client, tracker, on_outcome=on_outcome).dispatch(
            simultaneous_plan(clients)
        )

        assert len(outcomes) == 5
        assert on_outcome.call_count == 5
        assert {outcome.client_label for outcome in outcomes} == {c.email for c in clients}
        assert tracker.snapshot().current_depth == 0
        assert tracker.snapshot().total_completed == 5

    @pytest.mark.asyncio
    async def test_waves_survive_malformed_results(self, clients, scripted_client_factory):
        client = scripted_client_factory(responses={clients[0].email: "garbage"})
        tracker = ConcurrencyTracker()
        dispatcher = make_dispatcher(client, tracker, concurrency_limit=2, admission_mode=AdmissionMode.WAVES)

        outcomes = await dispatcher.dispatch(simultaneous_plan(clients))

        assert len(outcomes) == 5
        assert len(client.calls) == 5
        assert tracker.snapshot().current_depth == 0

    @pytest.mark.asyncio
    async def test_empty_plan(self, scripted_client):
        plan = DispatchPlan(pattern=LoadPattern.BURST, window_ms=100)
        outcomes = await make_dispatcher(scripted_client, ConcurrencyTracker()).dispatch(plan)
        assert outcomes == []
        assert scripted_client.calls == []

    def test_rejects_negative_limit(self, scripted_client):
        with pytest.raises(ValueError):
            make_dispatcher(scripted_client, ConcurrencyTracker(), concurrency_limit=-1)

    def test_describe_exception_falls_back_to_class_name(self):
        assert describe_exception(TimeoutError()) == "TimeoutError"
        assert describe_exception(RuntimeError("  boom ")) == "boom"

    @pytest.mark.asyncio
    async def test_passes_client_identity_to_reserve(self, client_factory):
        client = Mock()
        client.reserve = AsyncMock(return_value=ReservationResult(success=True, data={"id": "res-1"}))
        target = client_factory(1, token_amount=3)[0]

        outcomes = await make_dispatcher(client, ConcurrencyTracker()).dispatch(simultaneous_plan([target]))

        client.reserve.assert_awaited_once_with(
            "http://reserve.test", target.email, "project-42", 3, target.user_id, target.wallet
        )
        assert outcomes[0].data == {"id": "res-1"}
        assert outcomes[0].token_amount == 3
