"""
Timing generator for controlled concurrent load patterns.

This module turns a list of simulated clients into a DispatchPlan: the
offset (milliseconds from pattern start) at which each client's request
is dispatched. Supported patterns:
- Burst: every client at a uniform random offset inside one jitter window
- Sustained: one client per fixed probe interval for a total duration
- Spike: back-to-back phases, each a sub-burst of its own size
- Gradual: linear ramp-up, newly active clients released at each step

All randomness comes from one random.Random seeded at construction, so a
given seed always produces the same plan.
"""

import logging
import math
import random
from typing import List, Optional, Sequence

from ..models.client import DispatchPlan, PlannedDispatch, SimulatedClient, SpikePhase
from ..models.enums import LoadPattern, SelectionPolicy

logger = logging.getLogger(__name__)


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def default_spike_phases(client_count: int) -> List[SpikePhase]:
    """
    Spike shape used by the stress scenarios: 20% warm-up, 100% spike, 30% tail.

    Args:
        client_count: Number of available clients

    Returns:
        List[SpikePhase]: Three phases
    """
    if client_count <= 0:
        return []
    return [
        SpikePhase(client_count=_ceil_div(client_count * 20, 100), duration_ms=2000),
        SpikePhase(client_count=client_count, duration_ms=1000),
        SpikePhase(client_count=_ceil_div(client_count * 30, 100), duration_ms=3000),
    ]


class TimingGenerator:
    """
    Produces dispatch plans for the supported load patterns.

    Features:
    - Deterministic by seed for reproducible runs and tests
    - Offsets always inside the declared pattern window
    - Exact dispatch counts for burst, spike and gradual
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize timing generator.

        Args:
            seed: Seed for the generator's private random.Random
        """
        self.seed = seed
        self.rng = random.Random(seed)

    def _uniform(self, start: float, width: float) -> float:
        """Uniform offset in [start, start + width)."""
        offset = start + self.rng.random() * width
        end = start + width
        if offset >= end:
            # float rounding can land exactly on the open bound
            offset = math.nextafter(end, start)
        return offset

    @staticmethod
    def _build_plan(pattern: LoadPattern, window_ms: float, entries: List[PlannedDispatch]) -> DispatchPlan:
        entries.sort(key=lambda entry: entry.offset_ms)
        plan = DispatchPlan(pattern=pattern, window_ms=window_ms, entries=entries)
        logger.debug(f"Generated {pattern.value} plan: {plan.size} dispatches over {window_ms:.0f}ms")
        return plan

    def burst(self, clients: Sequence[SimulatedClient], window_ms: float) -> DispatchPlan:
        """
        Every client at a uniform random offset in [0, window_ms).

        Args:
            clients: Clients to dispatch, each exactly once
            window_ms: Burst jitter window

        Returns:
            DispatchPlan: len(clients) entries
        """
        if window_ms <= 0:
            raise ValueError(f"Burst window must be positive, got {window_ms}ms")

        entries = [
            PlannedDispatch(client=client, offset_ms=self._uniform(0.0, window_ms))
            for client in clients
        ]
        return self._build_plan(LoadPattern.BURST, window_ms, entries)

    def sustained(
        self,
        clients: Sequence[SimulatedClient],
        interval_ms: float,
        duration_ms: float,
        policy: SelectionPolicy = SelectionPolicy.RANDOM,
    ) -> DispatchPlan:
        """
        One client per tick at 0, I, 2I, ... strictly below the duration.

        Duration-bound rather than count-bound: the plan holds ceil(D / I)
        attempts regardless of how many clients there are.

        Args:
            clients: Pool to select from
            interval_ms: Probe interval I
            duration_ms: Total duration D
            policy: ROUND_ROBIN cycles through clients in order; RANDOM picks
                with the seeded generator

        Returns:
            DispatchPlan: ceil(D / I) entries, or none for an empty pool
        """
        if interval_ms <= 0:
            raise ValueError(f"Sustained interval must be positive, got {interval_ms}ms")
        if duration_ms <= 0:
            raise ValueError(f"Sustained duration must be positive, got {duration_ms}ms")

        entries: List[PlannedDispatch] = []
        if clients:
            tick = 0
            offset = 0.0
            while offset < duration_ms:
                if policy == SelectionPolicy.ROUND_ROBIN:
                    client = clients[tick % len(clients)]
                else:
                    client = self.rng.choice(clients)
                entries.append(PlannedDispatch(client=client, offset_ms=offset, phase=tick))
                tick += 1
                offset = tick * interval_ms

        return self._build_plan(LoadPattern.SUSTAINED, duration_ms, entries)

    def spike(self, clients: Sequence[SimulatedClient], phases: Sequence[SpikePhase]) -> DispatchPlan:
        """
        Back-to-back sub-bursts, one per phase.

        Phase k dispatches the first client_count clients (cycling through the
        list when client_count exceeds it) at uniform offsets inside its own
        window. Plan size is the sum of the phase client counts.

        Args:
            clients: Clients in priority order
            phases: Phase sizes and windows

        Returns:
            DispatchPlan: sum(client_count) entries, or none for an empty pool
        """
        window_ms = sum(phase.duration_ms for phase in phases)
        entries: List[PlannedDispatch] = []

        if clients:
            phase_start = 0.0
            for index, phase in enumerate(phases):
                for slot in range(phase.client_count):
                    client = clients[slot % len(clients)]
                    entries.append(
                        PlannedDispatch(
                            client=client,
                            offset_ms=self._uniform(phase_start, phase.duration_ms),
                            phase=index,
                        )
                    )
                phase_start += phase.duration_ms

        return self._build_plan(LoadPattern.SPIKE, window_ms, entries)

    def gradual(
        self,
        clients: Sequence[SimulatedClient],
        steps: int,
        step_pause_ms: float,
        step_jitter_ms: float = 0.0,
    ) -> DispatchPlan:
        """
        Linear ramp-up: ceil(N * k / steps) clients active by step k.

        Step k (1-based) starts at (k - 1) * step_pause_ms and releases only
        the clients that became active at that step, so every client is
        dispatched exactly once.

        Args:
            clients: Clients in activation order
            steps: Number of ramp steps
            step_pause_ms: Fixed pause between step starts
            step_jitter_ms: Optional uniform jitter added inside each step,
                at most step_pause_ms

        Returns:
            DispatchPlan: len(clients) entries
        """
        if steps < 1:
            raise ValueError(f"Gradual pattern needs at least one step, got {steps}")
        if step_pause_ms <= 0:
            raise ValueError(f"Gradual step pause must be positive, got {step_pause_ms}ms")
        if not 0 <= step_jitter_ms <= step_pause_ms:
            raise ValueError(
                f"Gradual step jitter must be within [0, {step_pause_ms}]ms, got {step_jitter_ms}ms"
            )

        total = len(clients)
        entries: List[PlannedDispatch] = []

        for step in range(1, steps + 1):
            active_before = _ceil_div(total * (step - 1), steps)
            active_now = _ceil_div(total * step, steps)
            step_start = (step - 1) * step_pause_ms

            for client in clients[active_before:active_now]:
                offset = self._uniform(step_start, step_jitter_ms) if step_jitter_ms > 0 else step_start
                entries.append(PlannedDispatch(client=client, offset_ms=offset, phase=step - 1))

        return self._build_plan(LoadPattern.GRADUAL, steps * step_pause_ms, entries)
