"""
Shared fixtures for racecheck tests.

Provides scripted reservation clients and a manual clock so engine
behaviour can be tested without a running reservation service.
"""

import asyncio
import logging
import os
from typing import Dict, List, Optional, Union

import pytest

from racecheck.models import ReservationResult, SimulatedClient, SpikePhase
from racecheck.utils.config import RaceTestConfig
from racecheck.utils.logging_config import LOGGER_NAME, reset_logging

ScriptedResponse = Union[ReservationResult, dict, Exception]


def make_clients(count: int, token_amount: int = 1) -> List[SimulatedClient]:
    """Build count distinct simulated clients."""
    return [
        SimulatedClient(
            user_id=f"user-{i}",
            wallet=f"0xwallet{i}",
            email=f"user{i}@example.com",
            token_amount=token_amount,
        )
        for i in range(count)
    ]


class ManualClock:
    """Millisecond clock advanced explicitly by tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ScriptedReservationClient:
    """
    Reservation client returning scripted responses per user email.

    Records every call and the highest number of calls it saw in flight.
    """

    def __init__(
        self,
        responses: Optional[Dict[str, ScriptedResponse]] = None,
        default: Optional[ScriptedResponse] = None,
        delay_s: float = 0.0,
    ):
        self.responses = responses or {}
        self.default = default if default is not None else ReservationResult(success=True, data={"ok": True})
        self.delay_s = delay_s
        self.calls: List[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def reserve(self, base_url, user_email, project_id, token_amount, user_id, user_wallet):
        self.calls.append({
            "base_url": base_url,
            "user_email": user_email,
            "project_id": project_id,
            "token_amount": token_amount,
            "user_id": user_id,
            "user_wallet": user_wallet,
        })
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay_s)
            response = self.responses.get(user_email, self.default)
            if isinstance(response, Exception):
                raise response
            return response
        finally:
            self.in_flight -= 1


@pytest.fixture
def clients():
    """Five simulated clients."""
    return make_clients(5)


@pytest.fixture
def manual_clock():
    return ManualClock()


@pytest.fixture
def scripted_client():
    """Scripted client that accepts every reservation."""
    return ScriptedReservationClient()


@pytest.fixture
def race_config(clients):
    """Fast, seeded configuration for runner tests."""
    return RaceTestConfig(
        base_url="http://reserve.test/api/",
        project_id="project-42",
        clients=clients,
        seed=42,
        burst_window_ms=20,
        sustained_interval_ms=5,
        sustained_duration_ms=20,
        gradual_steps=5,
        gradual_step_pause_ms=5,
        spike_phases=[
            SpikePhase(client_count=1, duration_ms=5),
            SpikePhase(client_count=5, duration_ms=5),
            SpikePhase(client_count=2, duration_ms=5),
        ],
        iteration_pause_ms=0,
    )


@pytest.fixture
def client_factory():
    """Factory for lists of distinct simulated clients."""
    return make_clients


@pytest.fixture
def scripted_client_factory():
    """Factory for scripted reservation clients."""
    return ScriptedReservationClient


RACECHECK_ENV_VARS = [
    "RACECHECK_CONFIG",
    "RACECHECK_API_URL",
    "RACECHECK_PROJECT_ID",
    "RACECHECK_REQUEST_TIMEOUT",
    "RACECHECK_CONCURRENCY",
    "RACECHECK_DEBUG",
    "RACECHECK_LOG_LEVEL",
    "RACECHECK_LOG_FILE",
    "RACECHECK_TOKEN_AMOUNT",
    "RACECHECK_SEED",
    "RACECHECK_ADMISSION",
]


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Run in an empty directory with no racecheck variables set."""
    for name in RACECHECK_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    # load_dotenv writes straight into os.environ
    for name in RACECHECK_ENV_VARS:
        os.environ.pop(name, None)


@pytest.fixture
def clean_logging():
    """Drop racecheck handlers before and after the test."""
    reset_logging()
    yield
    reset_logging()
    logging.getLogger(LOGGER_NAME).setLevel(logging.NOTSET)
