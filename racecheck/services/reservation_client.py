"""
Reservation client: the single outbound "reserve tokens" operation.

This module wraps POST {base_url}/projects/reserve behind a uniform
success/failure result. HTTP error responses become structured failures;
connection and timeout errors propagate so the dispatcher can record them
as transport failures.
"""

import json
import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from ..models.outcome import ReservationResult

logger = logging.getLogger(__name__)

RESERVE_PATH = "/projects/reserve"
TOKEN_PRICE_MULTIPLIER = 10000


class ReservationClient(Protocol):
    """Anything that can attempt a token reservation."""

    async def reserve(
        self,
        base_url: str,
        user_email: str,
        project_id: str,
        token_amount: int,
        user_id: str,
        user_wallet: str,
    ) -> ReservationResult:
        ...


def build_reserve_payload(project_id: str, token_amount: int, user_id: str, user_wallet: str) -> Dict[str, Any]:
    """Request body expected by the reservation endpoint."""
    return {
        "isExternal": False,
        "projectId": project_id,
        "totalAmount": token_amount * TOKEN_PRICE_MULTIPLIER,
        "totalTokens": token_amount,
        "userId": user_id,
        "userWallet": user_wallet,
    }


def extract_error_message(response: httpx.Response) -> str:
    """
    Pull a human-readable error out of a failed response.

    Prefers the JSON body's "message" field, falling back to the status line.
    """
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        body = None

    if isinstance(body, dict) and body.get("message"):
        message = body["message"]
        return message if isinstance(message, str) else json.dumps(message)

    return f"HTTP {response.status_code}: {response.reason_phrase}"


class HttpReservationClient:
    """
    Reservation client over httpx.AsyncClient.

    Owns its AsyncClient unless one is injected. Use as an async context
    manager, or call aclose() when done.
    """

    def __init__(self, timeout_seconds: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the HTTP reservation client.

        Args:
            timeout_seconds: Per-request timeout; bounds worst-case latency
            client: Optional pre-built AsyncClient (not closed by aclose())
        """
        self.timeout_seconds = timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def __aenter__(self) -> "HttpReservationClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def reserve(
        self,
        base_url: str,
        user_email: str,
        project_id: str,
        token_amount: int,
        user_id: str,
        user_wallet: str,
    ) -> ReservationResult:
        """
        Attempt to reserve tokens for a user on a project.

        Args:
            base_url: Reservation API base URL
            user_email: Sent as the User-Email header
            project_id: Target project
            token_amount: Number of tokens to reserve
            user_id: User identifier
            user_wallet: User wallet identifier

        Returns:
            ReservationResult: success with response data, or failure with an error descriptor

        Raises:
            httpx.TransportError: On connection failures and timeouts
        """
        url = f"{base_url.rstrip('/')}{RESERVE_PATH}"
        payload = build_reserve_payload(project_id, token_amount, user_id, user_wallet)
        headers = {"Content-Type": "application/json", "User-Email": user_email}

        logger.debug(f"POST {url} user={user_email} payload={payload}")

        response = await self._client.post(url, json=payload, headers=headers, timeout=self.timeout_seconds)

        if response.is_success:
            try:
                data = response.json()
            except (json.JSONDecodeError, ValueError):
                data = response.text or None
            logger.debug(f"Reservation accepted for {user_email}: status={response.status_code}")
            return ReservationResult(success=True, data=data)

        error = extract_error_message(response)
        logger.debug(f"Reservation rejected for {user_email}: status={response.status_code} error={error}")
        return ReservationResult(success=False, error=error)
