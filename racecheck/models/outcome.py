"""
Reservation result and outcome models.

ReservationResult is what the reservation client returns; Outcome is the
immutable record of one completed dispatch, built by the dispatcher.
"""

from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .enums import FailureKind

UNKNOWN_ERROR = "Unknown error"


class ReservationResult(BaseModel):
    """Uniform success/failure result of one reserve call."""
    model_config = ConfigDict(frozen=True)

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


class Outcome(BaseModel):
    """
    Result of one completed request.

    The error descriptor is present if and only if the request failed.
    dispatched_at_ms is the actual dispatch time recorded by the tracker,
    which may lag the planned offset when the concurrency ceiling delays it.
    """
    model_config = ConfigDict(frozen=True)

    request_id: str = Field(..., description="Request identifier")
    client_label: str = Field(..., description="Client label for reporting")
    token_amount: int = Field(..., ge=1, description="Requested token quantity")
    success: bool = Field(..., description="Whether the reservation succeeded")
    latency_ms: float = Field(..., ge=0, description="Completion minus start, in milliseconds")
    error: Optional[str] = Field(None, description="Error descriptor if failed")
    failure_kind: Optional[FailureKind] = Field(None, description="Failure origin if failed")
    dispatched_at_ms: float = Field(..., description="Actual dispatch timestamp in milliseconds")
    planned_offset_ms: float = Field(default=0.0, ge=0, description="Planned offset from pattern start")
    phase: int = Field(default=0, ge=0, description="Phase or step index from the plan")
    data: Optional[Any] = Field(None, description="Response payload on success")

    @model_validator(mode="before")
    @classmethod
    def normalize_error(cls, values: Any) -> Any:
        if isinstance(values, dict) and not values.get("success"):
            if not values.get("error"):
                values = {**values, "error": UNKNOWN_ERROR}
            if values.get("failure_kind") is None:
                values = {**values, "failure_kind": FailureKind.BUSINESS}
        return values

    @model_validator(mode="after")
    def check_error_iff_failed(self) -> "Outcome":
        if self.success and self.error is not None:
            raise ValueError("Successful outcome cannot carry an error descriptor")
        if self.success and self.failure_kind is not None:
            raise ValueError("Successful outcome cannot carry a failure kind")
        return self

    @property
    def completed_at_ms(self) -> float:
        return self.dispatched_at_ms + self.latency_ms
