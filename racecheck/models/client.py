"""
Client and dispatch plan models.

This module contains the simulated client identity and the immutable
dispatch plan produced by the timing generator.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict, model_validator

from .enums import LoadPattern


class SimulatedClient(BaseModel):
    """
    Identity used for one reservation attempt.

    Loaded from the users configuration file; immutable once constructed.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(..., min_length=1, alias="id", description="Opaque user identifier")
    wallet: str = Field(..., min_length=1, description="User wallet identifier")
    email: str = Field(..., min_length=1, description="Email-like label used for reporting")
    token_amount: int = Field(default=1, ge=1, alias="tokenAmount", description="Requested token quantity")
    name: Optional[str] = Field(None, description="Optional display name")

    @property
    def label(self) -> str:
        """Label used in timelines and reports."""
        return self.email


class SpikePhase(BaseModel):
    """One phase of a spike pattern."""
    model_config = ConfigDict(frozen=True)

    client_count: int = Field(..., ge=0, description="Clients dispatched in this phase")
    duration_ms: float = Field(..., gt=0, description="Phase window in milliseconds")


class PlannedDispatch(BaseModel):
    """A single scheduled dispatch: which client, and when relative to pattern start."""
    model_config = ConfigDict(frozen=True)

    client: SimulatedClient
    offset_ms: float = Field(..., ge=0, description="Delay from pattern start")
    phase: int = Field(default=0, ge=0, description="Phase or step index (0 for single-phase patterns)")


class DispatchPlan(BaseModel):
    """
    Ordered sequence of planned dispatches for one pattern invocation.

    All offsets lie within [0, window_ms). Entries are ordered by offset.
    """
    model_config = ConfigDict(frozen=True)

    pattern: LoadPattern
    window_ms: float = Field(..., ge=0, description="Declared pattern window")
    entries: List[PlannedDispatch] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_offsets_in_window(self) -> "DispatchPlan":
        for entry in self.entries:
            if not 0 <= entry.offset_ms < self.window_ms:
                raise ValueError(
                    f"Offset {entry.offset_ms}ms outside pattern window [0, {self.window_ms})"
                )
        return self

    @property
    def size(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries
