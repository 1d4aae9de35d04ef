"""
Concurrency tracking models.

This module contains the in-flight request record, the append-only
timeline event, and the point-in-time tracker snapshot.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from .enums import EventKind


class InFlightRequest(BaseModel):
    """A request between dispatch and completion. Owned by the tracker."""
    model_config = ConfigDict(frozen=True)

    request_id: str = Field(..., description="Unique per dispatch")
    client_label: str = Field(..., description="Client label for reporting")
    started_at_ms: float = Field(..., description="Start timestamp in milliseconds")


class TimelineEvent(BaseModel):
    """
    Append-only record of a start or end notification.

    depth_after is the concurrency depth right after the event was applied.
    End events also carry the completion result.
    """
    model_config = ConfigDict(frozen=True)

    timestamp_ms: float = Field(..., description="Event timestamp in milliseconds")
    kind: EventKind = Field(..., description="start or end")
    request_id: str = Field(..., description="Request identifier")
    client_label: str = Field(..., description="Client label")
    depth_after: int = Field(..., ge=0, description="Concurrency depth after the event")
    success: Optional[bool] = Field(None, description="Completion result (end events only)")
    latency_ms: Optional[float] = Field(None, ge=0, description="Latency (end events only)")
    error: Optional[str] = Field(None, description="Error descriptor (failed end events only)")


class TrackerSnapshot(BaseModel):
    """Consistent point-in-time view of the tracker's counters."""
    model_config = ConfigDict(frozen=True)

    current_depth: int = Field(..., ge=0)
    peak_depth: int = Field(..., ge=0)
    total_started: int = Field(..., ge=0)
    total_completed: int = Field(..., ge=0)
    successful: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    unknown_end_events: int = Field(default=0, ge=0)
