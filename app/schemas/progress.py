"""
Pydantic schemas for progress ledger writes.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

ProgressStatus = Literal["not_started", "in_progress", "completed"]

# One heartbeat stands for one engaged second; a small slack covers late ticks
MAX_HEARTBEAT_SECONDS = 5


class ProgressDelta(BaseModel):
    """Change applied to one (student, part) progress record."""

    time_spent_increment_seconds: int = 0
    status: Optional[ProgressStatus] = None
    score: Optional[float] = None


class ProgressUpdate(ProgressDelta):
    """Progress write request."""

    student_id: int
    part_id: int


class ProgressUpdateResponse(BaseModel):
    """Progress write response."""

    success: bool
    status: ProgressStatus
    progress_percentage: float


class Heartbeat(BaseModel):
    """One engagement tick from a viewing session."""

    sequence: int = Field(..., ge=1)
    increment_seconds: int = Field(1, ge=0, le=MAX_HEARTBEAT_SECONDS)


class HeartbeatBatch(BaseModel):
    """Heartbeats buffered by a session time tracker."""

    session_id: str
    student_id: int
    part_id: int
    heartbeats: List[Heartbeat]


class HeartbeatAck(BaseModel):
    """Result of crediting a heartbeat batch."""

    success: bool
    accepted: int
    duplicates: int
    last_sequence: int
    time_spent_seconds: int


class SessionComplete(BaseModel):
    """End-of-content signal from a viewing session."""

    student_id: int
    part_id: int


class AssignmentSubmit(BaseModel):
    """Assignment submission result."""

    student_id: int
    score: float


class ReattemptRequest(BaseModel):
    """Explicit re-attempt of a completed assignment."""

    student_id: int
