"""
API endpoints for progress ledger writes.
"""
from typing import Any

from fastapi import APIRouter, Depends

from app.core.dependencies import ensure_student_access, get_current_active_user, get_progress_ledger
from app.core.progress import ProgressLedger
from app.models.user import User
from app.schemas.progress import (
    AssignmentSubmit,
    HeartbeatAck,
    HeartbeatBatch,
    ProgressDelta,
    ProgressUpdate,
    ProgressUpdateResponse,
    ReattemptRequest,
    SessionComplete,
)

router = APIRouter()


@router.post("", response_model=ProgressUpdateResponse)
def update_progress(
    body: ProgressUpdate,
    ledger: ProgressLedger = Depends(get_progress_ledger),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Record time and/or a status change for one learning part.
    """
    ensure_student_access(current_user, body.student_id)
    delta = ProgressDelta(
        time_spent_increment_seconds=body.time_spent_increment_seconds,
        status=body.status,
        score=body.score,
    )
    return ledger.upsert_progress(body.student_id, body.part_id, delta)


@router.post("/heartbeats", response_model=HeartbeatAck)
def record_heartbeats(
    batch: HeartbeatBatch,
    ledger: ProgressLedger = Depends(get_progress_ledger),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Credit a batch of sequenced heartbeats. Already credited sequences are ignored.
    """
    ensure_student_access(current_user, batch.student_id)
    return ledger.record_heartbeats(batch)


@router.post("/sessions/{session_id}/complete", response_model=ProgressUpdateResponse)
def complete_session(
    session_id: str,
    body: SessionComplete,
    ledger: ProgressLedger = Depends(get_progress_ledger),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Content reached its natural end. Safe to repeat.
    """
    ensure_student_access(current_user, body.student_id)
    return ledger.complete_from_session(session_id, body.student_id, body.part_id)


@router.post("/assignments/{part_id}/submit", response_model=ProgressUpdateResponse)
def submit_assignment(
    part_id: int,
    body: AssignmentSubmit,
    ledger: ProgressLedger = Depends(get_progress_ledger),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    ensure_student_access(current_user, body.student_id)
    return ledger.submit_assignment(body.student_id, part_id, body.score)


@router.post("/assignments/{part_id}/reattempt", response_model=ProgressUpdateResponse)
def reattempt_assignment(
    part_id: int,
    body: ReattemptRequest,
    ledger: ProgressLedger = Depends(get_progress_ledger),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Re-open a completed assignment for another attempt.
    """
    ensure_student_access(current_user, body.student_id)
    return ledger.reattempt(body.student_id, part_id)
