"""
Models for the progress ledger: per-part progress state, the event history behind it,
assignment attempts and heartbeat sessions.
"""
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base

STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"

STATUS_ORDER = {
    STATUS_NOT_STARTED: 0,
    STATUS_IN_PROGRESS: 1,
    STATUS_COMPLETED: 2,
}


class ProgressRecord(Base):
    """Progress record - one row per (student, part), never deleted."""

    __tablename__ = "student_progress"
    __table_args__ = (UniqueConstraint("student_id", "part_id", name="uq_progress_student_part"),)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("learning_parts.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String, default=STATUS_NOT_STARTED, nullable=False)
    score = Column(Float, nullable=True)  # latest score, 0-100
    best_score = Column(Float, nullable=True)
    attempts = Column(Integer, default=0, nullable=False)  # completed attempts
    time_spent_seconds = Column(Integer, default=0, nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_accessed = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    student = relationship("User", back_populates="progress_records")
    part = relationship("Part")


class ProgressEvent(Base):
    """Append-only ledger entry behind every accepted progress write."""

    __tablename__ = "progress_events"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("learning_parts.id", ondelete="CASCADE"), nullable=False, index=True)

    event_type = Column(String, nullable=False)  # time, status, completion, reattempt
    time_delta_seconds = Column(Integer, default=0, nullable=False)
    status_after = Column(String, nullable=False)
    score = Column(Float, nullable=True)

    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)

    part = relationship("Part")


class AssignmentAttempt(Base):
    """Assignment attempt - every submission is retained."""

    __tablename__ = "assignment_attempts"
    __table_args__ = (
        UniqueConstraint("student_id", "part_id", "attempt_number", name="uq_attempt_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("learning_parts.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    score = Column(Float, nullable=False)
    passed = Column(Boolean, nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=False)

    part = relationship("Part")


class TrackingSession(Base):
    """Viewing session - remembers the last credited heartbeat sequence."""

    __tablename__ = "tracking_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String, unique=True, index=True, nullable=False)  # client generated
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("learning_parts.id", ondelete="CASCADE"), nullable=False)

    last_sequence = Column(Integer, default=0, nullable=False)
    credited_seconds = Column(Integer, default=0, nullable=False)
    completion_acknowledged = Column(Boolean, default=False, nullable=False)

    started_at = Column(DateTime(timezone=True), nullable=False)
    last_heartbeat_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
