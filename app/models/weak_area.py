"""
Weak area models - detected performance deficiencies and their status audit trail.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base

AREA_TYPES = ("concept", "skill", "assignment_type", "time_management")

STATUS_IDENTIFIED = "identified"
STATUS_IMPROVING = "improving"
STATUS_RESOLVED = "resolved"

IMPROVEMENT_ORDER = {
    STATUS_IDENTIFIED: 0,
    STATUS_IMPROVING: 1,
    STATUS_RESOLVED: 2,
}


class WeakArea(Base):
    """Weak area tracking model."""

    __tablename__ = "student_weak_areas"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    area_type = Column(String, nullable=False)  # concept, skill, assignment_type, time_management
    area_name = Column(String, nullable=False)
    difficulty_score = Column(Integer, nullable=False, default=1)  # 1-5
    occurrences = Column(Integer, nullable=False, default=1)
    improvement_status = Column(String, nullable=False, default=STATUS_IDENTIFIED)

    first_identified = Column(DateTime(timezone=True), nullable=False)
    last_occurrence = Column(DateTime(timezone=True), nullable=False)

    module_id = Column(Integer, ForeignKey("modules.id", ondelete="SET NULL"), nullable=True)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="SET NULL"), nullable=True)
    part_id = Column(Integer, ForeignKey("learning_parts.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    student = relationship("User", back_populates="weak_areas")
    transitions = relationship(
        "WeakAreaTransition",
        back_populates="weak_area",
        cascade="all, delete-orphan",
        order_by="WeakAreaTransition.id",
    )


class WeakAreaTransition(Base):
    """Append-only record of an improvement_status change."""

    __tablename__ = "weak_area_transitions"

    id = Column(Integer, primary_key=True, index=True)
    weak_area_id = Column(
        Integer, ForeignKey("student_weak_areas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status = Column(String, nullable=False)
    to_status = Column(String, nullable=False)
    notes = Column(Text, nullable=True)
    actor = Column(String, nullable=False)  # detector, instructor
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    weak_area = relationship("WeakArea", back_populates="transitions")
