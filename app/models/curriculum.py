"""
Curriculum hierarchy: modules contain ordered units, units contain ordered learning parts.
"""
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Text, ForeignKey, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base

PART_TYPES = ("reading", "video", "presentation", "assignment")


class Module(Base):
    """Module model - top level of the curriculum."""

    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, index=True)
    module_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    grade_level = Column(String, nullable=True)
    is_published = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    units = relationship(
        "Unit", back_populates="module", cascade="all, delete-orphan", order_by="Unit.unit_order"
    )


class Unit(Base):
    """Unit model - ordered collection of parts within a module."""

    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("module_id", "unit_order", name="uq_units_module_order"),)

    id = Column(Integer, primary_key=True, index=True)
    module_id = Column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_name = Column(String, nullable=False)
    unit_order = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    module = relationship("Module", back_populates="units")
    parts = relationship(
        "Part", back_populates="unit", cascade="all, delete-orphan", order_by="Part.display_order"
    )


class Part(Base):
    """Learning part model - the leaf content item a student consumes."""

    __tablename__ = "learning_parts"

    id = Column(Integer, primary_key=True, index=True)
    unit_id = Column(Integer, ForeignKey("units.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    part_type = Column(String, nullable=False)  # reading, video, presentation, assignment
    duration_minutes = Column(Integer, nullable=True)  # instructor's estimate
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    # Assignment settings; null falls back to configuration
    passing_score = Column(Float, nullable=True)
    max_attempts = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    unit = relationship("Unit", back_populates="parts")
