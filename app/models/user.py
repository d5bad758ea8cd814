"""
User model. Students, teachers and admins share one table; identity comes from the auth service.
"""
from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base


class User(Base):
    """User model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=True)
    full_name = Column(String, nullable=True)
    role = Column(String, default="student")  # student, teacher, admin
    class_grade = Column(String, nullable=True, index=True)  # e.g., 10
    section = Column(String, nullable=True)  # e.g., A
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    progress_records = relationship(
        "ProgressRecord", back_populates="student", cascade="all, delete-orphan"
    )
    weak_areas = relationship("WeakArea", back_populates="student", cascade="all, delete-orphan")
