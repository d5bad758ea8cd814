"""
Report model - metadata of generated cohort exports.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base

REPORT_TYPES = ("student_performance", "class_summary", "system_usage", "module_analytics")


class Report(Base):
    """Generated report model."""

    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    report_type = Column(String, nullable=False)
    report_name = Column(String, nullable=False)
    generated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    parameters = Column(JSON, nullable=True)

    status = Column(String, default="running")  # running, completed, cancelled, failed
    file_path = Column(String, nullable=True)
    file_size_bytes = Column(Integer, nullable=True)
    record_count = Column(Integer, default=0)
    skipped_count = Column(Integer, default=0)
    download_count = Column(Integer, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    author = relationship("User")
