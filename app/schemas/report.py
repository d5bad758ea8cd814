"""
Pydantic schemas for cohort reports.
"""
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ReportType = Literal["student_performance", "class_summary", "system_usage", "module_analytics"]


class ReportFilters(BaseModel):
    """Report filters; field names follow the dashboard's camelCase."""

    startDate: Optional[date] = None
    endDate: Optional[date] = None
    classGrade: Optional[str] = None
    moduleId: Optional[int] = None
    days: int = Field(default=30, ge=1)
    gradeLevel: Optional[str] = None


class ReportRequest(BaseModel):
    report_type: ReportType
    filters: ReportFilters = Field(default_factory=ReportFilters)


class ReportResponse(BaseModel):
    """Report generation response."""

    report_id: int
    download_url: str
    record_count: int


class ReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    report_type: str
    report_name: str
    status: str
    record_count: int
    skipped_count: int
    download_count: int
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
