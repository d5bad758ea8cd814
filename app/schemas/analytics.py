"""
Pydantic schemas for analytics, weak areas and recommendations.
"""
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class OverallSummary(BaseModel):
    """Headline numbers for one student."""

    total_parts: int
    completed_parts: int
    completion_percentage: float
    avg_score: Optional[float] = None
    total_study_minutes: float
    active_days: int
    current_streak_days: int
    identified_weak_areas: int


class WeeklyTrend(BaseModel):
    """One ISO week (Monday start) of activity."""

    week_start: date
    active_days: int
    weekly_completed: int
    weekly_avg_score: float
    weekly_study_minutes: float


class ContentTypePerformance(BaseModel):
    part_type: str
    completed_count: int
    avg_score: Optional[float] = None
    avg_time_minutes: float
    min_score: Optional[float] = None
    max_score: Optional[float] = None


class StudyTimeSlot(BaseModel):
    day_of_week: str
    session_count: int
    study_minutes: float


class AssignmentPerformance(BaseModel):
    """Submission history of one assignment for one student."""

    part_id: int
    title: str
    unit_name: str
    attempts: int
    best_score: float
    latest_score: float
    passed: bool
    last_submitted_at: datetime
    performance_category: str  # excellent, good, average, needs_improvement


class WeakAreaTransitionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_status: str
    to_status: str
    notes: Optional[str] = None
    actor: str
    actor_id: Optional[int] = None
    created_at: datetime


class WeakAreaOut(BaseModel):
    """Weak area as shown to students and instructors."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    weak_area_id: int = Field(validation_alias="id")
    student_id: int
    area_type: str
    area_name: str
    difficulty_score: int
    occurrences: int
    improvement_status: str
    first_identified: datetime
    last_occurrence: datetime
    module_id: Optional[int] = None
    unit_id: Optional[int] = None
    part_id: Optional[int] = None
    notes: Optional[str] = None
    days_since_last_occurrence: int = 0


class StudentAnalytics(BaseModel):
    """Analytics read response."""

    student_id: int
    module_id: Optional[int] = None
    overall_summary: OverallSummary
    weekly_trends: List[WeeklyTrend]
    content_type_performance: List[ContentTypePerformance]
    weak_areas: List[WeakAreaOut]
    study_time_distribution: List[StudyTimeSlot] = Field(default_factory=list)


class WeakAreaStatusUpdate(BaseModel):
    """Instructor status change for a weak area."""

    status: Literal["identified", "improving", "resolved"]
    notes: Optional[str] = None


class WeakAreaStatusResponse(BaseModel):
    success: bool
    weak_area: WeakAreaOut
    transitions: List[WeakAreaTransitionOut]


class Recommendation(BaseModel):
    """Study recommendation, regenerated on every request."""

    type: str  # weak_area, study_habit, performance_trend, getting_started
    priority: Literal["high", "medium", "low"]
    title: str
    description: str
    action: str
    estimated_time: str
    resources: List[str] = Field(default_factory=list)


class WeakAreaCreate(BaseModel):
    """Weak area recorded by an instructor."""

    area_type: Literal["concept", "skill", "assignment_type", "time_management"]
    area_name: str = Field(..., min_length=1)
    difficulty_score: int = Field(default=1, ge=1, le=5)
    notes: Optional[str] = None
    module_id: Optional[int] = None
    unit_id: Optional[int] = None
    part_id: Optional[int] = None
