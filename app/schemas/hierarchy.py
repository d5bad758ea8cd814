"""
Pydantic schemas for the per-student module hierarchy.
"""
from typing import List, Optional

from pydantic import BaseModel


class PartNode(BaseModel):
    part_id: int
    title: str
    part_type: str
    duration_minutes: Optional[int] = None
    student_status: str


class UnitNode(BaseModel):
    unit_id: int
    unit_name: str
    unit_order: int
    progress_percentage: float
    is_unlocked: bool
    parts: List[PartNode]


class ModuleInfo(BaseModel):
    module_id: int
    module_name: str
    grade_level: Optional[str] = None
    progress_percentage: float


class ResumePoint(BaseModel):
    """Where the student should pick up in a module."""

    unit_id: int
    unit_name: str
    part_id: int
    title: str
    part_type: str
    student_status: str
    reason: str  # in_progress, next


class ModuleHierarchy(BaseModel):
    """Hierarchy read response."""

    module: ModuleInfo
    units: List[UnitNode]
    resume_point: Optional[ResumePoint] = None
