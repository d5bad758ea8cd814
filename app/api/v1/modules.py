"""
API endpoints for the per-student curriculum hierarchy.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import ensure_student_access, get_current_active_user
from app.core.progress import HierarchyResolver
from app.db.base import get_db
from app.models.user import User
from app.schemas.hierarchy import ModuleHierarchy, ResumePoint

router = APIRouter()


@router.get("/{module_id}/hierarchy", response_model=ModuleHierarchy)
def get_module_hierarchy(
    module_id: int,
    student_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Get the module's units and parts with the student's progress and unlock state.

    Defaults to the calling user when student_id is omitted.
    """
    target = student_id if student_id is not None else int(current_user.id)  # type: ignore
    ensure_student_access(current_user, target)
    return HierarchyResolver(db).resolve(module_id, target)


@router.get("/{module_id}/resume", response_model=Optional[ResumePoint])
def get_resume_point(
    module_id: int,
    student_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Get the part to continue with; null once the module is finished.
    """
    target = student_id if student_id is not None else int(current_user.id)  # type: ignore
    ensure_student_access(current_user, target)
    return HierarchyResolver(db).resume_point(module_id, target)
