"""
API endpoints for student analytics, weak areas and recommendations.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.dependencies import (
    ensure_student_access,
    get_current_active_user,
    get_student_locks,
    require_staff,
)
from app.core.exceptions import NotFoundError
from app.core.progress import (
    AnalyticsAggregator,
    RecommendationGenerator,
    StudentLockRegistry,
    WeakAreaDetector,
)
from app.core.progress.detector import weak_area_out
from app.db.base import get_db
from app.models.user import User
from app.models.weak_area import WeakArea
from app.schemas.analytics import (
    AssignmentPerformance,
    Recommendation,
    StudentAnalytics,
    WeakAreaCreate,
    WeakAreaOut,
    WeakAreaStatusResponse,
    WeakAreaStatusUpdate,
    WeakAreaTransitionOut,
)
from app.utils.dates import utc_now

router = APIRouter()


@router.get("/students/{student_id}", response_model=StudentAnalytics)
def get_student_analytics(
    student_id: int,
    module_id: Optional[int] = None,
    weeks: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Get summary, weekly trends, content-type performance and open weak areas.
    """
    ensure_student_access(current_user, student_id)
    return AnalyticsAggregator(db).get_student_analytics(student_id, module_id=module_id, weeks=weeks)


@router.get("/students/{student_id}/assignments", response_model=List[AssignmentPerformance])
def get_assignment_performance(
    student_id: int,
    module_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Get attempts, best and latest score and a performance category per assignment.
    """
    ensure_student_access(current_user, student_id)
    return AnalyticsAggregator(db).get_assignment_performance(student_id, module_id=module_id)


@router.get("/students/{student_id}/weak-areas", response_model=List[WeakAreaOut])
def list_weak_areas(
    student_id: int,
    status: Optional[str] = None,
    area_type: Optional[str] = None,
    module_id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    ensure_student_access(current_user, student_id)
    areas = WeakAreaDetector(db).list_weak_areas(student_id, status=status, area_type=area_type, module_id=module_id)
    now = utc_now()
    return [weak_area_out(area, now) for area in areas]


@router.post("/students/{student_id}/weak-areas/detect", response_model=List[WeakAreaOut])
def detect_weak_areas(
    student_id: int,
    db: Session = Depends(get_db),
    locks: StudentLockRegistry = Depends(get_student_locks),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Run weak-area detection now instead of waiting for the background pass.
    """
    ensure_student_access(current_user, student_id)
    areas = WeakAreaDetector(db, locks=locks).detect(student_id)
    now = utc_now()
    return [weak_area_out(area, now) for area in areas]


@router.post("/students/{student_id}/weak-areas", response_model=WeakAreaOut)
def add_weak_area(
    student_id: int,
    body: WeakAreaCreate,
    db: Session = Depends(get_db),
    locks: StudentLockRegistry = Depends(get_student_locks),
    current_user: User = Depends(require_staff),
) -> Any:
    """
    Record a weak area by hand. An open area with the same type and name is updated instead.
    """
    area = WeakAreaDetector(db, locks=locks).add_weak_area(
        student_id,
        area_type=body.area_type,
        area_name=body.area_name,
        difficulty_score=body.difficulty_score,
        notes=body.notes,
        module_id=body.module_id,
        unit_id=body.unit_id,
        part_id=body.part_id,
    )
    return weak_area_out(area, utc_now())


@router.put("/weak-areas/{weak_area_id}/status", response_model=WeakAreaStatusResponse)
def update_weak_area_status(
    weak_area_id: int,
    body: WeakAreaStatusUpdate,
    db: Session = Depends(get_db),
    locks: StudentLockRegistry = Depends(get_student_locks),
    current_user: User = Depends(require_staff),
) -> Any:
    """
    Move a weak area forward (identified → improving → resolved). Every change is logged.
    """
    area = WeakAreaDetector(db, locks=locks).update_status(
        weak_area_id, body.status, notes=body.notes, actor_id=int(current_user.id)  # type: ignore
    )
    return WeakAreaStatusResponse(
        success=True,
        weak_area=weak_area_out(area, utc_now()),
        transitions=[WeakAreaTransitionOut.model_validate(t) for t in area.transitions],
    )


@router.get("/weak-areas/{weak_area_id}/transitions", response_model=List[WeakAreaTransitionOut])
def get_weak_area_transitions(
    weak_area_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    area = db.query(WeakArea).filter(WeakArea.id == weak_area_id).first()
    if not area:
        raise NotFoundError("Weak area")
    ensure_student_access(current_user, int(area.student_id))  # type: ignore
    return [WeakAreaTransitionOut.model_validate(t) for t in area.transitions]


@router.get("/students/{student_id}/recommendations", response_model=List[Recommendation])
def get_recommendations(
    student_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Get prioritized study recommendations. Rebuilt from current data on every call.
    """
    ensure_student_access(current_user, student_id)
    now = utc_now()
    aggregator = AnalyticsAggregator(db)
    trends = aggregator.get_weekly_trends(student_id)
    areas = WeakAreaDetector(db).list_weak_areas(student_id)
    return RecommendationGenerator().generate([weak_area_out(a, now) for a in areas], trends, now)
