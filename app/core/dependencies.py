"""
Dependency injection for FastAPI endpoints.
"""
from typing import Callable, Optional, cast

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import PermissionDeniedError
from app.core.security import decode_token
from app.core.progress import (
    DetectionScheduler,
    ProgressLedger,
    ReportCompiler,
    ReportJobRegistry,
    StudentLockRegistry,
)
from app.db.base import get_db, get_session_factory
from app.models.user import User

# Tokens are issued by the platform's auth service
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_PREFIX}/auth/login")

STAFF_ROLES = ("teacher", "admin")


def get_current_user(
    db: Session = Depends(get_db), token: str = Depends(oauth2_scheme)
) -> User:
    """
    Get current authenticated user from JWT token.

    Args:
        db: Database session
        token: JWT token

    Returns:
        Current user

    Raises:
        HTTPException: If token is invalid or user not found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(token)
    if payload is None:
        raise credentials_exception
    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise credentials_exception

    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """
    Get current active user.

    Raises:
        HTTPException: If user is inactive
    """
    if not cast(bool, current_user.is_active):
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


def is_staff(user: User) -> bool:
    return user.role in STAFF_ROLES


def ensure_student_access(current_user: User, student_id: int) -> None:
    """Students may only touch their own data; teachers and admins may read anyone's."""
    if current_user.id != student_id and not is_staff(current_user):
        raise PermissionDeniedError("You can only access your own progress")


def require_staff(current_user: User = Depends(get_current_active_user)) -> User:
    if not is_staff(current_user):
        raise PermissionDeniedError("Teacher or admin role required")
    return current_user


# ============= Engine components =============

def get_student_locks(request: Request) -> StudentLockRegistry:
    return request.app.state.student_locks


def get_detection_scheduler(request: Request) -> Optional[DetectionScheduler]:
    return getattr(request.app.state, "detection_scheduler", None)


def get_report_registry(request: Request) -> ReportJobRegistry:
    return request.app.state.report_registry


def get_progress_ledger(
    db: Session = Depends(get_db),
    locks: StudentLockRegistry = Depends(get_student_locks),
    scheduler: Optional[DetectionScheduler] = Depends(get_detection_scheduler),
) -> ProgressLedger:
    """Ledger bound to the request session; writes mark the student for background detection."""
    return ProgressLedger(
        db,
        locks=locks,
        on_write=scheduler.mark_dirty if scheduler is not None else None,
    )


def get_report_compiler(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    registry: ReportJobRegistry = Depends(get_report_registry),
) -> ReportCompiler:
    return ReportCompiler(session_factory, registry=registry)
