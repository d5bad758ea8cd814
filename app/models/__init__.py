"""Models module - Import all models here for Alembic."""
from app.db.base import Base
from app.models.user import User
from app.models.curriculum import Module, Unit, Part
from app.models.progress import ProgressRecord, ProgressEvent, AssignmentAttempt, TrackingSession
from app.models.weak_area import WeakArea, WeakAreaTransition
from app.models.report import Report

__all__ = ["Base", "User", "Module", "Unit", "Part", "ProgressRecord", "ProgressEvent", "AssignmentAttempt", "TrackingSession", "WeakArea", "WeakAreaTransition", "Report"]
