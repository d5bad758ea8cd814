"""Schemas module - Import all schemas."""
from app.schemas.progress import (
    ProgressDelta,
    ProgressUpdate,
    ProgressUpdateResponse,
    Heartbeat,
    HeartbeatBatch,
    HeartbeatAck,
    SessionComplete,
    AssignmentSubmit,
    ReattemptRequest,
)
from app.schemas.hierarchy import ModuleHierarchy, ModuleInfo, UnitNode, PartNode
from app.schemas.analytics import (
    OverallSummary,
    WeeklyTrend,
    ContentTypePerformance,
    StudyTimeSlot,
    StudentAnalytics,
    WeakAreaOut,
    WeakAreaCreate,
    WeakAreaStatusUpdate,
    WeakAreaStatusResponse,
    WeakAreaTransitionOut,
    Recommendation,
)
from app.schemas.report import ReportFilters, ReportRequest, ReportResponse, ReportOut
from app.schemas.common import Message, ErrorResponse

__all__ = [
    "ProgressDelta",
    "ProgressUpdate",
    "ProgressUpdateResponse",
    "Heartbeat",
    "HeartbeatBatch",
    "HeartbeatAck",
    "SessionComplete",
    "AssignmentSubmit",
    "ReattemptRequest",
    "ModuleHierarchy",
    "ModuleInfo",
    "UnitNode",
    "PartNode",
    "OverallSummary",
    "WeeklyTrend",
    "ContentTypePerformance",
    "StudyTimeSlot",
    "StudentAnalytics",
    "WeakAreaOut",
    "WeakAreaCreate",
    "WeakAreaStatusUpdate",
    "WeakAreaStatusResponse",
    "WeakAreaTransitionOut",
    "Recommendation",
    "ReportFilters",
    "ReportRequest",
    "ReportResponse",
    "ReportOut",
    "Message",
    "ErrorResponse",
]
