"""
Progress tracking and analytics engine.
"""
from app.core.progress.locks import StudentLockRegistry, student_locks
from app.core.progress.hierarchy import HierarchyResolver
from app.core.progress.ledger import ProgressLedger
from app.core.progress.tracker import SessionTimeTracker, LocalLedgerClient, HttpLedgerClient
from app.core.progress.detector import WeakAreaDetector
from app.core.progress.aggregator import AnalyticsAggregator
from app.core.progress.recommendations import RecommendationGenerator
from app.core.progress.reports import ReportCompiler, ReportJobRegistry
from app.core.progress.scheduler import DetectionScheduler

__all__ = [
    "StudentLockRegistry",
    "student_locks",
    "HierarchyResolver",
    "ProgressLedger",
    "SessionTimeTracker",
    "LocalLedgerClient",
    "HttpLedgerClient",
    "WeakAreaDetector",
    "AnalyticsAggregator",
    "RecommendationGenerator",
    "ReportCompiler",
    "ReportJobRegistry",
    "DetectionScheduler",
]
