"""
Report compiler: cohort-level exports built on the analytics aggregator.

Each student is aggregated in a worker thread with its own DB session. A
student whose data cannot be aggregated is logged and skipped; the rest of
the batch continues.
"""
import logging
import os
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings as default_settings, Settings
from app.core.exceptions import NotFoundError, PermissionDeniedError, ReportCancelledError, ValidationError
from app.core.progress.aggregator import AnalyticsAggregator, mean_or_none
from app.models.curriculum import Module
from app.models.progress import ProgressRecord
from app.models.report import Report, REPORT_TYPES
from app.models.user import User
from app.schemas.report import ReportFilters, ReportResponse
from app.services.report_exporter import CsvReportExporter
from app.utils.dates import as_naive_utc, utc_now

logger = logging.getLogger(__name__)

RECENTLY_ACTIVE_DAYS = 7
NEEDS_ATTENTION_SCORE = 40


class ReportJobRegistry:
    """Cancellation handles for reports that are still running."""

    def __init__(self):
        self._guard = threading.Lock()
        self._events: Dict[int, threading.Event] = {}

    def register(self, report_id: int, event: threading.Event) -> None:
        with self._guard:
            self._events[report_id] = event

    def unregister(self, report_id: int) -> None:
        with self._guard:
            self._events.pop(report_id, None)

    def cancel(self, report_id: int) -> bool:
        """Signal a running report to stop. Returns False if it is not running here."""
        with self._guard:
            event = self._events.get(report_id)
        if event is None:
            return False
        event.set()
        return True


class ReportCompiler:
    """
    Builds student_performance, class_summary, system_usage and
    module_analytics reports.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        exporter: Optional[CsvReportExporter] = None,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utc_now,
        max_workers: Optional[int] = None,
        registry: Optional[ReportJobRegistry] = None,
    ):
        self.session_factory = session_factory
        self.exporter = exporter or CsvReportExporter(settings.REPORT_DIR)
        self.settings = settings
        self.clock = clock
        self.max_workers = max_workers or settings.REPORT_MAX_WORKERS
        self.registry = registry

    # ============= Compile =============

    def compile(
        self,
        report_type: str,
        filters: Optional[ReportFilters] = None,
        generated_by: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ReportResponse:
        """
        Compile and export a report.

        Args:
            report_type: One of REPORT_TYPES
            filters: startDate, endDate, classGrade, moduleId, days, gradeLevel
            generated_by: User ID of the requester
            cancel_event: Set to abandon the batch

        Returns:
            ReportResponse with report id, download url and row count

        Raises:
            ValidationError: Unknown report type
            NotFoundError: No data matched the filters
            ReportCancelledError: cancel_event was set before the report completed
        """
        if report_type not in REPORT_TYPES:
            raise ValidationError(f"Unknown report type '{report_type}'")
        filters = filters or ReportFilters()
        cancel_event = cancel_event or threading.Event()

        db = self.session_factory()
        try:
            now = self.clock()
            report = Report(
                report_type=report_type,
                report_name=f"{report_type}_{now.strftime('%Y%m%d_%H%M%S')}",
                generated_by=generated_by,
                parameters=filters.model_dump(mode="json"),
                status="running",
                record_count=0,
                skipped_count=0,
                download_count=0,
                created_at=now,
            )
            db.add(report)
            db.commit()
            db.refresh(report)
            report_id = int(report.id)  # type: ignore

            if self.registry is not None:
                self.registry.register(report_id, cancel_event)
            try:
                return self._run(db, report, filters, cancel_event)
            finally:
                if self.registry is not None:
                    self.registry.unregister(report_id)
        finally:
            db.close()

    def _run(self, db: Session, report: Report, filters: ReportFilters,
             cancel_event: threading.Event) -> ReportResponse:
        report_type = str(report.report_type)
        students = self._cohort(db, filters)
        modules = self._modules(db, filters) if report_type == "module_analytics" else []
        module_ids = [int(m.id) for m in modules]  # type: ignore

        logger.info(f"Compiling report {report.id} ({report_type}) for {len(students)} students")

        results: List[Dict[str, Any]] = []
        skipped = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {}
            for student in students:
                if cancel_event.is_set():
                    break
                futures[executor.submit(self._collect, report_type, student, filters, module_ids)] = student

            for future in as_completed(futures):
                if cancel_event.is_set():
                    executor.shutdown(wait=False, cancel_futures=True)
                    break
                student = futures[future]
                try:
                    results.append(future.result())
                except Exception as e:
                    skipped += 1
                    logger.warning(f"Report {report.id}: skipping student {student['student_id']}: {e}")

        if cancel_event.is_set():
            self._cancel(db, report, None)

        rows = self._build_rows(report_type, results, modules, filters)
        if not rows:
            report.status = "failed"  # type: ignore
            report.skipped_count = skipped  # type: ignore
            report.completed_at = self.clock()  # type: ignore
            db.commit()
            logger.info(f"Report {report.id}: no data matched the filters")
            raise NotFoundError("Report data")

        file_path, size = self.exporter.export(rows, f"report_{report.id}_{report_type}{self.exporter.extension}")

        if cancel_event.is_set():
            self._cancel(db, report, file_path)

        report.status = "completed"  # type: ignore
        report.file_path = file_path  # type: ignore
        report.file_size_bytes = size  # type: ignore
        report.record_count = len(rows)  # type: ignore
        report.skipped_count = skipped  # type: ignore
        report.completed_at = self.clock()  # type: ignore
        db.commit()

        logger.info(f"Report {report.id} completed: {len(rows)} rows, {skipped} skipped")
        return ReportResponse(
            report_id=int(report.id),  # type: ignore
            download_url=f"{self.settings.API_V1_PREFIX}/reports/{report.id}/download",
            record_count=len(rows),
        )

    def _cancel(self, db: Session, report: Report, file_path: Optional[str]) -> None:
        self.exporter.remove(file_path)
        report.status = "cancelled"  # type: ignore
        report.file_path = None  # type: ignore
        report.completed_at = self.clock()  # type: ignore
        db.commit()
        logger.info(f"Report {report.id} cancelled")
        raise ReportCancelledError(int(report.id))  # type: ignore

    # ============= Cohort =============

    @staticmethod
    def _cohort(db: Session, filters: ReportFilters) -> List[Dict[str, Any]]:
        query = db.query(User).filter(User.role == "student", User.is_active.is_(True))
        if filters.classGrade:
            query = query.filter(User.class_grade == filters.classGrade)
        return [
            {
                "student_id": int(u.id),  # type: ignore
                "student_name": u.full_name or u.username,
                "username": u.username,
                "class_grade": u.class_grade,
            }
            for u in query.order_by(User.id).all()
        ]

    @staticmethod
    def _modules(db: Session, filters: ReportFilters) -> List[Module]:
        query = db.query(Module).filter(Module.is_published.is_(True))
        if filters.gradeLevel:
            query = query.filter(Module.grade_level == filters.gradeLevel)
        return query.order_by(Module.id).all()

    def _collect(self, report_type: str, student: Dict[str, Any], filters: ReportFilters,
                 module_ids: List[int]) -> Dict[str, Any]:
        """Aggregate one student in its own session."""
        db = self.session_factory()
        try:
            aggregator = AnalyticsAggregator(db, settings=self.settings, clock=self.clock)
            student_id = student["student_id"]
            payload: Dict[str, Any] = dict(student)

            if report_type == "system_usage":
                since = self.clock() - timedelta(days=filters.days)
                payload["days"] = aggregator.daily_activity(student_id, since)
            elif report_type == "module_analytics":
                modules = db.query(Module).filter(Module.id.in_(module_ids)).order_by(Module.id).all() if module_ids else []
                payload["modules"] = aggregator.module_snapshots(student_id, modules)
            else:
                since, until = AnalyticsAggregator.day_bounds(filters.startDate, filters.endDate)
                module_id = filters.moduleId if report_type == "student_performance" else None
                payload["summary"] = aggregator.get_overall_summary(student_id, module_id, since, until)
                payload["last_active"] = as_naive_utc(db.query(func.max(ProgressRecord.last_accessed)).filter(
                    ProgressRecord.student_id == student_id
                ).scalar())
            return payload
        finally:
            db.close()

    # ============= Rows =============

    def _build_rows(self, report_type: str, results: List[Dict[str, Any]], modules: List[Module],
                    filters: ReportFilters) -> List[Dict[str, Any]]:
        results = sorted(results, key=lambda r: r["student_id"])
        if report_type == "student_performance":
            return self._student_performance_rows(results, filters)
        if report_type == "class_summary":
            return self._class_summary_rows(results)
        if report_type == "system_usage":
            return self._system_usage_rows(results)
        return self._module_analytics_rows(results, modules)

    def _student_performance_rows(self, results: List[Dict[str, Any]],
                                  filters: ReportFilters) -> List[Dict[str, Any]]:
        module_name = "All modules"
        if filters.moduleId is not None:
            db = self.session_factory()
            try:
                module = db.query(Module).filter(Module.id == filters.moduleId).first()
                module_name = str(module.module_name) if module else str(filters.moduleId)
            finally:
                db.close()

        rows = []
        for result in results:
            summary = result["summary"]
            rows.append({
                "student_id": result["student_id"],
                "student_name": result["student_name"],
                "username": result["username"],
                "class_grade": result["class_grade"],
                "module": module_name,
                "completed_parts": summary.completed_parts,
                "total_parts": summary.total_parts,
                "completion_percentage": summary.completion_percentage,
                "average_score": summary.avg_score,
                "total_study_minutes": summary.total_study_minutes,
                "active_days": summary.active_days,
                "current_streak_days": summary.current_streak_days,
                "open_weak_areas": summary.identified_weak_areas,
                "last_active": result["last_active"].isoformat() if result["last_active"] else None,
            })
        return rows

    def _class_summary_rows(self, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        recent_cutoff = self.clock() - timedelta(days=RECENTLY_ACTIVE_DAYS)
        by_class: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for result in results:
            by_class[result["class_grade"] or "Unassigned"].append(result)

        rows = []
        for class_grade in sorted(by_class):
            members = by_class[class_grade]
            scored = [m for m in members if m["summary"].avg_score is not None]
            top = max(scored, key=lambda m: m["summary"].avg_score) if scored else None
            rows.append({
                "class_grade": class_grade,
                "total_students": len(members),
                "active_students": sum(
                    1 for m in members if m["last_active"] is not None and m["last_active"] >= recent_cutoff
                ),
                "avg_score": mean_or_none([m["summary"].avg_score for m in scored]),
                "avg_completion_rate": mean_or_none([m["summary"].completion_percentage for m in members]),
                "top_score": top["summary"].avg_score if top else None,
                "top_performer": top["student_name"] if top else None,
                "need_attention": sum(1 for m in scored if m["summary"].avg_score < NEEDS_ATTENTION_SCORE),
                "avg_study_minutes": mean_or_none([m["summary"].total_study_minutes for m in members]),
            })
        return rows

    @staticmethod
    def _system_usage_rows(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        users: Dict[date, set] = defaultdict(set)
        parts: Dict[date, set] = defaultdict(set)
        completions: Dict[date, int] = defaultdict(int)
        seconds: Dict[date, int] = defaultdict(int)

        for result in results:
            for activity in result["days"]:
                users[activity.day].add(result["student_id"])
                parts[activity.day].update(activity.part_ids)
                completions[activity.day] += activity.completions
                seconds[activity.day] += activity.seconds

        rows = []
        for day in sorted(users, reverse=True):
            study_minutes = round(seconds[day] / 60, 2)
            rows.append({
                "date": day.isoformat(),
                "active_users": len(users[day]),
                "completions": completions[day],
                "parts_accessed": len(parts[day]),
                "study_minutes": study_minutes,
                "avg_minutes_per_user": round(study_minutes / len(users[day]), 2),
            })
        return rows

    @staticmethod
    def _module_analytics_rows(results: List[Dict[str, Any]], modules: List[Module]) -> List[Dict[str, Any]]:
        rows = []
        for module in modules:
            snapshots = [
                snap for result in results for snap in result["modules"]
                if snap.module_id == module.id
            ]
            started = [s for s in snapshots if s.started]
            scores = [score for s in snapshots for score in s.scores]
            rows.append({
                "module_id": int(module.id),  # type: ignore
                "module_name": module.module_name,
                "grade_level": module.grade_level,
                "students_started": len(started),
                "completions": sum(s.completions for s in snapshots),
                "avg_completion_percentage": mean_or_none([s.progress_percentage for s in started]) or 0.0,
                "avg_score": mean_or_none(scores),
                "total_hours_spent": round(sum(s.seconds for s in snapshots) / 3600, 2),
            })
        rows.sort(key=lambda r: (r["avg_score"] is None, -(r["avg_score"] or 0)))
        return rows

    # ============= Download =============

    @staticmethod
    def open_for_download(db: Session, report_id: int, user: Optional[User] = None) -> Report:
        """
        Fetch a completed report and count the download.

        Raises:
            NotFoundError: Unknown report, or the report never completed
            PermissionDeniedError: A teacher asking for someone else's report
        """
        report = get_report_for(db, report_id, user)
        if report.status != "completed" or not report.file_path or not os.path.exists(str(report.file_path)):
            raise NotFoundError("Report file")

        report.download_count = int(report.download_count or 0) + 1  # type: ignore
        db.commit()
        db.refresh(report)
        return report

    # ============= Delete =============

    def delete(self, db: Session, report_id: int, user: Optional[User] = None) -> None:
        """
        Remove a report row and its file. Running reports must be cancelled first.
        """
        report = get_report_for(db, report_id, user)
        if report.status == "running":
            raise ValidationError("Report is still running; cancel it first")

        self.exporter.remove(str(report.file_path) if report.file_path else None)
        db.delete(report)
        db.commit()
        logger.info(f"Report {report_id} deleted")


def get_report_for(db: Session, report_id: int, user: Optional[User] = None) -> Report:
    """
    Load a report the user may act on: admins reach every report, teachers
    only the ones they generated. No user means an internal caller.
    """
    report = db.query(Report).filter(Report.id == report_id).first()
    if not report:
        raise NotFoundError("Report")
    if user is not None and user.role != "admin" and report.generated_by != user.id:
        raise PermissionDeniedError("Not authorized to access this report")
    return report
