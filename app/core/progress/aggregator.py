"""
Analytics aggregator: per-student summaries, weekly trends and content-type
performance computed from progress records and the progress event ledger.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy.orm import Session

from app.core.config import settings as default_settings, Settings
from app.core.exceptions import AggregationPartialFailure, NotFoundError
from app.core.progress.detector import weak_area_out
from app.core.progress.hierarchy import HierarchyResolver
from app.models.curriculum import Module, Unit, Part
from app.models.progress import (
    AssignmentAttempt,
    ProgressEvent,
    ProgressRecord,
    TrackingSession,
    STATUS_NOT_STARTED,
)
from app.models.user import User
from app.models.weak_area import WeakArea, STATUS_IDENTIFIED, STATUS_IMPROVING
from app.schemas.analytics import (
    AssignmentPerformance,
    ContentTypePerformance,
    OverallSummary,
    StudentAnalytics,
    StudyTimeSlot,
    WeeklyTrend,
)
from app.utils.dates import WEEKDAY_NAMES, as_naive_utc, study_streak, utc_now, week_start

logger = logging.getLogger(__name__)


def mean_or_none(values: List[float]) -> Optional[float]:
    """Arithmetic mean rounded to 2 decimals; None for an empty list."""
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def performance_category(score: float) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "average"
    return "needs_improvement"


@dataclass
class DailyActivity:
    """One student's activity on one calendar day."""
    day: date
    event_count: int = 0
    completions: int = 0
    seconds: int = 0
    part_ids: Set[int] = field(default_factory=set)


@dataclass
class ModuleSnapshot:
    """One student's standing in one module."""
    module_id: int
    started: bool
    completions: int
    progress_percentage: float
    scores: List[float]
    seconds: int


class AnalyticsAggregator:
    """
    Computes read-side analytics for one student at a time.

    Weekly trends come from ProgressEvents (Monday-start weeks); summary and
    content-type numbers come from ProgressRecords. Null scores are excluded
    from every average.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock

    # ============= Public API =============

    def get_student_analytics(
        self,
        student_id: int,
        module_id: Optional[int] = None,
        weeks: Optional[int] = None,
    ) -> StudentAnalytics:
        """
        Build the analytics read response for a student.

        Args:
            student_id: Student ID
            module_id: Restrict to one module (default: all published modules)
            weeks: Number of recent weeks in weekly_trends (default: all history)

        Returns:
            StudentAnalytics

        Raises:
            NotFoundError: Unknown student or module
            AggregationPartialFailure: Ledger data for the student is corrupt
        """
        self._get_student(student_id)
        parts = self._scope_parts(module_id)
        part_ids = [int(p.id) for p in parts]  # type: ignore
        records = self._records(student_id, part_ids)
        events = self._events(student_id, part_ids)
        self._check_integrity(student_id, records, events)

        if weeks is None:
            weeks = self.settings.ANALYTICS_DEFAULT_WEEKS

        summary = self._overall_summary(student_id, module_id, parts, records, events)
        trends = self._weekly_trends(events, weeks)
        performance = self._content_type_performance(parts, records)
        distribution = self._study_time_distribution(student_id, part_ids, events)

        areas = self._open_weak_areas(student_id, module_id)
        now = self.clock()

        logger.debug(
            f"Analytics for student {student_id}: {summary.completed_parts}/{summary.total_parts} parts, "
            f"{len(trends)} weeks"
        )

        return StudentAnalytics(
            student_id=student_id,
            module_id=module_id,
            overall_summary=summary,
            weekly_trends=trends,
            content_type_performance=performance,
            weak_areas=[weak_area_out(area, now) for area in areas],
            study_time_distribution=distribution,
        )

    def get_overall_summary(
        self,
        student_id: int,
        module_id: Optional[int] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> OverallSummary:
        """
        Summary numbers only, optionally limited to records touched in [since, until].
        Used by cohort reports.
        """
        self._get_student(student_id)
        parts = self._scope_parts(module_id)
        part_ids = [int(p.id) for p in parts]  # type: ignore
        records = self._records(student_id, part_ids)
        events = self._events(student_id, part_ids)
        self._check_integrity(student_id, records, events)

        if since is not None or until is not None:
            records = [r for r in records if self._in_range(r.last_accessed, since, until)]
            events = [e for e in events if self._in_range(e.occurred_at, since, until)]

        return self._overall_summary(student_id, module_id, parts, records, events)

    def get_weekly_trends(self, student_id: int, module_id: Optional[int] = None,
                          weeks: Optional[int] = None) -> List[WeeklyTrend]:
        self._get_student(student_id)
        part_ids = [int(p.id) for p in self._scope_parts(module_id)]  # type: ignore
        events = self._events(student_id, part_ids)
        self._check_integrity(student_id, [], events)
        return self._weekly_trends(events, weeks if weeks is not None else self.settings.ANALYTICS_DEFAULT_WEEKS)

    def get_assignment_performance(self, student_id: int,
                                   module_id: Optional[int] = None) -> List[AssignmentPerformance]:
        """
        One row per submitted assignment, most recently submitted first.

        The category follows the latest attempt's score; passed is true once
        any attempt reached the passing score.
        """
        self._get_student(student_id)
        parts = {int(p.id): p for p in self._scope_parts(module_id) if p.part_type == "assignment"}  # type: ignore
        if not parts:
            return []

        attempts = (
            self.db.query(AssignmentAttempt)
            .filter(AssignmentAttempt.student_id == student_id, AssignmentAttempt.part_id.in_(list(parts)))
            .order_by(AssignmentAttempt.attempt_number)
            .all()
        )
        by_part: Dict[int, List[AssignmentAttempt]] = defaultdict(list)
        for attempt in attempts:
            if not 0 <= attempt.score <= 100:
                raise AggregationPartialFailure(student_id, f"score {attempt.score} out of range in attempt {attempt.id}")
            by_part[int(attempt.part_id)].append(attempt)  # type: ignore

        rows = []
        for part_id, part_attempts in by_part.items():
            part = parts[part_id]
            latest = part_attempts[-1]
            rows.append(AssignmentPerformance(
                part_id=part_id,
                title=str(part.title),
                unit_name=str(part.unit.unit_name),
                attempts=len(part_attempts),
                best_score=max(float(a.score) for a in part_attempts),  # type: ignore
                latest_score=float(latest.score),  # type: ignore
                passed=any(a.passed for a in part_attempts),
                last_submitted_at=latest.submitted_at,  # type: ignore
                performance_category=performance_category(float(latest.score)),  # type: ignore
            ))

        rows.sort(key=lambda r: (r.last_submitted_at, r.part_id), reverse=True)
        return rows

    def daily_activity(self, student_id: int, since: datetime, until: Optional[datetime] = None) -> List[DailyActivity]:
        """Per-day event counts for one student, oldest first."""
        records = self._records(student_id, None)
        events = [e for e in self._events(student_id, None) if self._in_range(e.occurred_at, since, until)]
        self._check_integrity(student_id, records, events)

        days: Dict[date, DailyActivity] = {}
        for event in events:
            day = event.occurred_at.date()
            activity = days.setdefault(day, DailyActivity(day=day))
            activity.event_count += 1
            activity.seconds += int(event.time_delta_seconds or 0)
            activity.part_ids.add(int(event.part_id))  # type: ignore
            if event.event_type == "completion":
                activity.completions += 1
        return [days[d] for d in sorted(days)]

    def module_snapshots(self, student_id: int, modules: List[Module]) -> List[ModuleSnapshot]:
        """Per-module standing of one student, in the order given."""
        records = self._records(student_id, None)
        self._check_integrity(student_id, records, [])
        resolver = HierarchyResolver(self.db)

        by_module: Dict[int, List[ProgressRecord]] = defaultdict(list)
        for record in records:
            by_module[int(record.part.unit.module_id)].append(record)  # type: ignore

        snapshots = []
        for module in modules:
            module_records = by_module.get(int(module.id), [])  # type: ignore
            started = any(r.status != STATUS_NOT_STARTED for r in module_records)
            snapshots.append(ModuleSnapshot(
                module_id=int(module.id),  # type: ignore
                started=started,
                completions=sum(1 for r in module_records if (r.attempts or 0) > 0),
                progress_percentage=resolver.module_progress(int(module.id), student_id) if started else 0.0,  # type: ignore
                scores=[s for s in (self._policy_score(r) for r in module_records if (r.attempts or 0) > 0) if s is not None],
                seconds=sum(int(r.time_spent_seconds or 0) for r in module_records),  # type: ignore
            ))
        return snapshots

    # ============= Loading =============

    def _get_student(self, student_id: int) -> User:
        student = self.db.query(User).filter(User.id == student_id).first()
        if not student:
            raise NotFoundError("Student")
        return student

    def _scope_parts(self, module_id: Optional[int]) -> List[Part]:
        query = self.db.query(Part).join(Unit, Unit.id == Part.unit_id).join(Module, Module.id == Unit.module_id)
        if module_id is not None:
            if not self.db.query(Module).filter(Module.id == module_id).first():
                raise NotFoundError("Module")
            query = query.filter(Module.id == module_id)
        else:
            query = query.filter(Module.is_published.is_(True))
        return query.filter(Part.is_active.is_(True)).all()

    def _records(self, student_id: int, part_ids: Optional[List[int]]) -> List[ProgressRecord]:
        query = self.db.query(ProgressRecord).filter(ProgressRecord.student_id == student_id)
        if part_ids is not None:
            if not part_ids:
                return []
            query = query.filter(ProgressRecord.part_id.in_(part_ids))
        return query.all()

    def _events(self, student_id: int, part_ids: Optional[List[int]]) -> List[ProgressEvent]:
        query = self.db.query(ProgressEvent).filter(ProgressEvent.student_id == student_id)
        if part_ids is not None:
            if not part_ids:
                return []
            query = query.filter(ProgressEvent.part_id.in_(part_ids))
        return query.order_by(ProgressEvent.occurred_at, ProgressEvent.id).all()

    def _open_weak_areas(self, student_id: int, module_id: Optional[int]) -> List[WeakArea]:
        query = self.db.query(WeakArea).filter(
            WeakArea.student_id == student_id,
            WeakArea.improvement_status.in_([STATUS_IDENTIFIED, STATUS_IMPROVING])
        )
        if module_id is not None:
            query = query.filter((WeakArea.module_id == module_id) | (WeakArea.module_id.is_(None)))
        return query.order_by(WeakArea.difficulty_score.desc(), WeakArea.occurrences.desc()).all()

    @staticmethod
    def _check_integrity(student_id: int, records: List[ProgressRecord], events: List[ProgressEvent]) -> None:
        for record in records:
            for value in (record.score, record.best_score):
                if value is not None and not 0 <= value <= 100:
                    raise AggregationPartialFailure(student_id, f"score {value} out of range on part {record.part_id}")
            if record.time_spent_seconds is None or record.time_spent_seconds < 0:
                raise AggregationPartialFailure(student_id, f"invalid time spent on part {record.part_id}")
        for event in events:
            if event.time_delta_seconds is not None and event.time_delta_seconds < 0:
                raise AggregationPartialFailure(student_id, f"negative time delta in event {event.id}")
            if event.score is not None and not 0 <= event.score <= 100:
                raise AggregationPartialFailure(student_id, f"score {event.score} out of range in event {event.id}")

    @staticmethod
    def _in_range(value: Optional[datetime], since: Optional[datetime], until: Optional[datetime]) -> bool:
        value = as_naive_utc(value)
        if value is None:
            return False
        if since is not None and value < since:
            return False
        if until is not None and value > until:
            return False
        return True

    def _policy_score(self, record: ProgressRecord) -> Optional[float]:
        if self.settings.SCORE_POLICY == "best":
            return record.best_score  # type: ignore
        return record.score  # type: ignore

    # ============= Computation =============

    def _overall_summary(
        self,
        student_id: int,
        module_id: Optional[int],
        parts: List[Part],
        records: List[ProgressRecord],
        events: List[ProgressEvent],
    ) -> OverallSummary:
        completed = [r for r in records if (r.attempts or 0) > 0]
        scores = [s for s in (self._policy_score(r) for r in completed) if s is not None]
        activity_days = {e.occurred_at.date() for e in events}

        resolver = HierarchyResolver(self.db)
        if module_id is not None:
            completion = resolver.module_progress(module_id, student_id)
        else:
            modules = self.db.query(Module).filter(Module.is_published.is_(True)).all()
            percentages = [resolver.module_progress(int(m.id), student_id) for m in modules]  # type: ignore
            completion = mean_or_none(percentages) or 0.0

        open_areas = self.db.query(WeakArea).filter(
            WeakArea.student_id == student_id,
            WeakArea.improvement_status.in_([STATUS_IDENTIFIED, STATUS_IMPROVING])
        ).count()

        return OverallSummary(
            total_parts=len(parts),
            completed_parts=len(completed),
            completion_percentage=completion,
            avg_score=mean_or_none(scores),
            total_study_minutes=round(sum(int(r.time_spent_seconds or 0) for r in records) / 60, 2),  # type: ignore
            active_days=len(activity_days),
            current_streak_days=study_streak(activity_days, self.clock().date()),
            identified_weak_areas=open_areas,
        )

    def _weekly_trends(self, events: List[ProgressEvent], weeks: Optional[int]) -> List[WeeklyTrend]:
        """
        Group ledger events by ISO week (Monday start).

        active_days counts distinct days with any event; weekly_completed counts
        transitions into completed; weekly_avg_score is the mean of non-null
        completion scores (0 when none); weekly_study_minutes sums credited time.
        """
        cutoff: Optional[date] = None
        if weeks is not None:
            cutoff = week_start(self.clock().date()) - timedelta(weeks=weeks - 1)

        buckets: Dict[date, List[ProgressEvent]] = defaultdict(list)
        for event in events:
            start = week_start(event.occurred_at.date())
            if cutoff is not None and start < cutoff:
                continue
            buckets[start].append(event)

        trends = []
        for start in sorted(buckets):
            week_events = buckets[start]
            completions = [e for e in week_events if e.event_type == "completion"]
            scores = [float(e.score) for e in completions if e.score is not None]  # type: ignore
            trends.append(WeeklyTrend(
                week_start=start,
                active_days=len({e.occurred_at.date() for e in week_events}),
                weekly_completed=len(completions),
                weekly_avg_score=mean_or_none(scores) or 0.0,
                weekly_study_minutes=round(sum(int(e.time_delta_seconds or 0) for e in week_events) / 60, 2),  # type: ignore
            ))
        return trends

    def _content_type_performance(self, parts: List[Part], records: List[ProgressRecord]) -> List[ContentTypePerformance]:
        part_types = {int(p.id): str(p.part_type) for p in parts}  # type: ignore
        grouped: Dict[str, List[ProgressRecord]] = defaultdict(list)
        for record in records:
            if (record.attempts or 0) > 0 and int(record.part_id) in part_types:  # type: ignore
                grouped[part_types[int(record.part_id)]].append(record)  # type: ignore

        rows = []
        for part_type, type_records in grouped.items():
            scores = [s for s in (self._policy_score(r) for r in type_records) if s is not None]
            minutes = [int(r.time_spent_seconds or 0) / 60 for r in type_records]  # type: ignore
            rows.append(ContentTypePerformance(
                part_type=part_type,
                completed_count=len(type_records),
                avg_score=mean_or_none(scores),
                avg_time_minutes=mean_or_none(minutes) or 0.0,
                min_score=min(scores) if scores else None,
                max_score=max(scores) if scores else None,
            ))

        # Best average first, unscored types last
        rows.sort(key=lambda r: (r.avg_score is None, -(r.avg_score or 0), r.part_type))
        return rows

    def _study_time_distribution(self, student_id: int, part_ids: List[int],
                                 events: List[ProgressEvent]) -> List[StudyTimeSlot]:
        seconds_by_day = [0] * 7
        for event in events:
            seconds_by_day[event.occurred_at.weekday()] += int(event.time_delta_seconds or 0)  # type: ignore

        sessions_by_day = [0] * 7
        if part_ids:
            sessions = self.db.query(TrackingSession).filter(
                TrackingSession.student_id == student_id,
                TrackingSession.part_id.in_(part_ids)
            ).all()
            for session in sessions:
                sessions_by_day[session.started_at.weekday()] += 1

        return [
            StudyTimeSlot(
                day_of_week=WEEKDAY_NAMES[i],
                session_count=sessions_by_day[i],
                study_minutes=round(seconds_by_day[i] / 60, 2),
            )
            for i in range(7)
        ]

    @staticmethod
    def day_bounds(start: Optional[date], end: Optional[date]):
        """Inclusive datetime range for a pair of calendar dates."""
        since = datetime.combine(start, time.min) if start else None
        until = datetime.combine(end, time.max) if end else None
        return since, until
