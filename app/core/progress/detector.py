"""
Weak-area detector.

Scans a student's recent performance window and materializes WeakArea rows:
- skill: a content type's mean score is below the low-score threshold
- assignment_type: repeated failed assignment attempts within one unit
- time_management: time spent per item far above the estimated duration

Status only moves forward (identified → improving → resolved) and every
change is appended to the transition log.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings as default_settings, Settings
from app.core.exceptions import NotFoundError, ValidationError
from app.core.progress.locks import StudentLockRegistry, student_locks
from app.models.curriculum import Part, Unit
from app.models.progress import AssignmentAttempt, ProgressEvent, ProgressRecord
from app.models.user import User
from app.models.weak_area import (
    AREA_TYPES,
    IMPROVEMENT_ORDER,
    STATUS_IDENTIFIED,
    STATUS_IMPROVING,
    STATUS_RESOLVED,
    WeakArea,
    WeakAreaTransition,
)
from app.schemas.analytics import WeakAreaOut
from app.utils.dates import as_naive_utc, days_between, utc_now

logger = logging.getLogger(__name__)

# Area types the detector evaluates on its own; concept areas are instructor-managed
DETECTED_AREA_TYPES = ("skill", "assignment_type", "time_management")

TIME_MANAGEMENT_AREA = "Time management"


@dataclass
class Finding:
    """One triggered heuristic."""
    area_type: str
    area_name: str
    difficulty_score: int
    evidence_count: int
    notes: str
    module_id: Optional[int] = None
    unit_id: Optional[int] = None
    part_id: Optional[int] = None
    latest_evidence: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, str]:
        return self.area_type, self.area_name


def clamp_difficulty(value: float) -> int:
    return max(1, min(5, int(value)))


def weak_area_out(area: WeakArea, now: datetime) -> WeakAreaOut:
    """Serialize a weak area with its age in days."""
    out = WeakAreaOut.model_validate(area)
    out.days_since_last_occurrence = max(0, days_between(area.last_occurrence, now))  # type: ignore
    return out


class WeakAreaDetector:
    """
    Detects and maintains weak areas for one student at a time.
    """

    def __init__(
        self,
        db: Session,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utc_now,
        locks: Optional[StudentLockRegistry] = None,
    ):
        self.db = db
        self.settings = settings
        self.clock = clock
        self.locks = locks or student_locks

    # ============= Detection =============

    def detect(self, student_id: int) -> List[WeakArea]:
        """
        Run all heuristics over the recent window and upsert the results.

        Args:
            student_id: Student ID

        Returns:
            Weak areas touched by this pass (created or re-detected)
        """
        with self.locks.hold(student_id):
            return self._detect(student_id)

    def _detect(self, student_id: int) -> List[WeakArea]:
        if not self.db.query(User).filter(User.id == student_id).first():
            raise NotFoundError("Student")

        now = self.clock()
        since = now - timedelta(days=self.settings.WEAK_AREA_WINDOW_DAYS)

        findings: List[Finding] = []
        findings.extend(self._content_type_findings(student_id, since))
        findings.extend(self._assignment_failure_findings(student_id, since))
        findings.extend(self._time_management_findings(student_id, since))

        try:
            touched = [self._upsert(student_id, finding, now) for finding in findings]
            self._improvement_pass(student_id, {f.key for f in findings}, now)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Weak-area detection failed for student {student_id}: {e}")
            raise

        for area in touched:
            self.db.refresh(area)

        if touched:
            logger.info(
                f"Detected {len(touched)} weak areas for student {student_id}: "
                f"{[a.area_name for a in touched]}"
            )
        return touched

    def _content_type_findings(self, student_id: int, since: datetime) -> List[Finding]:
        threshold = self.settings.WEAK_AREA_LOW_SCORE_THRESHOLD
        rows = self.db.query(ProgressEvent.score, ProgressEvent.occurred_at, Part.part_type).join(
            Part, Part.id == ProgressEvent.part_id
        ).filter(
            ProgressEvent.student_id == student_id,
            ProgressEvent.event_type == "completion",
            ProgressEvent.score.isnot(None),
            ProgressEvent.occurred_at >= since
        ).all()

        scores_by_type: Dict[str, List[float]] = defaultdict(list)
        latest: Dict[str, datetime] = {}
        for score, occurred_at, part_type in rows:
            scores_by_type[part_type].append(float(score))
            latest[part_type] = max(latest.get(part_type, occurred_at), occurred_at)

        findings = []
        for part_type, scores in scores_by_type.items():
            if len(scores) < self.settings.WEAK_AREA_MIN_GRADED_ITEMS:
                continue
            avg = sum(scores) / len(scores)
            if avg >= threshold:
                continue
            gap = threshold - avg
            findings.append(Finding(
                area_type="skill",
                area_name=part_type,
                difficulty_score=clamp_difficulty(1 + round(4 * gap / threshold)),
                evidence_count=sum(1 for s in scores if s < threshold),
                notes=f"Average {part_type} score {avg:.1f} over {len(scores)} graded items",
                latest_evidence=latest[part_type],
            ))
        return findings

    def _assignment_failure_findings(self, student_id: int, since: datetime) -> List[Finding]:
        rows = self.db.query(AssignmentAttempt, Unit).join(
            Part, Part.id == AssignmentAttempt.part_id
        ).join(
            Unit, Unit.id == Part.unit_id
        ).filter(
            AssignmentAttempt.student_id == student_id,
            AssignmentAttempt.passed.is_(False),
            AssignmentAttempt.submitted_at >= since
        ).all()

        failures: Dict[int, List[AssignmentAttempt]] = defaultdict(list)
        units: Dict[int, Unit] = {}
        for attempt, unit in rows:
            failures[int(unit.id)].append(attempt)  # type: ignore
            units[int(unit.id)] = unit  # type: ignore

        findings = []
        for unit_id, attempts in failures.items():
            if len(attempts) < self.settings.WEAK_AREA_MIN_FAILED_ATTEMPTS:
                continue
            unit = units[unit_id]
            findings.append(Finding(
                area_type="assignment_type",
                area_name=str(unit.unit_name),
                difficulty_score=clamp_difficulty(1 + len(attempts)),
                evidence_count=len(attempts),
                notes=f"{len(attempts)} failed assignment attempts in {unit.unit_name}",
                module_id=int(unit.module_id),  # type: ignore
                unit_id=unit_id,
                latest_evidence=max(a.submitted_at for a in attempts),
            ))
        return findings

    def _time_management_findings(self, student_id: int, since: datetime) -> List[Finding]:
        completed_at: Dict[int, datetime] = {}
        for part_id, occurred_at in self.db.query(ProgressEvent.part_id, ProgressEvent.occurred_at).filter(
            ProgressEvent.student_id == student_id,
            ProgressEvent.event_type == "completion",
            ProgressEvent.occurred_at >= since
        ).all():
            completed_at[int(part_id)] = max(completed_at.get(int(part_id), occurred_at), occurred_at)
        if not completed_at:
            return []

        rows = self.db.query(ProgressRecord, Part).join(
            Part, Part.id == ProgressRecord.part_id
        ).filter(
            ProgressRecord.student_id == student_id,
            ProgressRecord.part_id.in_(list(completed_at)),
            Part.duration_minutes > 0
        ).all()

        ratios = [
            int(record.time_spent_seconds or 0) / (part.duration_minutes * 60)  # type: ignore
            for record, part in rows
        ]
        if len(ratios) < self.settings.WEAK_AREA_MIN_TIMED_ITEMS:
            return []

        avg_ratio = sum(ratios) / len(ratios)
        if avg_ratio <= self.settings.WEAK_AREA_TIME_RATIO_THRESHOLD:
            return []

        return [Finding(
            area_type="time_management",
            area_name=TIME_MANAGEMENT_AREA,
            difficulty_score=clamp_difficulty(avg_ratio),
            evidence_count=sum(1 for r in ratios if r > self.settings.WEAK_AREA_TIME_RATIO_THRESHOLD),
            notes=f"Average time is {avg_ratio:.1f}x the estimated duration over {len(ratios)} items",
            latest_evidence=max(completed_at[int(part.id)] for _, part in rows),  # type: ignore
        )]

    def _open_area(self, student_id: int, area_type: str, area_name: str) -> Optional[WeakArea]:
        return self.db.query(WeakArea).filter(
            WeakArea.student_id == student_id,
            WeakArea.area_type == area_type,
            WeakArea.area_name == area_name,
            WeakArea.improvement_status != STATUS_RESOLVED
        ).first()

    def _upsert(self, student_id: int, finding: Finding, now: datetime) -> WeakArea:
        """
        Re-detection of a non-resolved area bumps occurrences by one, but only
        when a triggering item arrived after its last occurrence; a new area
        starts with the number of items that triggered it.
        """
        area = self._open_area(student_id, finding.area_type, finding.area_name)
        if area is not None:
            last_seen = as_naive_utc(area.last_occurrence)  # type: ignore
            if finding.latest_evidence is None or as_naive_utc(finding.latest_evidence) > last_seen:
                area.occurrences = int(area.occurrences or 0) + 1  # type: ignore
                area.last_occurrence = now  # type: ignore
            area.difficulty_score = max(int(area.difficulty_score or 1), finding.difficulty_score)  # type: ignore
            return area

        area = WeakArea(
            student_id=student_id,
            area_type=finding.area_type,
            area_name=finding.area_name,
            difficulty_score=finding.difficulty_score,
            occurrences=max(1, finding.evidence_count),
            improvement_status=STATUS_IDENTIFIED,
            first_identified=now,
            last_occurrence=now,
            module_id=finding.module_id,
            unit_id=finding.unit_id,
            part_id=finding.part_id,
            notes=finding.notes or None,
        )
        self.db.add(area)
        return area

    def _improvement_pass(self, student_id: int, present: set, now: datetime) -> None:
        """Move areas whose condition is no longer observed towards resolved."""
        areas = self.db.query(WeakArea).filter(
            WeakArea.student_id == student_id,
            WeakArea.area_type.in_(DETECTED_AREA_TYPES),
            WeakArea.improvement_status != STATUS_RESOLVED
        ).all()

        for area in areas:
            if (area.area_type, area.area_name) in present:
                continue
            quiet_days = days_between(area.last_occurrence, now)  # type: ignore
            if quiet_days >= self.settings.WEAK_AREA_COOLDOWN_DAYS:
                self._transition(
                    area, STATUS_RESOLVED,
                    f"Not observed for {quiet_days} days", actor="detector", actor_id=None, now=now
                )
            elif area.improvement_status == STATUS_IDENTIFIED:
                self._transition(
                    area, STATUS_IMPROVING,
                    "Condition not observed in the latest detection window",
                    actor="detector", actor_id=None, now=now
                )

    # ============= Status lifecycle =============

    def update_status(
        self,
        weak_area_id: int,
        status: str,
        notes: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> WeakArea:
        """
        Instructor status change. Forward only; skipping a step is allowed.

        Raises:
            NotFoundError: Unknown weak area
            ValidationError: Unknown, same or backward status
        """
        if status not in IMPROVEMENT_ORDER:
            raise ValidationError(f"Unknown status '{status}'")

        area = self.db.query(WeakArea).filter(WeakArea.id == weak_area_id).first()
        if not area:
            raise NotFoundError("Weak area")

        with self.locks.hold(int(area.student_id)):  # type: ignore
            self.db.refresh(area)
            current = str(area.improvement_status)
            if IMPROVEMENT_ORDER[status] <= IMPROVEMENT_ORDER[current]:
                raise ValidationError(f"Cannot change status from {current} to {status}")

            try:
                self._transition(area, status, notes, actor="instructor", actor_id=actor_id, now=self.clock())
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(area)
        logger.info(f"Weak area {weak_area_id} moved {current} -> {status} by user {actor_id}")
        return area

    def _transition(
        self,
        area: WeakArea,
        status: str,
        notes: Optional[str],
        actor: str,
        actor_id: Optional[int],
        now: datetime,
    ) -> None:
        self.db.add(WeakAreaTransition(
            weak_area=area,
            from_status=area.improvement_status,
            to_status=status,
            notes=notes,
            actor=actor,
            actor_id=actor_id,
            created_at=now,
        ))
        area.improvement_status = status  # type: ignore
        if notes:
            stamp = now.strftime("%Y-%m-%d")
            entry = f"[{stamp}] {status}: {notes}"
            area.notes = f"{area.notes}\n{entry}" if area.notes else entry  # type: ignore

    # ============= Manual entry and listing =============

    def add_weak_area(
        self,
        student_id: int,
        area_type: str,
        area_name: str,
        difficulty_score: int = 1,
        notes: Optional[str] = None,
        module_id: Optional[int] = None,
        unit_id: Optional[int] = None,
        part_id: Optional[int] = None,
    ) -> WeakArea:
        """Record a weak area by hand (e.g. a concept flagged by an instructor)."""
        if area_type not in AREA_TYPES:
            raise ValidationError(f"Unknown area type '{area_type}'")
        if not 1 <= difficulty_score <= 5:
            raise ValidationError("Difficulty score must be between 1 and 5")
        if not self.db.query(User).filter(User.id == student_id).first():
            raise NotFoundError("Student")

        now = self.clock()
        finding = Finding(
            area_type=area_type,
            area_name=area_name,
            difficulty_score=difficulty_score,
            evidence_count=1,
            notes=notes or "",
            module_id=module_id,
            unit_id=unit_id,
            part_id=part_id,
        )
        with self.locks.hold(student_id):
            try:
                area = self._upsert(student_id, finding, now)
                if notes and area.notes != notes:
                    area.notes = f"{area.notes}\n{notes}" if area.notes else notes  # type: ignore
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        self.db.refresh(area)
        return area

    def list_weak_areas(
        self,
        student_id: int,
        status: Optional[str] = None,
        area_type: Optional[str] = None,
        module_id: Optional[int] = None,
    ) -> List[WeakArea]:
        """Weak areas ordered by difficulty, then occurrences (both descending)."""
        query = self.db.query(WeakArea).filter(WeakArea.student_id == student_id)
        if status:
            query = query.filter(WeakArea.improvement_status == status)
        if area_type:
            query = query.filter(WeakArea.area_type == area_type)
        if module_id is not None:
            query = query.filter(WeakArea.module_id == module_id)
        return query.order_by(
            WeakArea.difficulty_score.desc(),
            WeakArea.occurrences.desc(),
            WeakArea.id
        ).all()
