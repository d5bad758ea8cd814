"""
Progress ledger: the single write path for per-(student, part) progress.

Every accepted write updates the ProgressRecord and appends ProgressEvents,
which are the source for weekly analytics.
"""
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings as default_settings, Settings
from app.core.exceptions import (
    ConcurrencyConflict,
    NotFoundError,
    TransientIOError,
    ValidationError,
)
from app.core.progress.hierarchy import HierarchyResolver
from app.core.progress.locks import StudentLockRegistry, student_locks
from app.models.curriculum import Part
from app.models.progress import (
    AssignmentAttempt,
    ProgressEvent,
    ProgressRecord,
    TrackingSession,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_NOT_STARTED,
    STATUS_ORDER,
)
from app.models.user import User
from app.schemas.progress import (
    HeartbeatAck,
    HeartbeatBatch,
    ProgressDelta,
    ProgressUpdateResponse,
)
from app.utils.dates import utc_now

logger = logging.getLogger(__name__)

# apply(record, part, now) -> events to append
Mutation = Callable[[ProgressRecord, Part, datetime], List[ProgressEvent]]


class ProgressLedger:
    """
    Records time and completion events per (student, part).

    Guarantees:
    - time_spent_seconds never decreases
    - status only moves forward: not_started → in_progress → completed
    - completed is terminal, except for an explicit assignment re-attempt
    - completed_at is set once, on the first transition into completed
    """

    def __init__(
        self,
        db: Session,
        locks: Optional[StudentLockRegistry] = None,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] = utc_now,
        on_write: Optional[Callable[[int], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.locks = locks or student_locks
        self.settings = settings
        self.clock = clock
        self.on_write = on_write
        self.sleep = sleep

    # ============= Public operations =============

    def upsert_progress(self, student_id: int, part_id: int, delta: ProgressDelta) -> ProgressUpdateResponse:
        """
        Apply a progress delta to the student's record for a part.

        Args:
            student_id: Student ID
            part_id: Learning part ID
            delta: Time increment and optional status/score

        Returns:
            ProgressUpdateResponse with the record status and the unit's progress
        """
        self._validate_increment(delta.time_spent_increment_seconds)
        self._validate_score(delta.score)
        if delta.status is not None and delta.status not in STATUS_ORDER:
            raise ValidationError(f"Unknown status '{delta.status}'")

        def apply(record: ProgressRecord, part: Part, now: datetime) -> List[ProgressEvent]:
            # Assignment completions must go through submit_assignment so every attempt is counted
            if part.part_type == "assignment" and (delta.status == STATUS_COMPLETED or delta.score is not None):
                raise ValidationError("Assignments are completed by submission")
            return self._apply_delta(record, part, delta, now)

        record, part = self._write(student_id, part_id, apply)
        return self._response(record, part)

    def record_heartbeats(self, batch: HeartbeatBatch) -> HeartbeatAck:
        """
        Credit a batch of heartbeats, skipping any sequence already credited for the session.

        Args:
            batch: Heartbeats for one viewing session

        Returns:
            HeartbeatAck with accepted/duplicate counts and the last credited sequence
        """
        for beat in batch.heartbeats:
            self._validate_increment(beat.increment_seconds)

        counts = {"accepted": 0, "duplicates": 0, "last_sequence": 0}

        def apply(record: ProgressRecord, part: Part, now: datetime) -> List[ProgressEvent]:
            session = self._get_or_create_session(batch.session_id, batch.student_id, batch.part_id, now)
            last_sequence = int(session.last_sequence)  # type: ignore
            credited = 0
            accepted = 0
            duplicates = 0
            for beat in sorted(batch.heartbeats, key=lambda b: b.sequence):
                if beat.sequence <= last_sequence:
                    duplicates += 1
                    continue
                last_sequence = beat.sequence
                credited += beat.increment_seconds
                accepted += 1

            counts.update(accepted=accepted, duplicates=duplicates, last_sequence=last_sequence)
            if accepted == 0:
                return []

            session.last_sequence = last_sequence  # type: ignore
            session.credited_seconds = int(session.credited_seconds or 0) + credited  # type: ignore
            session.last_heartbeat_at = now  # type: ignore
            return self._apply_delta(
                record, part, ProgressDelta(time_spent_increment_seconds=credited), now
            )

        record, _ = self._write(batch.student_id, batch.part_id, apply)
        if counts["duplicates"]:
            logger.debug(f"Session {batch.session_id}: ignored {counts['duplicates']} duplicate heartbeats")

        return HeartbeatAck(
            success=True,
            accepted=counts["accepted"],
            duplicates=counts["duplicates"],
            last_sequence=counts["last_sequence"],
            time_spent_seconds=int(record.time_spent_seconds),  # type: ignore
        )

    def complete_from_session(self, session_id: str, student_id: int, part_id: int) -> ProgressUpdateResponse:
        """
        Mark content completed because the viewer reached its natural end.

        Idempotent per session: a repeated signal is acknowledged without a second transition.
        """
        def apply(record: ProgressRecord, part: Part, now: datetime) -> List[ProgressEvent]:
            if part.part_type == "assignment":
                raise ValidationError("Assignments are completed by submission")
            session = self._get_or_create_session(session_id, student_id, part_id, now)
            if session.completion_acknowledged:
                return []
            session.completion_acknowledged = True  # type: ignore
            session.ended_at = now  # type: ignore
            return self._apply_delta(record, part, ProgressDelta(status=STATUS_COMPLETED), now)

        record, part = self._write(student_id, part_id, apply)
        return self._response(record, part)

    def submit_assignment(self, student_id: int, part_id: int, score: float) -> ProgressUpdateResponse:
        """
        Record an assignment submission; every attempt is kept.

        Raises:
            ValidationError: Not an assignment, already completed, or out of attempts
        """
        self._validate_score(score)

        def apply(record: ProgressRecord, part: Part, now: datetime) -> List[ProgressEvent]:
            if part.part_type != "assignment":
                raise ValidationError("Only assignments accept submissions")
            if record.status == STATUS_COMPLETED:
                raise ValidationError("Assignment already completed; start a re-attempt first")
            self._ensure_attempts_left(student_id, part)
            return self._apply_delta(record, part, ProgressDelta(status=STATUS_COMPLETED, score=score), now)

        record, part = self._write(student_id, part_id, apply)
        return self._response(record, part)

    def reattempt(self, student_id: int, part_id: int) -> ProgressUpdateResponse:
        """
        Re-open a completed assignment for another attempt.

        Readings, videos and presentations are immutable once completed.
        """
        def apply(record: ProgressRecord, part: Part, now: datetime) -> List[ProgressEvent]:
            if part.part_type != "assignment":
                raise ValidationError(f"A completed {part.part_type} cannot be reattempted")
            if record.status != STATUS_COMPLETED:
                raise ValidationError("Only a completed assignment can be reattempted")
            self._ensure_attempts_left(student_id, part)
            record.status = STATUS_IN_PROGRESS  # type: ignore
            record.last_accessed = now  # type: ignore
            logger.info(f"Student {student_id} reattempting assignment {part.id}")
            return [self._event(record, "reattempt", now)]

        record, part = self._write(student_id, part_id, apply)
        return self._response(record, part)

    # ============= Write path =============

    def _write(self, student_id: int, part_id: int, apply: Mutation) -> Tuple[ProgressRecord, Part]:
        """
        Run one mutation under the student's lock.

        A lost update is retried once on a fresh read before surfacing as
        ConcurrencyConflict; transient database errors are retried with
        exponential backoff before surfacing as TransientIOError.
        """
        with self.locks.hold(student_id):
            result = None
            for conflict_attempt in range(2):
                try:
                    result = self._with_transient_retry(lambda: self._apply_once(student_id, part_id, apply))
                    break
                except (StaleDataError, IntegrityError) as e:
                    self.db.rollback()
                    if conflict_attempt == 1:
                        logger.error(f"Progress conflict for student {student_id}, part {part_id}: {e}")
                        raise ConcurrencyConflict()
                    logger.warning(f"Progress conflict for student {student_id}, part {part_id}; retrying")

        if self.on_write is not None:
            self.on_write(student_id)
        return result  # type: ignore

    def _with_transient_retry(self, operation: Callable[[], Tuple[ProgressRecord, Part]]) -> Tuple[ProgressRecord, Part]:
        retries = self.settings.LEDGER_MAX_RETRIES
        for attempt in range(retries + 1):
            try:
                return operation()
            except OperationalError as e:
                self.db.rollback()
                if attempt == retries:
                    logger.error(f"Ledger write failed after {retries} retries: {e}")
                    raise TransientIOError()
                delay = self.settings.LEDGER_RETRY_BACKOFF_SECONDS * (2 ** attempt)
                logger.warning(f"Ledger write failed ({e}); retrying in {delay:.2f}s")
                self.sleep(delay)
        raise TransientIOError()

    def _apply_once(self, student_id: int, part_id: int, apply: Mutation) -> Tuple[ProgressRecord, Part]:
        try:
            student = self.db.query(User).filter(User.id == student_id).first()
            if not student:
                raise NotFoundError("Student")
            part = self.db.query(Part).filter(Part.id == part_id).first()
            if not part or not part.is_active:
                raise NotFoundError("Learning part")

            HierarchyResolver(self.db).ensure_part_unlocked(student_id, part)

            now = self.clock()
            record = self.db.query(ProgressRecord).filter(
                ProgressRecord.student_id == student_id,
                ProgressRecord.part_id == part_id
            ).first()
            if record is None:
                record = ProgressRecord(
                    student_id=student_id,
                    part_id=part_id,
                    status=STATUS_NOT_STARTED,
                    attempts=0,
                    time_spent_seconds=0,
                )
                self.db.add(record)

            events = apply(record, part, now)
            for event in events:
                self.db.add(event)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(record)
        return record, part

    # ============= Mutation helpers =============

    def _apply_delta(self, record: ProgressRecord, part: Part, delta: ProgressDelta, now: datetime) -> List[ProgressEvent]:
        events: List[ProgressEvent] = []
        current = str(record.status)
        increment = delta.time_spent_increment_seconds

        if current == STATUS_COMPLETED and delta.score is not None and delta.score != record.score:
            raise ValidationError("Part already completed; start a re-attempt to change its score")

        if increment > 0:
            record.time_spent_seconds = int(record.time_spent_seconds or 0) + increment  # type: ignore

        requested = delta.status
        if requested is None and current == STATUS_NOT_STARTED and increment > 0:
            requested = STATUS_IN_PROGRESS

        target = current
        if requested is not None:
            if STATUS_ORDER[requested] > STATUS_ORDER[current]:
                target = requested
            elif STATUS_ORDER[requested] < STATUS_ORDER[current]:
                logger.debug(
                    f"Ignoring backward transition {current} -> {requested} "
                    f"for student {record.student_id}, part {part.id}"
                )

        if target != current and record.started_at is None:
            record.started_at = now  # type: ignore

        if target == STATUS_COMPLETED and current != STATUS_COMPLETED:
            record.status = STATUS_COMPLETED  # type: ignore
            record.attempts = int(record.attempts or 0) + 1  # type: ignore
            if record.completed_at is None:
                record.completed_at = now  # type: ignore
            if delta.score is not None:
                record.score = delta.score  # type: ignore
                if record.best_score is None or delta.score > record.best_score:
                    record.best_score = delta.score  # type: ignore
            if part.part_type == "assignment" and delta.score is not None:
                self._record_attempt(record, part, delta.score, now)
            logger.info(f"Student {record.student_id} completed part {part.id}")
            events.append(self._event(record, "completion", now, time_delta=increment, score=delta.score))
        elif target != current:
            record.status = target  # type: ignore
            events.append(self._event(record, "status", now, time_delta=increment))
        elif increment > 0:
            events.append(self._event(record, "time", now, time_delta=increment))

        if events:
            record.last_accessed = now  # type: ignore
        return events

    def _record_attempt(self, record: ProgressRecord, part: Part, score: float, now: datetime) -> None:
        attempt_number = self._attempt_count(int(record.student_id), int(part.id)) + 1  # type: ignore
        passing = part.passing_score if part.passing_score is not None else self.settings.ASSIGNMENT_PASSING_SCORE
        self.db.add(AssignmentAttempt(
            student_id=record.student_id,
            part_id=part.id,
            attempt_number=attempt_number,
            score=score,
            passed=score >= passing,
            submitted_at=now,
        ))

    def _attempt_count(self, student_id: int, part_id: int) -> int:
        return self.db.query(AssignmentAttempt).filter(
            AssignmentAttempt.student_id == student_id,
            AssignmentAttempt.part_id == part_id
        ).count()

    def _ensure_attempts_left(self, student_id: int, part: Part) -> None:
        max_attempts = part.max_attempts or self.settings.ASSIGNMENT_MAX_ATTEMPTS
        used = self._attempt_count(student_id, int(part.id))  # type: ignore
        if used >= max_attempts:
            raise ValidationError(f"Maximum attempts reached ({used}/{max_attempts})")

    def _get_or_create_session(self, session_id: str, student_id: int, part_id: int, now: datetime) -> TrackingSession:
        session = self.db.query(TrackingSession).filter(TrackingSession.session_id == session_id).first()
        if session is None:
            session = TrackingSession(
                session_id=session_id,
                student_id=student_id,
                part_id=part_id,
                last_sequence=0,
                credited_seconds=0,
                completion_acknowledged=False,
                started_at=now,
            )
            self.db.add(session)
        elif session.student_id != student_id or session.part_id != part_id:
            raise ValidationError("Session belongs to a different student or part")
        return session

    @staticmethod
    def _event(record: ProgressRecord, event_type: str, now: datetime,
               time_delta: int = 0, score: Optional[float] = None) -> ProgressEvent:
        return ProgressEvent(
            student_id=record.student_id,
            part_id=record.part_id,
            event_type=event_type,
            time_delta_seconds=time_delta,
            status_after=record.status,
            score=score,
            occurred_at=now,
        )

    @staticmethod
    def _validate_increment(value: int) -> None:
        if value < 0:
            raise ValidationError("Time increment must not be negative")

    @staticmethod
    def _validate_score(score: Optional[float]) -> None:
        if score is not None and not 0 <= score <= 100:
            raise ValidationError("Score must be between 0 and 100")

    def _response(self, record: ProgressRecord, part: Part) -> ProgressUpdateResponse:
        return ProgressUpdateResponse(
            success=True,
            status=record.status,  # type: ignore
            progress_percentage=HierarchyResolver(self.db).unit_progress(int(part.unit_id), int(record.student_id)),  # type: ignore
        )
