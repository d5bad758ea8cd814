"""Tests for debounced background weak-area detection."""
import asyncio
import contextlib
import logging

import pytest

from app.core.progress import DetectionScheduler, ProgressLedger
from app.models import WeakArea


class FakeMonotonic:
    def __init__(self):
        self.value = 0.0

    def __call__(self):
        return self.value


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def scheduler(session_factory, test_settings, monotonic):
    return DetectionScheduler(
        session_factory,
        settings=test_settings.model_copy(update={"DETECTION_DEBOUNCE_SECONDS": 30}),
        monotonic=monotonic,
    )


def test_runs_only_after_quiet_period(scheduler, monotonic, student):
    scheduler.mark_dirty(student.id)

    monotonic.value = 10
    assert scheduler.run_due() == []
    assert scheduler.pending == [student.id]

    monotonic.value = 30
    assert scheduler.run_due() == [student.id]
    assert scheduler.pending == []


def test_new_write_restarts_window(scheduler, monotonic, student):
    scheduler.mark_dirty(student.id)
    monotonic.value = 25
    scheduler.mark_dirty(student.id)

    monotonic.value = 40
    assert scheduler.run_due() == []

    monotonic.value = 55
    assert scheduler.run_due() == [student.id]


def test_ledger_writes_trigger_detection(db, scheduler, monotonic, test_settings, student, make_module):
    quizzes = make_module("Algebra course", [
        ("Algebra", [("Quiz 1", "assignment", None), ("Quiz 2", "assignment", None), ("Quiz 3", "assignment", None)]),
    ])
    ledger = ProgressLedger(db, settings=test_settings, on_write=scheduler.mark_dirty)
    for title, score in (("Quiz 1", 40), ("Quiz 2", 50), ("Quiz 3", 45)):
        ledger.submit_assignment(student.id, quizzes["parts"][title].id, score)
    assert scheduler.pending == [student.id]

    monotonic.value = 60
    scheduler.run_due()

    db.expire_all()
    areas = db.query(WeakArea).filter(WeakArea.student_id == student.id).all()
    assert {a.area_type for a in areas} == {"skill", "assignment_type"}


def test_failed_student_is_logged_and_dropped(scheduler, monotonic, caplog):
    caplog.set_level(logging.WARNING, logger="app.core.progress.scheduler")
    scheduler.mark_dirty(9999)

    monotonic.value = 60

    assert scheduler.run_due() == []
    assert scheduler.pending == []
    assert "student 9999" in caplog.text


@pytest.mark.asyncio
async def test_background_loop(session_factory, test_settings, student):
    scheduler = DetectionScheduler(
        session_factory,
        settings=test_settings.model_copy(update={"DETECTION_DEBOUNCE_SECONDS": 0}),
    )
    scheduler.mark_dirty(student.id)

    task = asyncio.create_task(scheduler.run_forever(interval=0.01))
    await asyncio.sleep(0.2)
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task

    assert scheduler.pending == []
