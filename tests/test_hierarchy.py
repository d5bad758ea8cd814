"""Tests for the per-student curriculum hierarchy and unlock rule."""
import pytest

from app.core.exceptions import LockedContentError, NotFoundError
from app.core.progress import HierarchyResolver
from app.core.progress.hierarchy import unit_percentage
from app.models import Part, ProgressRecord
from app.schemas.progress import ProgressDelta


def complete(ledger, student, part):
    return ledger.upsert_progress(student.id, part.id, ProgressDelta(status="completed"))


def units_by_name(hierarchy):
    return {unit.unit_name: unit for unit in hierarchy.units}


class TestUnitPercentage:

    def test_unit_without_parts_is_complete(self):
        assert unit_percentage([], {}) == 100.0

    def test_parts_weighted_equally(self):
        parts = [Part(id=i, title=f"P{i}", part_type="reading") for i in (1, 2, 3)]
        records = {
            1: ProgressRecord(part_id=1, status="completed", attempts=1),
            2: ProgressRecord(part_id=2, status="in_progress", attempts=0),
        }

        assert unit_percentage(parts, records) == 33.33

    def test_reopened_part_still_counts(self):
        parts = [Part(id=1, title="Quiz", part_type="assignment")]
        records = {1: ProgressRecord(part_id=1, status="in_progress", attempts=1)}

        assert unit_percentage(parts, records) == 100.0


class TestHierarchyResolver:

    def test_fresh_student_sees_only_first_unit_unlocked(self, db, student, course):
        hierarchy = HierarchyResolver(db).resolve(course["module"].id, student.id)

        units = units_by_name(hierarchy)
        assert [u.unit_order for u in hierarchy.units] == [1, 2]
        assert units["Numbers"].is_unlocked is True
        assert units["Fractions"].is_unlocked is False
        assert units["Numbers"].progress_percentage == 0.0
        assert hierarchy.module.progress_percentage == 0.0
        assert all(p.student_status == "not_started" for u in hierarchy.units for p in u.parts)

    def test_locked_unit_lists_parts(self, db, student, course):
        hierarchy = HierarchyResolver(db).resolve(course["module"].id, student.id)

        fractions = units_by_name(hierarchy)["Fractions"]
        assert [p.title for p in fractions.parts] == ["Part C", "Part D"]

    def test_next_unit_unlocks_only_at_full_completion(self, db, ledger, student, course):
        resolver = HierarchyResolver(db)
        part_c = course["parts"]["Part C"]

        result = complete(ledger, student, course["parts"]["Part A"])
        assert result.progress_percentage == 50.0
        hierarchy = resolver.resolve(course["module"].id, student.id)
        assert units_by_name(hierarchy)["Numbers"].progress_percentage == 50.0
        assert units_by_name(hierarchy)["Fractions"].is_unlocked is False
        with pytest.raises(LockedContentError):
            ledger.upsert_progress(student.id, part_c.id, ProgressDelta(time_spent_increment_seconds=10))

        result = complete(ledger, student, course["parts"]["Part B"])
        assert result.progress_percentage == 100.0
        hierarchy = resolver.resolve(course["module"].id, student.id)
        assert units_by_name(hierarchy)["Fractions"].is_unlocked is True
        assert hierarchy.module.progress_percentage == 50.0

        started = ledger.upsert_progress(student.id, part_c.id, ProgressDelta(time_spent_increment_seconds=10))
        assert started.status == "in_progress"

    def test_part_status_reflects_records(self, db, ledger, student, course):
        ledger.upsert_progress(student.id, course["parts"]["Part A"].id, ProgressDelta(time_spent_increment_seconds=5))
        complete(ledger, student, course["parts"]["Part B"])

        numbers = units_by_name(HierarchyResolver(db).resolve(course["module"].id, student.id))["Numbers"]

        assert {p.title: p.student_status for p in numbers.parts} == {
            "Part A": "in_progress",
            "Part B": "completed",
        }

    def test_empty_unit_is_complete_but_still_gated(self, db, ledger, student, make_module):
        built = make_module("Geometry", [
            ("Shapes", [("Triangles", "reading", 5)]),
            ("Coming soon", []),
            ("Angles", [("Measuring angles", "video", 5)]),
        ])
        resolver = HierarchyResolver(db)

        units = units_by_name(resolver.resolve(built["module"].id, student.id))
        assert units["Coming soon"].progress_percentage == 100.0
        assert units["Coming soon"].is_unlocked is False
        assert units["Angles"].is_unlocked is True

        complete(ledger, student, built["parts"]["Triangles"])
        units = units_by_name(resolver.resolve(built["module"].id, student.id))
        assert units["Coming soon"].is_unlocked is True
        assert units["Angles"].is_unlocked is True

    def test_inactive_parts_are_ignored(self, db, ledger, student, course):
        course["parts"]["Part B"].is_active = False
        db.commit()

        result = complete(ledger, student, course["parts"]["Part A"])

        assert result.progress_percentage == 100.0
        hierarchy = HierarchyResolver(db).resolve(course["module"].id, student.id)
        assert units_by_name(hierarchy)["Fractions"].is_unlocked is True
        assert [p.title for p in units_by_name(hierarchy)["Numbers"].parts] == ["Part A"]

    def test_reattempt_does_not_relock(self, db, ledger, student, course):
        complete(ledger, student, course["parts"]["Part A"])
        complete(ledger, student, course["parts"]["Part B"])
        complete(ledger, student, course["parts"]["Part C"])
        part_d = course["parts"]["Part D"]
        ledger.submit_assignment(student.id, part_d.id, 40)

        ledger.reattempt(student.id, part_d.id)

        resolver = HierarchyResolver(db)
        assert resolver.unit_progress(course["units"][1].id, student.id) == 100.0
        assert resolver.module_progress(course["module"].id, student.id) == 100.0

    def test_module_without_units_is_complete(self, db, student, make_module):
        built = make_module("Empty", [])

        hierarchy = HierarchyResolver(db).resolve(built["module"].id, student.id)

        assert hierarchy.units == []
        assert hierarchy.module.progress_percentage == 100.0

    def test_unknown_module(self, db, student):
        with pytest.raises(NotFoundError):
            HierarchyResolver(db).resolve(9999, student.id)


class TestResumePoint:

    def test_fresh_student_starts_at_first_part(self, db, student, course):
        point = HierarchyResolver(db).resume_point(course["module"].id, student.id)

        assert point.title == "Part A"
        assert point.unit_name == "Numbers"
        assert point.reason == "next"
        assert point.student_status == "not_started"

    def test_latest_in_progress_part_wins(self, db, ledger, clock, student, course):
        ledger.upsert_progress(student.id, course["parts"]["Part B"].id, ProgressDelta(time_spent_increment_seconds=5))
        clock.advance(minutes=5)
        ledger.upsert_progress(student.id, course["parts"]["Part A"].id, ProgressDelta(time_spent_increment_seconds=5))

        point = HierarchyResolver(db).resume_point(course["module"].id, student.id)

        assert point.title == "Part A"
        assert point.reason == "in_progress"
        assert point.student_status == "in_progress"

    def test_moves_into_next_unit_once_unlocked(self, db, ledger, student, course):
        complete(ledger, student, course["parts"]["Part A"])
        complete(ledger, student, course["parts"]["Part B"])

        hierarchy = HierarchyResolver(db).resolve(course["module"].id, student.id)

        assert hierarchy.resume_point.title == "Part C"
        assert hierarchy.resume_point.unit_name == "Fractions"

    def test_reopened_assignment_is_resumed(self, db, ledger, student, course):
        for title in ("Part A", "Part B", "Part C"):
            complete(ledger, student, course["parts"][title])
        part_d = course["parts"]["Part D"]
        ledger.submit_assignment(student.id, part_d.id, 40)
        resolver = HierarchyResolver(db)
        assert resolver.resume_point(course["module"].id, student.id) is None

        ledger.reattempt(student.id, part_d.id)

        point = resolver.resume_point(course["module"].id, student.id)
        assert point.part_id == part_d.id
        assert point.reason == "in_progress"

    def test_unknown_module(self, db, student):
        with pytest.raises(NotFoundError):
            HierarchyResolver(db).resume_point(9999, student.id)
