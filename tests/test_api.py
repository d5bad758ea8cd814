"""API tests for the progress, curriculum, analytics and report routes."""
import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_report_compiler
from app.core.progress import ReportCompiler
from app.core.security import create_access_token
from app.db.base import get_db, get_session_factory
from app.main import app
from app.services.report_exporter import CsvReportExporter

PREFIX = "/api/v1"


@pytest.fixture
def client(session_factory, tmp_path):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_report_compiler] = lambda: ReportCompiler(
        session_factory,
        exporter=CsvReportExporter(str(tmp_path / "reports")),
        max_workers=1,
        registry=app.state.report_registry,
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user):
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


def complete_part(client, user, part):
    return client.post(
        f"{PREFIX}/progress",
        json={"student_id": user.id, "part_id": part.id, "status": "completed"},
        headers=auth(user),
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestProgressRoutes:

    def test_requires_token(self, client, student, course):
        response = client.post(f"{PREFIX}/progress", json={"student_id": student.id, "part_id": 1})

        assert response.status_code == 401

    def test_rejects_tampered_token(self, client, student, course):
        token = create_access_token(str(student.id)) + "x"

        response = client.post(
            f"{PREFIX}/progress",
            json={"student_id": student.id, "part_id": course["parts"]["Part A"].id},
            headers={"Authorization": f"Bearer {token}"},
        )

        assert response.status_code == 401

    def test_assignment_not_completed_by_progress_update(self, client, student, course):
        complete_part(client, student, course["parts"]["Part A"])
        complete_part(client, student, course["parts"]["Part B"])

        response = complete_part(client, student, course["parts"]["Part D"])

        assert response.status_code == 400
        assert response.json()["message"] == "Assignments are completed by submission"

    def test_oversized_heartbeat_rejected(self, client, student, course):
        payload = {
            "session_id": "tab-9",
            "student_id": student.id,
            "part_id": course["parts"]["Part A"].id,
            "heartbeats": [{"sequence": 1, "increment_seconds": 3600}],
        }

        response = client.post(f"{PREFIX}/progress/heartbeats", json=payload, headers=auth(student))

        assert response.status_code == 422

    def test_update_own_progress(self, client, student, course):
        response = client.post(
            f"{PREFIX}/progress",
            json={"student_id": student.id, "part_id": course["parts"]["Part A"].id, "time_spent_increment_seconds": 30},
            headers=auth(student),
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "status": "in_progress", "progress_percentage": 0.0}

    def test_cannot_write_for_another_student(self, client, student, other_student, course):
        response = client.post(
            f"{PREFIX}/progress",
            json={"student_id": other_student.id, "part_id": course["parts"]["Part A"].id, "status": "completed"},
            headers=auth(student),
        )

        assert response.status_code == 403
        assert response.json()["success"] is False
        assert response.json()["status"] == "fail"

    def test_locked_part(self, client, student, course):
        response = complete_part(client, student, course["parts"]["Part C"])

        assert response.status_code == 403
        assert "locked" in response.json()["message"]

    def test_request_validation_shape(self, client, student):
        response = client.post(f"{PREFIX}/progress", json={}, headers=auth(student))

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert body["errors"]

    def test_out_of_range_score(self, client, student, course):
        response = client.post(
            f"{PREFIX}/progress",
            json={"student_id": student.id, "part_id": course["parts"]["Part A"].id, "status": "completed", "score": 120},
            headers=auth(student),
        )

        assert response.status_code == 400

    def test_heartbeats_are_idempotent(self, client, student, course):
        payload = {
            "session_id": "tab-1",
            "student_id": student.id,
            "part_id": course["parts"]["Part B"].id,
            "heartbeats": [{"sequence": 1}, {"sequence": 2}, {"sequence": 3}],
        }

        first = client.post(f"{PREFIX}/progress/heartbeats", json=payload, headers=auth(student))
        second = client.post(f"{PREFIX}/progress/heartbeats", json=payload, headers=auth(student))

        assert first.json()["accepted"] == 3
        assert second.json()["accepted"] == 0
        assert second.json()["duplicates"] == 3
        assert second.json()["time_spent_seconds"] == 3

    def test_session_completion(self, client, student, course):
        url = f"{PREFIX}/progress/sessions/tab-1/complete"
        body = {"student_id": student.id, "part_id": course["parts"]["Part B"].id}

        first = client.post(url, json=body, headers=auth(student))
        second = client.post(url, json=body, headers=auth(student))

        assert first.status_code == second.status_code == 200
        assert second.json()["status"] == "completed"
        assert second.json()["progress_percentage"] == 50.0

    def test_assignment_submit_and_reattempt(self, client, student, course):
        complete_part(client, student, course["parts"]["Part A"])
        complete_part(client, student, course["parts"]["Part B"])
        part_d = course["parts"]["Part D"]

        submitted = client.post(
            f"{PREFIX}/progress/assignments/{part_d.id}/submit",
            json={"student_id": student.id, "score": 45},
            headers=auth(student),
        )
        resubmitted = client.post(
            f"{PREFIX}/progress/assignments/{part_d.id}/submit",
            json={"student_id": student.id, "score": 90},
            headers=auth(student),
        )
        reopened = client.post(
            f"{PREFIX}/progress/assignments/{part_d.id}/reattempt",
            json={"student_id": student.id},
            headers=auth(student),
        )

        assert submitted.json()["status"] == "completed"
        assert resubmitted.status_code == 400
        assert reopened.json()["status"] == "in_progress"
        assert reopened.json()["progress_percentage"] == 50.0


class TestHierarchyRoute:

    def test_defaults_to_current_user(self, client, student, course):
        complete_part(client, student, course["parts"]["Part A"])

        response = client.get(f"{PREFIX}/modules/{course['module'].id}/hierarchy", headers=auth(student))

        assert response.status_code == 200
        units = response.json()["units"]
        assert [u["progress_percentage"] for u in units] == [50.0, 0.0]
        assert [u["is_unlocked"] for u in units] == [True, False]

    def test_teacher_can_view_student(self, client, student, teacher, course):
        response = client.get(
            f"{PREFIX}/modules/{course['module'].id}/hierarchy",
            params={"student_id": student.id},
            headers=auth(teacher),
        )

        assert response.status_code == 200

    def test_student_cannot_view_classmate(self, client, student, other_student, course):
        response = client.get(
            f"{PREFIX}/modules/{course['module'].id}/hierarchy",
            params={"student_id": other_student.id},
            headers=auth(student),
        )

        assert response.status_code == 403

    def test_resume_point(self, client, student, course):
        complete_part(client, student, course["parts"]["Part A"])

        response = client.get(f"{PREFIX}/modules/{course['module'].id}/resume", headers=auth(student))

        assert response.status_code == 200
        assert response.json()["title"] == "Part B"
        assert response.json()["reason"] == "next"

    def test_unknown_module(self, client, student):
        response = client.get(f"{PREFIX}/modules/9999/hierarchy", headers=auth(student))

        assert response.status_code == 404
        assert response.json()["message"] == "Module not found"


class TestAnalyticsRoutes:

    def test_student_analytics(self, client, student, course):
        complete_part(client, student, course["parts"]["Part A"])

        response = client.get(f"{PREFIX}/analytics/students/{student.id}", headers=auth(student))

        assert response.status_code == 200
        body = response.json()
        assert body["overall_summary"]["completed_parts"] == 1
        assert len(body["weekly_trends"]) == 1
        assert len(body["study_time_distribution"]) == 7

    def test_assignment_performance(self, client, student, other_student, course):
        complete_part(client, student, course["parts"]["Part A"])
        complete_part(client, student, course["parts"]["Part B"])
        part_d = course["parts"]["Part D"]
        client.post(
            f"{PREFIX}/progress/assignments/{part_d.id}/submit",
            json={"student_id": student.id, "score": 65},
            headers=auth(student),
        )

        response = client.get(f"{PREFIX}/analytics/students/{student.id}/assignments", headers=auth(student))
        forbidden = client.get(f"{PREFIX}/analytics/students/{student.id}/assignments", headers=auth(other_student))

        assert response.status_code == 200
        [row] = response.json()
        assert row["title"] == "Part D"
        assert row["attempts"] == 1
        assert row["best_score"] == 65.0
        assert row["performance_category"] == "good"
        assert forbidden.status_code == 403

    def test_invalid_weeks(self, client, student):
        response = client.get(f"{PREFIX}/analytics/students/{student.id}", params={"weeks": 0}, headers=auth(student))

        assert response.status_code == 422

    def test_weak_area_lifecycle(self, client, student, teacher):
        created = client.post(
            f"{PREFIX}/analytics/students/{student.id}/weak-areas",
            json={"area_type": "concept", "area_name": "Fractions", "difficulty_score": 3},
            headers=auth(teacher),
        )
        assert created.status_code == 200
        area_id = created.json()["weak_area_id"]

        updated = client.put(
            f"{PREFIX}/analytics/weak-areas/{area_id}/status",
            json={"status": "improving", "notes": "Better on worksheets"},
            headers=auth(teacher),
        )
        assert updated.status_code == 200
        assert updated.json()["weak_area"]["improvement_status"] == "improving"
        assert len(updated.json()["transitions"]) == 1

        backward = client.put(
            f"{PREFIX}/analytics/weak-areas/{area_id}/status",
            json={"status": "identified"},
            headers=auth(teacher),
        )
        assert backward.status_code == 400

        history = client.get(f"{PREFIX}/analytics/weak-areas/{area_id}/transitions", headers=auth(student))
        assert [t["actor"] for t in history.json()] == ["instructor"]

        listed = client.get(f"{PREFIX}/analytics/students/{student.id}/weak-areas", headers=auth(student))
        assert [a["weak_area_id"] for a in listed.json()] == [area_id]

    def test_students_cannot_manage_weak_areas(self, client, student):
        response = client.post(
            f"{PREFIX}/analytics/students/{student.id}/weak-areas",
            json={"area_type": "concept", "area_name": "Fractions"},
            headers=auth(student),
        )

        assert response.status_code == 403

    def test_detect_now(self, client, student):
        response = client.post(f"{PREFIX}/analytics/students/{student.id}/weak-areas/detect", headers=auth(student))

        assert response.status_code == 200
        assert response.json() == []

    def test_recommendations_for_new_student(self, client, student, course):
        response = client.get(f"{PREFIX}/analytics/students/{student.id}/recommendations", headers=auth(student))

        assert response.status_code == 200
        assert [r["type"] for r in response.json()] == ["getting_started"]


class TestReportRoutes:

    def test_generate_list_and_download(self, client, student, teacher, course):
        complete_part(client, student, course["parts"]["Part A"])

        generated = client.post(
            f"{PREFIX}/reports/generate",
            json={"report_type": "student_performance", "filters": {"classGrade": "6"}},
            headers=auth(teacher),
        )
        assert generated.status_code == 200
        body = generated.json()
        assert body["record_count"] == 1

        listed = client.get(f"{PREFIX}/reports", headers=auth(teacher))
        assert [r["id"] for r in listed.json()] == [body["report_id"]]
        assert listed.json()[0]["status"] == "completed"

        download = client.get(body["download_url"], headers=auth(teacher))
        assert download.status_code == 200
        assert download.headers["content-type"].startswith("text/csv")
        assert "student_id" in download.text.splitlines()[0]

    def test_students_cannot_generate(self, client, student):
        response = client.post(
            f"{PREFIX}/reports/generate",
            json={"report_type": "class_summary"},
            headers=auth(student),
        )

        assert response.status_code == 403

    def test_cancel_unknown_report(self, client, teacher):
        response = client.post(f"{PREFIX}/reports/42/cancel", headers=auth(teacher))

        assert response.status_code == 404

    def test_empty_cohort(self, client, teacher):
        response = client.post(
            f"{PREFIX}/reports/generate",
            json={"report_type": "class_summary", "filters": {"classGrade": "12"}},
            headers=auth(teacher),
        )

        assert response.status_code == 404

    def test_download_and_delete_restricted_to_owner(self, client, student, teacher, make_user, course):
        colleague = make_user("colleague", role="teacher")
        complete_part(client, student, course["parts"]["Part A"])
        body = client.post(
            f"{PREFIX}/reports/generate",
            json={"report_type": "class_summary"},
            headers=auth(teacher),
        ).json()

        assert client.get(body["download_url"], headers=auth(colleague)).status_code == 403
        assert client.delete(f"{PREFIX}/reports/{body['report_id']}", headers=auth(colleague)).status_code == 403

        deleted = client.delete(f"{PREFIX}/reports/{body['report_id']}", headers=auth(teacher))
        assert deleted.status_code == 200
        assert deleted.json() == {"message": "Report deleted successfully"}
        assert client.get(body["download_url"], headers=auth(teacher)).status_code == 404
        assert client.get(f"{PREFIX}/reports", headers=auth(teacher)).json() == []
