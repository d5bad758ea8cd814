"""Tests for recommendation generation."""
from datetime import date, datetime

import pytest

from app.core.progress import RecommendationGenerator
from app.schemas.analytics import WeakAreaOut, WeeklyTrend

NOW = datetime(2024, 3, 13, 10, 0, 0)


def area(area_id=1, area_type="concept", area_name="Fractions", difficulty=1, occurrences=1,
         status="identified", days_since=30):
    return WeakAreaOut(
        weak_area_id=area_id,
        student_id=1,
        area_type=area_type,
        area_name=area_name,
        difficulty_score=difficulty,
        occurrences=occurrences,
        improvement_status=status,
        first_identified=NOW,
        last_occurrence=NOW,
        days_since_last_occurrence=days_since,
    )


def week(start, active_days=3, completed=2, avg_score=70.0, minutes=60.0):
    return WeeklyTrend(
        week_start=start,
        active_days=active_days,
        weekly_completed=completed,
        weekly_avg_score=avg_score,
        weekly_study_minutes=minutes,
    )


# Steady, recent activity so no study-habit advice is added
STEADY = [week(date(2024, 3, 4)), week(date(2024, 3, 11))]


@pytest.fixture
def generator(test_settings):
    return RecommendationGenerator(test_settings)


class TestPriority:

    @pytest.mark.parametrize("kwargs,expected", [
        ({"difficulty": 4}, "high"),
        ({"occurrences": 5}, "high"),
        ({"difficulty": 3}, "medium"),
        ({"days_since": 2}, "medium"),
        ({"difficulty": 2, "occurrences": 4, "days_since": 30}, "low"),
    ])
    def test_priority_rules(self, generator, kwargs, expected):
        assert generator.priority_for(area(**kwargs)) == expected


class TestGenerate:

    def test_ordered_by_priority_then_difficulty(self, generator):
        areas = [
            area(1, area_name="Decimals", difficulty=1),
            area(2, area_name="Fractions", difficulty=5),
            area(3, area_name="Ratios", difficulty=3),
            area(4, area_name="Angles", difficulty=4),
        ]

        recommendations = generator.generate(areas, STEADY, NOW)

        assert [r.title for r in recommendations] == [
            "Focus on Fractions",
            "Focus on Angles",
            "Focus on Ratios",
            "Focus on Decimals",
        ]
        assert [r.priority for r in recommendations] == ["high", "high", "medium", "low"]

    def test_resolved_areas_skipped(self, generator):
        recommendations = generator.generate([area(status="resolved", difficulty=5)], STEADY, NOW)

        assert recommendations == []

    def test_templates_by_area_type(self, generator):
        areas = [
            area(1, area_type="skill", area_name="video", difficulty=3),
            area(2, area_type="time_management", area_name="Time management", difficulty=2),
            area(3, area_type="assignment_type", area_name="Algebra", difficulty=1),
        ]

        skill, time_management, assignment = generator.generate(areas, STEADY, NOW)

        assert skill.title == "Improve video Performance"
        assert skill.estimated_time == "45-60 minutes"
        assert "Pomodoro" in time_management.action
        assert assignment.title == "Revisit Algebra"
        assert all(r.type == "weak_area" for r in (skill, time_management, assignment))

    def test_concept_template(self, generator):
        recommendation = generator.generate([area(area_name="Fractions")], STEADY, NOW)[0]

        assert recommendation.title == "Focus on Fractions"
        assert recommendation.estimated_time == "30-45 minutes"
        assert recommendation.resources


class TestStudyHabits:

    def test_new_student_gets_started(self, generator):
        recommendations = generator.generate([], [], NOW)

        assert len(recommendations) == 1
        assert recommendations[0].type == "getting_started"
        assert recommendations[0].priority == "high"

    def test_irregular_study_flagged(self, generator):
        trends = [week(date(2024, 2, 5), active_days=5), week(date(2024, 3, 11), active_days=1)]

        types = [r.type for r in generator.generate([], trends, NOW)]

        assert types == ["study_habit"]

    def test_dropping_scores_flagged(self, generator):
        trends = [week(date(2024, 3, 4), avg_score=85.0), week(date(2024, 3, 11), avg_score=60.0)]

        recommendations = generator.generate([], trends, NOW)

        assert [r.type for r in recommendations] == ["performance_trend"]
        assert "25" in recommendations[0].description

    def test_small_dip_ignored(self, generator):
        trends = [week(date(2024, 3, 4), avg_score=75.0), week(date(2024, 3, 11), avg_score=70.0)]

        assert generator.generate([], trends, NOW) == []

    def test_weak_areas_rank_ahead_of_habits(self, generator):
        trends = [week(date(2024, 3, 11), active_days=1)]

        recommendations = generator.generate([area(difficulty=4)], trends, NOW)

        assert [(r.type, r.priority) for r in recommendations] == [("weak_area", "high"), ("study_habit", "medium")]
