"""
Recommendation generator: turns open weak areas and recent trends into a
ranked list of study recommendations. Nothing here is persisted; the list is
rebuilt on every request.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List

from app.core.config import settings as default_settings, Settings
from app.models.weak_area import STATUS_RESOLVED
from app.schemas.analytics import Recommendation, WeakAreaOut, WeeklyTrend
from app.utils.dates import week_start

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

SCORE_DROP_THRESHOLD = 10.0


class RecommendationGenerator:
    """
    Maps weak areas and study-habit signals to recommendations.

    Priority:
    - high: difficulty >= 4 or occurrences >= 5
    - medium: difficulty 3, or last seen within RECOMMENDATION_RECENT_DAYS
    - low: everything else
    """

    def __init__(self, settings: Settings = default_settings):
        self.settings = settings
        self._builders: Dict[str, Callable[[WeakAreaOut, str], Recommendation]] = {
            "skill": self._skill,
            "assignment_type": self._assignment_type,
            "time_management": self._time_management,
            "concept": self._concept,
        }

    def priority_for(self, area: WeakAreaOut) -> str:
        if area.difficulty_score >= 4 or area.occurrences >= 5:
            return "high"
        if area.difficulty_score >= 3 or area.days_since_last_occurrence <= self.settings.RECOMMENDATION_RECENT_DAYS:
            return "medium"
        return "low"

    def generate(
        self,
        weak_areas: List[WeakAreaOut],
        weekly_trends: List[WeeklyTrend],
        now: datetime,
    ) -> List[Recommendation]:
        """
        Build the ranked recommendation list.

        Args:
            weak_areas: The student's weak areas (resolved ones are skipped)
            weekly_trends: Weekly trends, oldest first
            now: Reference time

        Returns:
            Recommendations ordered by priority, then difficulty and occurrences
        """
        ranked = []
        for area in weak_areas:
            if area.improvement_status == STATUS_RESOLVED:
                continue
            priority = self.priority_for(area)
            builder = self._builders.get(area.area_type, self._concept)
            ranked.append((PRIORITY_RANK[priority], -area.difficulty_score, -area.occurrences, builder(area, priority)))

        for recommendation in self._habit_recommendations(weekly_trends, now.date()):
            ranked.append((PRIORITY_RANK[recommendation.priority], 0, 0, recommendation))

        ranked.sort(key=lambda item: item[:3])
        recommendations = [item[3] for item in ranked]
        logger.debug(f"Generated {len(recommendations)} recommendations")
        return recommendations

    # ============= Weak-area templates =============

    @staticmethod
    def _skill(area: WeakAreaOut, priority: str) -> Recommendation:
        return Recommendation(
            type="weak_area",
            priority=priority,  # type: ignore
            title=f"Improve {area.area_name} Performance",
            description=f"Your average score for {area.area_name} content is lower than expected.",
            action=f"Review {area.area_name} materials and attempt related exercises",
            estimated_time="45-60 minutes",
            resources=[f"{area.area_name} specific resources", "Practice tests"],
        )

    @staticmethod
    def _assignment_type(area: WeakAreaOut, priority: str) -> Recommendation:
        return Recommendation(
            type="weak_area",
            priority=priority,  # type: ignore
            title=f"Revisit {area.area_name}",
            description=f"You have failed several assignments in {area.area_name}.",
            action="Re-read the unit content, then retry the assignment",
            estimated_time="30-45 minutes",
            resources=["Unit readings", "Worked examples", "Practice questions"],
        )

    @staticmethod
    def _time_management(area: WeakAreaOut, priority: str) -> Recommendation:
        return Recommendation(
            type="weak_area",
            priority=priority,  # type: ignore
            title="Improve Focus During Study Sessions",
            description="You are taking much longer than the estimated time to finish content.",
            action="Use Pomodoro technique (25 min study, 5 min break)",
            estimated_time="Session planning",
            resources=["Focus timer app", "Study environment tips"],
        )

    @staticmethod
    def _concept(area: WeakAreaOut, priority: str) -> Recommendation:
        return Recommendation(
            type="weak_area",
            priority=priority,  # type: ignore
            title=f"Focus on {area.area_name}",
            description=f"You're struggling with {area.area_name}. Consider reviewing related materials.",
            action="Review content and practice related exercises",
            estimated_time="30-45 minutes",
            resources=["Related readings", "Practice questions", "Video tutorials"],
        )

    # ============= Study habits =============

    def _habit_recommendations(self, trends: List[WeeklyTrend], today: date) -> List[Recommendation]:
        if not trends:
            return [Recommendation(
                type="getting_started",
                priority="high",
                title="Start Your First Module",
                description="You haven't started any learning content yet.",
                action="Open your first unit and complete one reading",
                estimated_time="15-20 minutes",
                resources=["Module overview"],
            )]

        recommendations = []

        recent_active = self._recent_active_days(trends, today)
        if recent_active < self.settings.RECOMMENDATION_MIN_ACTIVE_DAYS:
            recommendations.append(Recommendation(
                type="study_habit",
                priority="medium",
                title="Study More Regularly",
                description=f"You studied on {recent_active} day(s) recently. Short daily sessions work better than occasional long ones.",
                action="Schedule a 20 minute study session every day",
                estimated_time="20 minutes daily",
                resources=["Study planner", "Reminder notifications"],
            ))

        scored = [t for t in trends if t.weekly_completed > 0 and t.weekly_avg_score > 0]
        if len(scored) >= 2:
            drop = scored[-2].weekly_avg_score - scored[-1].weekly_avg_score
            if drop > SCORE_DROP_THRESHOLD:
                recommendations.append(Recommendation(
                    type="performance_trend",
                    priority="medium",
                    title="Scores Are Dropping",
                    description=f"Your weekly average score fell by {drop:.0f} points.",
                    action="Review the content you completed last week before moving on",
                    estimated_time="30 minutes",
                    resources=["Completed readings", "Assignment feedback"],
                ))
        return recommendations

    def _recent_active_days(self, trends: List[WeeklyTrend], today: date) -> int:
        """
        Active days in the current and previous week, used as a proxy for the
        last RECOMMENDATION_RECENT_DAYS days since trends are weekly.
        """
        horizon = week_start(today - timedelta(days=self.settings.RECOMMENDATION_RECENT_DAYS))
        recent = [t for t in trends if t.week_start >= horizon]
        return sum(t.active_days for t in recent)
