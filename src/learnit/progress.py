import logging
from datetime import date, datetime
from typing import Dict, List, Optional

import pandas as pd

from .models import DailyActivity, QuestionTypeCounts, QuizGeneration, StreakInfo, UserProgress
from .storage import ProgressStore

logger = logging.getLogger(__name__)


def advance_streak(streak: StreakInfo, today: date) -> StreakInfo:
    """Applies one day of activity to the streak counters."""
    last = streak.last_upload_date
    if last is None:
        current = 1
    else:
        gap = (today - last).days
        if gap <= 0:
            # same day, or a clock that went backwards
            return streak
        current = streak.current_streak + 1 if gap == 1 else 1
    return StreakInfo(
        current_streak=current,
        longest_streak=max(streak.longest_streak, current),
        last_upload_date=today,
    )


# --- Service Layer: Progress Tracking ---
class ProgressTracker:
    """Keeps streaks, the generation log and per-day activity for each user."""

    def __init__(self, store: ProgressStore):
        self.store = store

    def get(self, user_id: str) -> Optional[UserProgress]:
        return self.store.get(user_id)

    @staticmethod
    def _day(progress: UserProgress, day: date) -> DailyActivity:
        key = day.isoformat()
        activity = progress.daily_activity.get(key)
        if activity is None:
            activity = DailyActivity(date=key)
            progress.daily_activity[key] = activity
        return activity

    def record_upload(self, user_id: str, today: Optional[date] = None) -> UserProgress:
        today = today or date.today()

        def apply(progress: UserProgress) -> None:
            self._day(progress, today).uploads += 1
            progress.streak_info = advance_streak(progress.streak_info, today)

        progress = self.store.update(user_id, apply)
        logger.info(f"Upload recorded for {user_id} on {today}")
        return progress

    def record_generation(
        self,
        user_id: str,
        document_id: str,
        counts: QuestionTypeCounts,
        time_spent_seconds: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> UserProgress:
        now = now or datetime.now()
        generation = QuizGeneration(
            document_id=document_id,
            timestamp=now,
            time_spent_seconds=time_spent_seconds,
            question_types=counts,
        )

        def apply(progress: UserProgress) -> None:
            progress.generations.append(generation)
            self._day(progress, now.date()).quizzes += 1
            progress.streak_info = advance_streak(progress.streak_info, now.date())

        progress = self.store.update(user_id, apply)
        logger.info(f"Generation recorded for {user_id}: {counts.total()} questions")
        return progress

    def record_score(self, user_id: str, score: int, today: Optional[date] = None) -> UserProgress:
        today = today or date.today()

        def apply(progress: UserProgress) -> None:
            self._day(progress, today).score += max(0, score)

        return self.store.update(user_id, apply)

    def set_daily_activity(self, user_id: str, activity: DailyActivity) -> UserProgress:
        def apply(progress: UserProgress) -> None:
            progress.daily_activity[activity.date] = activity

        return self.store.update(user_id, apply)

    def get_daily_activity(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[DailyActivity]:
        progress = self.store.get(user_id)
        if not progress:
            return []
        end = end or date.today()
        start = start or (pd.Timestamp(end) - pd.DateOffset(months=12)).date()
        start_key, end_key = start.isoformat(), end.isoformat()
        return sorted(
            (a for a in progress.daily_activity.values() if start_key <= a.date <= end_key),
            key=lambda a: a.date,
        )

    def get_streak(self, user_id: str) -> Dict[str, int]:
        progress = self.store.get(user_id)
        if not progress:
            return {"current_streak": 0, "longest_streak": 0}
        return {
            "current_streak": progress.streak_info.current_streak,
            "longest_streak": progress.streak_info.longest_streak,
        }

    def activity_calendar(
        self, user_id: str, weeks: int = 52, today: Optional[date] = None
    ) -> List[Dict[str, object]]:
        """One entry per day, uploads plus quizzes, for a contribution-style grid."""
        today = today or date.today()
        progress = self.store.get(user_id)
        activity = progress.daily_activity if progress else {}

        days = pd.date_range(end=pd.Timestamp(today), periods=weeks * 7 + 1, freq="D")
        calendar = []
        for day in days:
            key = day.date().isoformat()
            entry = activity.get(key)
            calendar.append({"date": key, "count": entry.uploads + entry.quizzes if entry else 0})
        return calendar
