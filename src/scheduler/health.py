"""Session health analysis over a user's recent study history."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Sequence, Union

from src.db.flashcards import as_utc
from src.db.study_sessions import SessionRecord
from src.scheduler.srs import round_half_up


RECENT_WINDOW = 7
CONSISTENCY_WINDOW = timedelta(days=7)
TREND_THRESHOLD = 5
TREND_ADJUSTMENT = 10
CONSISTENT_SESSIONS = 5
CONSISTENCY_BONUS = 5
SPARSE_SESSIONS = 1
SPARSE_PENALTY = 10
BATCH_WARNING_DUE_CARDS = 10

FIRST_SESSION_RECOMMENDATION = "Start your first study session to build a learning routine!"


class HealthStatus(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_WORK = "needs_work"
    STRUGGLING = "struggling"


@dataclass(frozen=True, slots=True)
class SessionHealth:
    """Diagnostic summary of recent study performance."""

    score: int
    status: HealthStatus
    recommendation: str
    cards_to_review_today: int
    cards_to_review_this_week: int

    def to_dict(self) -> Dict[str, Union[int, str]]:
        return {
            "score": self.score,
            "status": self.status.value,
            "recommendation": self.recommendation,
            "cardsToReviewToday": self.cards_to_review_today,
            "cardsToReviewThisWeek": self.cards_to_review_this_week,
        }


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def calculate_trend(recent: Sequence[SessionRecord]) -> float:
    """Return the score difference between the two halves of ``recent``.

    ``recent`` is newest first, so the first half holds the newer sessions and
    a positive trend means scores went up.
    """
    if len(recent) < 2:
        return 0.0
    split = math.ceil(len(recent) / 2)
    first_half = [record.score_percentage for record in recent[:split]]
    second_half = [record.score_percentage for record in recent[split:]]
    return _mean(first_half) - _mean(second_half)


def _recommend(status: HealthStatus, trend: float, due_today: int) -> str:
    if status is HealthStatus.EXCELLENT:
        if trend > 0:
            return "You're on fire! Keep up this amazing momentum!"
        return "Excellent performance! Maintain your consistent study habits."
    if status is HealthStatus.GOOD:
        if trend > 0:
            return "Great progress! You're improving steadily."
        return "Good performance! Try focusing on your weaker cards."
    if status is HealthStatus.NEEDS_WORK:
        if due_today > BATCH_WARNING_DUE_CARDS:
            return f"You have {due_today} cards due today. Tackle them in smaller batches!"
        return "Practice makes perfect! Review your difficult cards more frequently."
    return "Let's get back on track! Start with just 5-10 cards daily to rebuild your momentum."


def status_for_score(score: int) -> HealthStatus:
    if score >= 85:
        return HealthStatus.EXCELLENT
    if score >= 70:
        return HealthStatus.GOOD
    if score >= 50:
        return HealthStatus.NEEDS_WORK
    return HealthStatus.STRUGGLING


def analyze_session_health(
    sessions: Sequence[SessionRecord],
    due_today: int,
    due_this_week: int,
    now: Optional[datetime] = None,
) -> SessionHealth:
    """Score recent study sessions and pick a matching recommendation.

    ``sessions`` must be ordered newest first; callers pass at most the ten
    most recent. Only the first seven contribute to the average and trend,
    while every supplied session counts toward weekly consistency.
    """
    if not sessions:
        return SessionHealth(
            score=50,
            status=HealthStatus.NEEDS_WORK,
            recommendation=FIRST_SESSION_RECOMMENDATION,
            cards_to_review_today=due_today,
            cards_to_review_this_week=due_this_week,
        )

    if now is None:
        now = datetime.now(timezone.utc)

    recent = list(sessions[:RECENT_WINDOW])
    average = _mean([record.score_percentage for record in recent])
    trend = calculate_trend(recent)

    health_score = average
    if trend > TREND_THRESHOLD:
        health_score += TREND_ADJUSTMENT
    elif trend < -TREND_THRESHOLD:
        health_score -= TREND_ADJUSTMENT

    week_ago = as_utc(now) - CONSISTENCY_WINDOW
    sessions_this_week = sum(1 for record in sessions if as_utc(record.completed_at) >= week_ago)
    if sessions_this_week >= CONSISTENT_SESSIONS:
        health_score += CONSISTENCY_BONUS
    elif sessions_this_week <= SPARSE_SESSIONS:
        health_score -= SPARSE_PENALTY

    score = int(round_half_up(max(0.0, min(100.0, health_score))))
    status = status_for_score(score)

    return SessionHealth(
        score=score,
        status=status,
        recommendation=_recommend(status, trend, due_today),
        cards_to_review_today=due_today,
        cards_to_review_this_week=due_this_week,
    )
