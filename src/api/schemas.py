"""Request and response models for the scheduler HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, StrictInt

from src.db.flashcards import CardSummary
from src.db.study_sessions import StudySessionDetails
from src.scheduler.health import SessionHealth
from src.scheduler.orchestrator import (
    PrioritizedCards,
    ReviewBatchResult,
    ReviewOutcome,
    ScheduleOverview,
    ScheduledCard,
)


class ReviewItem(BaseModel):
    flashcardId: str
    quality: StrictInt = Field(..., description="Recall quality from 0 (blackout) to 5 (perfect)")


class ReviewBatchRequest(BaseModel):
    # Both are optional here so a missing field yields a 400 with a readable message.
    userId: Optional[str] = None
    reviews: Optional[List[ReviewItem]] = None


class SessionHealthModel(BaseModel):
    score: int
    status: str
    recommendation: str
    cardsToReviewToday: int
    cardsToReviewThisWeek: int

    @classmethod
    def from_health(cls, health: SessionHealth) -> "SessionHealthModel":
        return cls(**health.to_dict())


class ScheduledCardModel(BaseModel):
    cardId: str
    nextReview: datetime
    interval: int
    easeFactor: float
    difficulty: str

    @classmethod
    def from_card(cls, card: ScheduledCard) -> "ScheduledCardModel":
        return cls(
            cardId=card.card_id,
            nextReview=card.next_review,
            interval=card.interval,
            easeFactor=card.ease_factor,
            difficulty=card.difficulty.value,
        )


class ReviewOutcomeModel(BaseModel):
    flashcardId: str
    status: str
    reason: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: ReviewOutcome) -> "ReviewOutcomeModel":
        return cls(flashcardId=outcome.flashcard_id, status=outcome.status.value, reason=outcome.reason)


class ReviewBatchResponse(BaseModel):
    success: bool = True
    updated: int
    schedule: List[ScheduledCardModel]
    outcomes: List[ReviewOutcomeModel]
    sessionHealth: SessionHealthModel

    @classmethod
    def from_result(cls, result: ReviewBatchResult) -> "ReviewBatchResponse":
        return cls(
            updated=result.updated,
            schedule=[ScheduledCardModel.from_card(card) for card in result.schedule],
            outcomes=[ReviewOutcomeModel.from_outcome(outcome) for outcome in result.outcomes],
            sessionHealth=SessionHealthModel.from_health(result.session_health),
        )


class CardModel(BaseModel):
    id: str
    question: str
    topic: str
    bookId: Optional[str] = None
    difficulty: str
    nextReviewAt: Optional[datetime] = None
    easeFactor: float
    intervalDays: int
    consecutiveCorrect: int

    @classmethod
    def from_summary(cls, card: CardSummary) -> "CardModel":
        return cls(
            id=card.id,
            question=card.question,
            topic=card.topic,
            bookId=card.book_id,
            difficulty=card.difficulty,
            nextReviewAt=card.next_review_at,
            easeFactor=card.ease_factor,
            intervalDays=card.interval_days,
            consecutiveCorrect=card.consecutive_correct,
        )


class PrioritizedCardsModel(BaseModel):
    overdue: List[CardModel]
    dueToday: List[CardModel]
    newCards: List[CardModel]

    @classmethod
    def from_prioritized(cls, prioritized: PrioritizedCards) -> "PrioritizedCardsModel":
        return cls(
            overdue=[CardModel.from_summary(card) for card in prioritized.overdue],
            dueToday=[CardModel.from_summary(card) for card in prioritized.due_today],
            newCards=[CardModel.from_summary(card) for card in prioritized.new_cards],
        )


class ScheduleResponse(BaseModel):
    success: bool = True
    dueCards: List[CardModel]
    upcomingCards: List[CardModel]
    prioritizedCards: PrioritizedCardsModel
    difficultyCounts: Dict[str, int]
    sessionHealth: SessionHealthModel
    studyRecommendation: str

    @classmethod
    def from_overview(cls, overview: ScheduleOverview) -> "ScheduleResponse":
        return cls(
            dueCards=[CardModel.from_summary(card) for card in overview.due_cards],
            upcomingCards=[CardModel.from_summary(card) for card in overview.upcoming_cards],
            prioritizedCards=PrioritizedCardsModel.from_prioritized(overview.prioritized_cards),
            difficultyCounts=overview.difficulty_counts,
            sessionHealth=SessionHealthModel.from_health(overview.session_health),
            studyRecommendation=overview.study_recommendation,
        )


class StudySessionModel(BaseModel):
    id: str
    userId: str
    bookId: Optional[str] = None
    mode: str
    totalCards: int
    correctCount: int
    incorrectCount: int
    skippedCount: int
    scorePercentage: float
    timeSpentSeconds: int
    completedAt: datetime

    @classmethod
    def from_details(cls, details: StudySessionDetails) -> "StudySessionModel":
        return cls(
            id=details.id,
            userId=details.user_id,
            bookId=details.book_id,
            mode=details.mode,
            totalCards=details.total_cards,
            correctCount=details.correct_count,
            incorrectCount=details.incorrect_count,
            skippedCount=details.skipped_count,
            scorePercentage=details.score_percentage,
            timeSpentSeconds=details.time_spent_seconds,
            completedAt=details.completed_at,
        )


class StudySessionsResponse(BaseModel):
    sessions: List[StudySessionModel]
    count: int


class HealthResponse(BaseModel):
    status: str
    version: str
