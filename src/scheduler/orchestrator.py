"""Batch review processing and schedule overviews backed by the database."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.flashcards import (
    CardScheduleUpdate,
    CardSummary,
    Difficulty,
    as_utc,
    count_cards_by_difficulty,
    count_due_cards,
    get_card_schedule_state,
    list_due_cards,
    list_upcoming_cards,
    save_card_schedule,
)
from src.db.study_sessions import (
    SessionRecord,
    StudySessionDetails,
    get_recent_sessions,
    list_study_sessions,
)
from src.scheduler.errors import InvalidInputError
from src.scheduler.health import HealthStatus, SessionHealth, analyze_session_health
from src.scheduler.srs import (
    calculate_next_review,
    classify_difficulty,
    derive_mastery,
    next_streak,
    truncate_to_local_day,
    validate_quality,
)


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

UPCOMING_WINDOW = timedelta(days=7)
OVERDUE_WARNING_CARDS = 10
HARD_WARNING_CARDS = 20


@dataclass(frozen=True, slots=True)
class ReviewInput:
    """A single quality rating submitted for a flashcard."""

    flashcard_id: str
    quality: int


class OutcomeStatus(str, enum.Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ScheduledCard:
    """Schedule computed for one reviewed card."""

    card_id: str
    next_review: datetime
    interval: int
    ease_factor: float
    difficulty: Difficulty


@dataclass(frozen=True, slots=True)
class ReviewOutcome:
    """What happened to one entry of a review batch."""

    flashcard_id: str
    status: OutcomeStatus
    card: Optional[ScheduledCard] = None
    reason: Optional[str] = None


@dataclass(slots=True)
class ReviewBatchResult:
    outcomes: List[ReviewOutcome]
    session_health: SessionHealth

    @property
    def schedule(self) -> List[ScheduledCard]:
        return [outcome.card for outcome in self.outcomes if outcome.card is not None]

    @property
    def updated(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is OutcomeStatus.PROCESSED)


@dataclass(slots=True)
class PrioritizedCards:
    overdue: List[CardSummary] = field(default_factory=list)
    due_today: List[CardSummary] = field(default_factory=list)
    new_cards: List[CardSummary] = field(default_factory=list)


@dataclass(slots=True)
class ScheduleOverview:
    """Everything the study dashboard needs to plan the next session."""

    due_cards: List[CardSummary]
    upcoming_cards: List[CardSummary]
    prioritized_cards: PrioritizedCards
    difficulty_counts: Dict[str, int]
    session_health: SessionHealth
    study_recommendation: str


def prioritize_cards(
    due_cards: Sequence[CardSummary], now: datetime, tz: Optional[tzinfo] = None
) -> PrioritizedCards:
    """Group due cards into overdue, due-today and never-reviewed buckets."""
    today = truncate_to_local_day(now, tz).date()
    prioritized = PrioritizedCards()
    for card in due_cards:
        if card.next_review_at is None:
            prioritized.due_today.append(card)
            prioritized.new_cards.append(card)
            continue
        if card.next_review_at < now:
            prioritized.overdue.append(card)
        if truncate_to_local_day(card.next_review_at, tz).date() == today:
            prioritized.due_today.append(card)
    return prioritized


def build_study_recommendation(
    prioritized: PrioritizedCards,
    difficulty_counts: Dict[str, int],
    session_health: SessionHealth,
) -> str:
    """Pick the single most pressing study suggestion."""
    overdue_count = len(prioritized.overdue)
    due_today_count = len(prioritized.due_today)
    hard_count = difficulty_counts.get(Difficulty.HARD.value, 0) + difficulty_counts.get(
        Difficulty.VERY_HARD.value, 0
    )

    if session_health.status is HealthStatus.STRUGGLING:
        return "Start small! Review just 5-10 cards to get back into the groove."
    if overdue_count > OVERDUE_WARNING_CARDS:
        return f"You have {overdue_count} overdue cards. Tackle them first to stay on track!"
    if hard_count > HARD_WARNING_CARDS:
        return f"You have {hard_count} difficult cards. Focus on mastering these with shorter intervals."
    if due_today_count > 0:
        return f"{due_today_count} cards are ready for review. Complete them to maintain your streak!"
    if prioritized.new_cards:
        return f"Great progress! You have {len(prioritized.new_cards)} new cards to explore."
    return "All caught up! Check back later for more reviews."


def _validate_review(review: ReviewInput) -> ReviewInput:
    if not review.flashcard_id:
        raise InvalidInputError("Each review needs a flashcardId and a quality.")
    validate_quality(review.quality)
    return review


class ScheduleOrchestrator:
    """Coordinate SM-2 updates, persistence and session health for a user."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        session_history_limit: int = 10,
        card_list_limit: int = 50,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self._session_factory = session_factory
        self._session_history_limit = session_history_limit
        self._card_list_limit = card_list_limit
        self._tz = tz

    async def process_review_batch(
        self,
        user_id: str,
        reviews: Sequence[ReviewInput],
        now: Optional[datetime] = None,
    ) -> ReviewBatchResult:
        """Apply a batch of review ratings and report the user's session health.

        Every rating is validated before any card is touched. Cards that do not
        belong to the user are skipped, and a database error on one card only
        fails that card.
        """
        if not user_id or not reviews:
            raise InvalidInputError("User ID and reviews are required")
        parsed = [_validate_review(review) for review in reviews]

        now = as_utc(now) if now is not None else datetime.now(timezone.utc)

        outcomes: List[ReviewOutcome] = []
        for review in parsed:
            outcomes.append(await self._apply_review(user_id, review, now))

        processed = sum(1 for outcome in outcomes if outcome.status is OutcomeStatus.PROCESSED)
        LOGGER.info(
            "Processed %s of %s reviews for user %s.", processed, len(outcomes), user_id
        )

        sessions, due_today, due_this_week = await self._load_health_inputs(user_id, now)
        session_health = analyze_session_health(sessions, due_today, due_this_week, now=now)
        return ReviewBatchResult(outcomes=outcomes, session_health=session_health)

    async def _apply_review(self, user_id: str, review: ReviewInput, now: datetime) -> ReviewOutcome:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    state = await get_card_schedule_state(session, review.flashcard_id, user_id)
                    if state is None:
                        LOGGER.debug(
                            "Skipping review for unknown flashcard %s (user %s).",
                            review.flashcard_id,
                            user_id,
                        )
                        return ReviewOutcome(
                            flashcard_id=review.flashcard_id,
                            status=OutcomeStatus.SKIPPED,
                            reason="not_found",
                        )

                    total_reviews = state.total_reviews + 1
                    consecutive_correct = next_streak(state.consecutive_correct, review.quality)
                    schedule = calculate_next_review(
                        quality=review.quality,
                        current_interval=state.interval_days,
                        current_ease=state.ease_factor,
                        consecutive_correct=state.consecutive_correct,
                        now=now,
                        tz=self._tz,
                    )
                    difficulty = classify_difficulty(
                        total_reviews, consecutive_correct, schedule.ease_factor
                    )

                    await save_card_schedule(
                        session,
                        review.flashcard_id,
                        CardScheduleUpdate(
                            ease_factor=schedule.ease_factor,
                            interval_days=schedule.interval,
                            next_review_at=schedule.next_review_at,
                            total_reviews=total_reviews,
                            consecutive_correct=consecutive_correct,
                            difficulty=difficulty,
                            mastery=derive_mastery(review.quality),
                            last_reviewed_at=now,
                        ),
                    )
        except SQLAlchemyError:
            LOGGER.exception(
                "Failed to update schedule for flashcard %s (user %s).", review.flashcard_id, user_id
            )
            return ReviewOutcome(
                flashcard_id=review.flashcard_id,
                status=OutcomeStatus.ERROR,
                reason="persistence_error",
            )

        return ReviewOutcome(
            flashcard_id=review.flashcard_id,
            status=OutcomeStatus.PROCESSED,
            card=ScheduledCard(
                card_id=review.flashcard_id,
                next_review=schedule.next_review_at,
                interval=schedule.interval,
                ease_factor=schedule.ease_factor,
                difficulty=difficulty,
            ),
        )

    async def _read_or_default(
        self,
        description: str,
        user_id: str,
        reader: Callable[[AsyncSession], Awaitable[T]],
        default: T,
    ) -> T:
        """Run an auxiliary read in its own session, falling back to ``default``."""
        try:
            async with self._session_factory() as session:
                return await reader(session)
        except SQLAlchemyError:
            LOGGER.warning(
                "Could not load %s for user %s; continuing without it.",
                description,
                user_id,
                exc_info=True,
            )
            return default

    async def _load_health_inputs(
        self, user_id: str, now: datetime
    ) -> tuple[List[SessionRecord], int, int]:
        sessions = await self._read_or_default(
            "session history",
            user_id,
            lambda session: get_recent_sessions(session, user_id, limit=self._session_history_limit),
            [],
        )
        due_today = await self._read_or_default(
            "due card count",
            user_id,
            lambda session: count_due_cards(session, user_id, now),
            0,
        )
        due_this_week = await self._read_or_default(
            "weekly due card count",
            user_id,
            lambda session: count_due_cards(session, user_id, now + UPCOMING_WINDOW),
            0,
        )
        return sessions, due_today, due_this_week

    async def get_schedule(
        self,
        user_id: str,
        book_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleOverview:
        """Return due and upcoming cards together with health and a recommendation."""
        if not user_id:
            raise InvalidInputError("User ID is required")
        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        week_from_now = now + UPCOMING_WINDOW

        async with self._session_factory() as session:
            due_cards = await list_due_cards(
                session, user_id, now=now, book_id=book_id, limit=self._card_list_limit
            )

        upcoming_cards = await self._read_or_default(
            "upcoming cards",
            user_id,
            lambda session: list_upcoming_cards(
                session,
                user_id,
                now=now,
                until=week_from_now,
                book_id=book_id,
                limit=self._card_list_limit,
            ),
            [],
        )
        sessions = await self._read_or_default(
            "session history",
            user_id,
            lambda session: get_recent_sessions(session, user_id, limit=self._session_history_limit),
            [],
        )
        difficulty_counts = await self._read_or_default(
            "difficulty counts",
            user_id,
            lambda session: count_cards_by_difficulty(session, user_id),
            {difficulty.value: 0 for difficulty in Difficulty},
        )

        session_health = analyze_session_health(
            sessions,
            len(due_cards),
            len(due_cards) + len(upcoming_cards),
            now=now,
        )
        prioritized = prioritize_cards(due_cards, now, self._tz)

        return ScheduleOverview(
            due_cards=due_cards,
            upcoming_cards=upcoming_cards,
            prioritized_cards=prioritized,
            difficulty_counts=difficulty_counts,
            session_health=session_health,
            study_recommendation=build_study_recommendation(
                prioritized, difficulty_counts, session_health
            ),
        )

    async def get_study_sessions(
        self, user_id: str, limit: int = 10, book_id: Optional[str] = None
    ) -> List[StudySessionDetails]:
        """Return the user's study sessions, newest first."""
        if not user_id:
            raise InvalidInputError("User ID is required")
        async with self._session_factory() as session:
            return await list_study_sessions(session, user_id, limit=max(1, limit), book_id=book_id)
