"""Helpers for working with flashcard scheduling persistence."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import Flashcard


DEFAULT_EASE_FACTOR = 2.5


class Difficulty(str, enum.Enum):
    """Difficulty tier derived from a card's review history."""

    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"
    VERY_HARD = "very_hard"


class MasteryStatus(str, enum.Enum):
    """Outcome of the most recent review, stored as a nullable boolean."""

    UNREVIEWED = "unreviewed"
    MASTERED = "mastered"
    NEEDS_REVIEW = "needs_review"

    def to_column(self) -> Optional[bool]:
        if self is MasteryStatus.MASTERED:
            return True
        if self is MasteryStatus.NEEDS_REVIEW:
            return False
        return None

    @classmethod
    def from_column(cls, value: Optional[bool]) -> "MasteryStatus":
        if value is None:
            return cls.UNREVIEWED
        return cls.MASTERED if value else cls.NEEDS_REVIEW


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Return ``moment`` as an aware UTC datetime; naive values are assumed UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(slots=True)
class CardScheduleState:
    """Spaced-repetition state of a single flashcard."""

    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: int = 0
    next_review_at: Optional[datetime] = None
    total_reviews: int = 0
    consecutive_correct: int = 0
    difficulty: Difficulty = Difficulty.NORMAL
    mastery: MasteryStatus = MasteryStatus.UNREVIEWED
    last_reviewed_at: Optional[datetime] = None

    @classmethod
    def from_flashcard(cls, flashcard: Flashcard) -> "CardScheduleState":
        try:
            difficulty = Difficulty(flashcard.difficulty)
        except ValueError:
            difficulty = Difficulty.NORMAL
        return cls(
            ease_factor=flashcard.ease_factor or DEFAULT_EASE_FACTOR,
            interval_days=flashcard.interval_days or 0,
            next_review_at=as_utc(flashcard.next_review_at),
            total_reviews=flashcard.total_reviews or 0,
            consecutive_correct=flashcard.consecutive_correct or 0,
            difficulty=difficulty,
            mastery=MasteryStatus.from_column(flashcard.mastered),
            last_reviewed_at=as_utc(flashcard.last_reviewed_at),
        )


@dataclass(slots=True)
class CardScheduleUpdate:
    """Full scheduling state written back after a review."""

    ease_factor: float
    interval_days: int
    next_review_at: datetime
    total_reviews: int
    consecutive_correct: int
    difficulty: Difficulty
    mastery: MasteryStatus
    last_reviewed_at: datetime


@dataclass(slots=True)
class CardSummary:
    """Read-only view of a flashcard used by the schedule overview."""

    id: str
    question: str
    topic: str
    book_id: Optional[str]
    difficulty: str
    next_review_at: Optional[datetime]
    ease_factor: float
    interval_days: int
    consecutive_correct: int

    @classmethod
    def from_flashcard(cls, flashcard: Flashcard) -> "CardSummary":
        return cls(
            id=flashcard.id,
            question=flashcard.question,
            topic=flashcard.topic,
            book_id=flashcard.book_id,
            difficulty=flashcard.difficulty,
            next_review_at=as_utc(flashcard.next_review_at),
            ease_factor=flashcard.ease_factor,
            interval_days=flashcard.interval_days,
            consecutive_correct=flashcard.consecutive_correct,
        )


async def create_flashcard(
    session: AsyncSession,
    user_id: str,
    question: str,
    topic: str = "",
    book_id: Optional[str] = None,
) -> Flashcard:
    """Create a flashcard with default scheduling state."""
    flashcard = Flashcard(
        user_id=user_id,
        question=question.strip(),
        topic=topic.strip(),
        book_id=book_id,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval_days=0,
        next_review_at=None,
        total_reviews=0,
        consecutive_correct=0,
        difficulty=Difficulty.NORMAL.value,
        mastered=None,
        review_count=0,
    )
    session.add(flashcard)
    await session.flush()
    return flashcard


async def get_card_schedule_state(
    session: AsyncSession, flashcard_id: str, user_id: str
) -> Optional[CardScheduleState]:
    """Return the scheduling state of a card owned by ``user_id``, if any."""
    stmt = select(Flashcard).where(Flashcard.id == flashcard_id, Flashcard.user_id == user_id)
    result = await session.execute(stmt)
    flashcard = result.scalars().first()
    if flashcard is None:
        return None
    return CardScheduleState.from_flashcard(flashcard)


async def save_card_schedule(
    session: AsyncSession,
    flashcard_id: str,
    schedule: CardScheduleUpdate,
) -> None:
    """Persist the full scheduling state computed for a review."""
    stmt = (
        update(Flashcard)
        .where(Flashcard.id == flashcard_id)
        .values(
            ease_factor=schedule.ease_factor,
            interval_days=schedule.interval_days,
            next_review_at=as_utc(schedule.next_review_at),
            total_reviews=schedule.total_reviews,
            consecutive_correct=schedule.consecutive_correct,
            difficulty=schedule.difficulty.value,
            mastered=schedule.mastery.to_column(),
            last_reviewed_at=as_utc(schedule.last_reviewed_at),
            review_count=Flashcard.review_count + 1,
            updated_at=as_utc(schedule.last_reviewed_at),
        )
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)


def _is_due(until: datetime):
    return or_(Flashcard.next_review_at.is_(None), Flashcard.next_review_at <= as_utc(until))


async def count_due_cards(session: AsyncSession, user_id: str, until: datetime) -> int:
    """Count cards that are new or due on or before ``until``."""
    stmt = (
        select(func.count())
        .select_from(Flashcard)
        .where(Flashcard.user_id == user_id, _is_due(until))
    )
    result = await session.execute(stmt)
    return int(result.scalar_one())


async def list_due_cards(
    session: AsyncSession,
    user_id: str,
    now: Optional[datetime] = None,
    book_id: Optional[str] = None,
    limit: int = 50,
) -> List[CardSummary]:
    """Return due cards with never-reviewed ones first, then oldest due date."""
    if now is None:
        now = datetime.now(timezone.utc)

    stmt = select(Flashcard).where(Flashcard.user_id == user_id, _is_due(now))
    if book_id:
        stmt = stmt.where(Flashcard.book_id == book_id)
    stmt = stmt.order_by(Flashcard.next_review_at.asc().nulls_first(), Flashcard.id).limit(limit)

    result = await session.execute(stmt)
    return [CardSummary.from_flashcard(card) for card in result.scalars().all()]


async def list_upcoming_cards(
    session: AsyncSession,
    user_id: str,
    now: datetime,
    until: datetime,
    book_id: Optional[str] = None,
    limit: int = 50,
) -> List[CardSummary]:
    """Return cards scheduled after ``now`` and no later than ``until``."""
    stmt = select(Flashcard).where(
        Flashcard.user_id == user_id,
        Flashcard.next_review_at > as_utc(now),
        Flashcard.next_review_at <= as_utc(until),
    )
    if book_id:
        stmt = stmt.where(Flashcard.book_id == book_id)
    stmt = stmt.order_by(Flashcard.next_review_at.asc(), Flashcard.id).limit(limit)

    result = await session.execute(stmt)
    return [CardSummary.from_flashcard(card) for card in result.scalars().all()]


async def count_cards_by_difficulty(session: AsyncSession, user_id: str) -> Dict[str, int]:
    """Tally all of a user's cards per difficulty tier."""
    counts = {difficulty.value: 0 for difficulty in Difficulty}
    stmt = (
        select(Flashcard.difficulty, func.count())
        .where(Flashcard.user_id == user_id)
        .group_by(Flashcard.difficulty)
    )
    result = await session.execute(stmt)
    for difficulty, total in result.all():
        # Unknown tiers left behind by older rows are ignored.
        if difficulty in counts:
            counts[difficulty] = int(total)
    return counts
