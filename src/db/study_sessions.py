from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import StudySession
from .flashcards import as_utc


STUDY_MODES = ("scored", "practice", "timed")


@dataclass(slots=True)
class SessionRecord:
    """Score of a completed study session, as used by health analysis."""

    score_percentage: float
    completed_at: datetime


@dataclass(slots=True)
class StudySessionDetails:
    """Full study session row returned by the history endpoint."""

    id: str
    user_id: str
    book_id: Optional[str]
    mode: str
    total_cards: int
    correct_count: int
    incorrect_count: int
    skipped_count: int
    score_percentage: float
    time_spent_seconds: int
    completed_at: datetime


async def record_study_session(
    session: AsyncSession,
    user_id: str,
    score_percentage: float,
    *,
    book_id: Optional[str] = None,
    mode: str = "scored",
    total_cards: int = 0,
    correct_count: int = 0,
    incorrect_count: int = 0,
    skipped_count: int = 0,
    time_spent_seconds: int = 0,
    completed_at: Optional[datetime] = None,
) -> StudySession:
    """Append a completed study session to the user's history."""
    if mode not in STUDY_MODES:
        raise ValueError(f"Unsupported study mode: {mode}")
    if completed_at is None:
        completed_at = datetime.now(timezone.utc)

    study_session = StudySession(
        user_id=user_id,
        book_id=book_id,
        mode=mode,
        total_cards=total_cards,
        correct_count=correct_count,
        incorrect_count=incorrect_count,
        skipped_count=skipped_count,
        score_percentage=max(0.0, min(100.0, float(score_percentage))),
        time_spent_seconds=time_spent_seconds,
        completed_at=as_utc(completed_at),
    )
    session.add(study_session)
    await session.flush()
    return study_session


def _recent_sessions_query(user_id: str, limit: int, book_id: Optional[str]):
    stmt = select(StudySession).where(StudySession.user_id == user_id)
    if book_id:
        stmt = stmt.where(StudySession.book_id == book_id)
    return stmt.order_by(StudySession.completed_at.desc(), StudySession.id).limit(limit)


async def get_recent_sessions(
    session: AsyncSession,
    user_id: str,
    limit: int = 10,
    book_id: Optional[str] = None,
) -> List[SessionRecord]:
    """Return the most recent session scores, newest first."""
    result = await session.execute(_recent_sessions_query(user_id, limit, book_id))
    return [
        SessionRecord(
            score_percentage=row.score_percentage,
            completed_at=as_utc(row.completed_at),
        )
        for row in result.scalars().all()
    ]


async def list_study_sessions(
    session: AsyncSession,
    user_id: str,
    limit: int = 10,
    book_id: Optional[str] = None,
) -> List[StudySessionDetails]:
    """Return full study session rows, newest first."""
    result = await session.execute(_recent_sessions_query(user_id, limit, book_id))
    return [
        StudySessionDetails(
            id=row.id,
            user_id=row.user_id,
            book_id=row.book_id,
            mode=row.mode,
            total_cards=row.total_cards,
            correct_count=row.correct_count,
            incorrect_count=row.incorrect_count,
            skipped_count=row.skipped_count,
            score_percentage=row.score_percentage,
            time_spent_seconds=row.time_spent_seconds,
            completed_at=as_utc(row.completed_at),
        )
        for row in result.scalars().all()
    ]
