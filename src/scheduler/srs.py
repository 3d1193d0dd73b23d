"""Spaced-repetition scheduling helpers for flashcard reviews."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from src.db.flashcards import DEFAULT_EASE_FACTOR, Difficulty, MasteryStatus
from src.scheduler.errors import InvalidQualityError


MIN_EASE_FACTOR = 1.3
MIN_INTERVAL_DAYS = 1
MAX_INTERVAL_DAYS = 365
PASSING_QUALITY = 3
MASTERED_QUALITY = 4


@dataclass(frozen=True, slots=True)
class ReviewSchedule:
    """Calculated review data for a flashcard after receiving a quality rating."""

    next_review_at: datetime
    ease_factor: float
    interval: int


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with ties going up, unlike the built-in banker's rounding."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def validate_quality(quality: object) -> int:
    """Return ``quality`` when it is an integer rating in [0, 5]."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(quality)
    if quality < 0 or quality > 5:
        raise InvalidQualityError(quality)
    return quality


def truncate_to_local_day(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Return midnight of the local calendar day containing ``moment``.

    Naive datetimes are assumed to be UTC. When ``tz`` is omitted the system
    local timezone is used.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return _local_midnight(moment.astimezone(tz).date(), tz)


def _local_midnight(day: date, tz: Optional[tzinfo]) -> datetime:
    midnight = datetime.combine(day, time.min)
    if tz is None:
        # A naive value is read as system local time, with the offset in force on ``day``.
        return midnight.astimezone()
    return midnight.replace(tzinfo=tz)


def calculate_next_review(
    *,
    quality: int,
    current_interval: int,
    current_ease: float,
    consecutive_correct: int,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> ReviewSchedule:
    """Return the next review schedule using the SM-2 formula.

    ``consecutive_correct`` is the streak *before* this review: 0 means the
    card has no successful repetitions in its current streak.
    """
    quality = validate_quality(quality)
    if now is None:
        now = datetime.now(timezone.utc)

    ease = current_ease or DEFAULT_EASE_FACTOR
    lapse = 5 - quality
    ease_factor = ease + (0.1 - lapse * (0.08 + lapse * 0.02))
    if ease_factor < MIN_EASE_FACTOR:
        ease_factor = MIN_EASE_FACTOR

    if quality < PASSING_QUALITY:
        interval = 1
    elif consecutive_correct == 0:
        interval = 1
    elif consecutive_correct == 1:
        interval = 6
    else:
        interval = int(round_half_up(max(0, current_interval or 0) * ease_factor))

    interval = max(MIN_INTERVAL_DAYS, min(interval, MAX_INTERVAL_DAYS))

    # Days are added to the calendar date so a DST change keeps the result at midnight.
    review_day = truncate_to_local_day(now, tz).date() + timedelta(days=interval)
    next_review_at = _local_midnight(review_day, tz)

    return ReviewSchedule(
        next_review_at=next_review_at,
        ease_factor=round_half_up(ease_factor, 2),
        interval=interval,
    )


def classify_difficulty(total_reviews: int, consecutive_correct: int, ease_factor: float) -> Difficulty:
    """Bucket a card by its ease factor and share of consecutive successes."""
    if total_reviews < 3:
        return Difficulty.NORMAL

    correct_ratio = consecutive_correct / max(1, total_reviews)

    if ease_factor >= 2.5 and correct_ratio >= 0.8:
        return Difficulty.EASY
    if ease_factor >= 2.0 and correct_ratio >= 0.6:
        return Difficulty.NORMAL
    if ease_factor >= 1.5 or correct_ratio >= 0.4:
        return Difficulty.HARD
    return Difficulty.VERY_HARD


def derive_mastery(quality: int) -> MasteryStatus:
    """Map a quality rating to the card's mastery flag."""
    if quality >= MASTERED_QUALITY:
        return MasteryStatus.MASTERED
    if quality < PASSING_QUALITY:
        return MasteryStatus.NEEDS_REVIEW
    return MasteryStatus.UNREVIEWED


def next_streak(consecutive_correct: int, quality: int) -> int:
    """Return the consecutive-correct counter after a review."""
    if quality >= PASSING_QUALITY:
        return (consecutive_correct or 0) + 1
    return 0
