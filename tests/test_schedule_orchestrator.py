from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

import src.scheduler.orchestrator as orchestrator_module
from src.db.flashcards import CardSummary, Difficulty, MasteryStatus, create_flashcard, get_card_schedule_state
from src.db.study_sessions import record_study_session
from src.scheduler.errors import InvalidInputError, InvalidQualityError
from src.scheduler.health import HealthStatus, SessionHealth
from src.scheduler.orchestrator import (
    OutcomeStatus,
    PrioritizedCards,
    ReviewInput,
    ScheduleOrchestrator,
    build_study_recommendation,
    prioritize_cards,
)


def _orchestrator(session_factory) -> ScheduleOrchestrator:
    return ScheduleOrchestrator(session_factory, tz=timezone.utc)


async def _create_cards(session_factory, user_id: str, count: int, **kwargs) -> list[str]:
    async with session_factory() as session:
        async with session.begin():
            cards = [await create_flashcard(session, user_id, f"question {i}", **kwargs) for i in range(count)]
    return [card.id for card in cards]


async def _state(session_factory, card_id: str, user_id: str):
    async with session_factory() as session:
        return await get_card_schedule_state(session, card_id, user_id)


@pytest.mark.asyncio
async def test_batch_updates_known_cards_and_skips_unknown(session_factory, now) -> None:
    [card_id] = await _create_cards(session_factory, "learner", 1)
    [foreign_id] = await _create_cards(session_factory, "someone-else", 1)

    result = await _orchestrator(session_factory).process_review_batch(
        "learner",
        [
            ReviewInput(card_id, 5),
            ReviewInput("does-not-exist", 4),
            ReviewInput(foreign_id, 4),
        ],
        now=now,
    )

    assert result.updated == 1
    assert [outcome.status for outcome in result.outcomes] == [
        OutcomeStatus.PROCESSED,
        OutcomeStatus.SKIPPED,
        OutcomeStatus.SKIPPED,
    ]
    [scheduled] = result.schedule
    assert scheduled.card_id == card_id
    assert scheduled.interval == 1
    assert scheduled.ease_factor == pytest.approx(2.6)
    assert scheduled.difficulty is Difficulty.NORMAL
    assert scheduled.next_review == datetime(2026, 3, 11, tzinfo=timezone.utc)

    state = await _state(session_factory, card_id, "learner")
    assert state.total_reviews == 1
    assert state.consecutive_correct == 1
    assert state.mastery is MasteryStatus.MASTERED
    assert state.last_reviewed_at == now
    assert state.next_review_at == datetime(2026, 3, 11, tzinfo=timezone.utc)

    foreign = await _state(session_factory, foreign_id, "someone-else")
    assert foreign.total_reviews == 0


@pytest.mark.asyncio
async def test_review_sequence_follows_sm2_progression(session_factory, now) -> None:
    [card_id] = await _create_cards(session_factory, "learner", 1)
    orchestrator = _orchestrator(session_factory)

    async def review(quality: int):
        result = await orchestrator.process_review_batch("learner", [ReviewInput(card_id, quality)], now=now)
        return result.schedule[0]

    first = await review(5)
    second = await review(4)
    third = await review(5)

    assert (first.interval, second.interval, third.interval) == (1, 6, 16)
    assert third.ease_factor == pytest.approx(2.7)
    assert third.difficulty is Difficulty.EASY

    lapse = await review(1)
    state = await _state(session_factory, card_id, "learner")

    assert lapse.interval == 1
    assert lapse.ease_factor == pytest.approx(2.16)
    assert lapse.difficulty is Difficulty.HARD
    assert state.total_reviews == 4
    assert state.consecutive_correct == 0
    assert state.mastery is MasteryStatus.NEEDS_REVIEW


@pytest.mark.asyncio
async def test_neutral_quality_clears_mastery(session_factory, now) -> None:
    [card_id] = await _create_cards(session_factory, "learner", 1)
    orchestrator = _orchestrator(session_factory)

    await orchestrator.process_review_batch("learner", [ReviewInput(card_id, 5)], now=now)
    await orchestrator.process_review_batch("learner", [ReviewInput(card_id, 3)], now=now)

    state = await _state(session_factory, card_id, "learner")
    assert state.mastery is MasteryStatus.UNREVIEWED
    assert state.consecutive_correct == 2


@pytest.mark.asyncio
async def test_repeated_card_in_one_batch_sees_previous_write(session_factory, now) -> None:
    [card_id] = await _create_cards(session_factory, "learner", 1)

    result = await _orchestrator(session_factory).process_review_batch(
        "learner", [ReviewInput(card_id, 5), ReviewInput(card_id, 5)], now=now
    )

    assert [card.interval for card in result.schedule] == [1, 6]
    assert result.updated == 2


@pytest.mark.asyncio
async def test_batch_health_uses_sessions_and_due_counts(session_factory, now) -> None:
    reviewed, untouched = await _create_cards(session_factory, "learner", 2)
    async with session_factory() as session:
        async with session.begin():
            for day in range(6):
                await record_study_session(
                    session, "learner", score_percentage=90, completed_at=now - timedelta(days=day)
                )

    result = await _orchestrator(session_factory).process_review_batch(
        "learner", [ReviewInput(reviewed, 4)], now=now
    )

    assert result.session_health.score == 95
    assert result.session_health.status is HealthStatus.EXCELLENT
    assert result.session_health.cards_to_review_today == 1
    assert result.session_health.cards_to_review_this_week == 2


@pytest.mark.parametrize(
    ("user_id", "reviews"),
    [
        ("", [ReviewInput("card", 3)]),
        ("learner", []),
        ("learner", [ReviewInput("", 3)]),
    ],
)
@pytest.mark.asyncio
async def test_batch_rejects_missing_input(session_factory, user_id, reviews) -> None:
    with pytest.raises(InvalidInputError) as excinfo:
        await _orchestrator(session_factory).process_review_batch(user_id, reviews)

    assert excinfo.value.code == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_invalid_quality_rejects_whole_batch(session_factory, now) -> None:
    [card_id] = await _create_cards(session_factory, "learner", 1)

    with pytest.raises(InvalidQualityError):
        await _orchestrator(session_factory).process_review_batch(
            "learner", [ReviewInput(card_id, 4), ReviewInput(card_id, 7)], now=now
        )

    state = await _state(session_factory, card_id, "learner")
    assert state.total_reviews == 0


@pytest.mark.asyncio
async def test_persistence_error_only_fails_that_card(session_factory, now, monkeypatch) -> None:
    good_id, bad_id = await _create_cards(session_factory, "learner", 2)
    real_save = orchestrator_module.save_card_schedule

    async def flaky_save(session, flashcard_id, schedule):
        if flashcard_id == bad_id:
            raise OperationalError("UPDATE flashcards", {}, Exception("disk I/O error"))
        await real_save(session, flashcard_id, schedule)

    monkeypatch.setattr(orchestrator_module, "save_card_schedule", flaky_save)

    result = await _orchestrator(session_factory).process_review_batch(
        "learner", [ReviewInput(bad_id, 5), ReviewInput(good_id, 5)], now=now
    )

    assert [outcome.status for outcome in result.outcomes] == [OutcomeStatus.ERROR, OutcomeStatus.PROCESSED]
    assert result.updated == 1
    assert [card.card_id for card in result.schedule] == [good_id]
    assert (await _state(session_factory, bad_id, "learner")).total_reviews == 0


@pytest.mark.asyncio
async def test_health_inputs_degrade_to_empty_on_failure(session_factory, now, monkeypatch) -> None:
    [card_id] = await _create_cards(session_factory, "learner", 1)
    async with session_factory() as session:
        async with session.begin():
            await record_study_session(session, "learner", score_percentage=100, completed_at=now)

    async def broken_sessions(*args, **kwargs):
        raise OperationalError("SELECT study_sessions", {}, Exception("connection reset"))

    monkeypatch.setattr(orchestrator_module, "get_recent_sessions", broken_sessions)

    result = await _orchestrator(session_factory).process_review_batch(
        "learner", [ReviewInput(card_id, 5)], now=now
    )

    assert result.updated == 1
    assert result.session_health.score == 50
    assert result.session_health.status is HealthStatus.NEEDS_WORK
    assert result.session_health.cards_to_review_this_week == 1


async def _seed_overview(session_factory, now: datetime) -> dict[str, str]:
    offsets = {
        "new": None,
        "overdue": -timedelta(days=2),
        "earlier_today": -timedelta(hours=1),
        "upcoming": timedelta(days=3),
        "far": timedelta(days=30),
    }
    ids: dict[str, str] = {}
    async with session_factory() as session:
        async with session.begin():
            for name, offset in offsets.items():
                card = await create_flashcard(session, "learner", name, book_id="bio")
                card.next_review_at = None if offset is None else now + offset
                ids[name] = card.id
            other_book = await create_flashcard(session, "learner", "chem card", book_id="chem")
            ids["chem"] = other_book.id
    return ids


@pytest.mark.asyncio
async def test_get_schedule_groups_due_cards(session_factory, now) -> None:
    ids = await _seed_overview(session_factory, now)

    overview = await _orchestrator(session_factory).get_schedule("learner", book_id="bio", now=now)

    assert [card.id for card in overview.due_cards] == [ids["new"], ids["overdue"], ids["earlier_today"]]
    assert [card.id for card in overview.upcoming_cards] == [ids["upcoming"]]
    assert [card.id for card in overview.prioritized_cards.overdue] == [ids["overdue"], ids["earlier_today"]]
    assert [card.id for card in overview.prioritized_cards.due_today] == [ids["new"], ids["earlier_today"]]
    assert [card.id for card in overview.prioritized_cards.new_cards] == [ids["new"]]
    assert overview.difficulty_counts == {"easy": 0, "normal": 6, "hard": 0, "very_hard": 0}
    assert overview.session_health.cards_to_review_today == 3
    assert overview.session_health.cards_to_review_this_week == 4
    assert overview.study_recommendation == "2 cards are ready for review. Complete them to maintain your streak!"


@pytest.mark.asyncio
async def test_get_schedule_without_book_filter_includes_every_book(session_factory, now) -> None:
    ids = await _seed_overview(session_factory, now)

    overview = await _orchestrator(session_factory).get_schedule("learner", now=now)

    assert {card.id for card in overview.prioritized_cards.new_cards} == {ids["new"], ids["chem"]}


@pytest.mark.asyncio
async def test_get_schedule_propagates_due_card_failure(session_factory, now, monkeypatch) -> None:
    async def broken(*args, **kwargs):
        raise OperationalError("SELECT flashcards", {}, Exception("timeout"))

    monkeypatch.setattr(orchestrator_module, "list_due_cards", broken)

    with pytest.raises(OperationalError):
        await _orchestrator(session_factory).get_schedule("learner", now=now)


@pytest.mark.asyncio
async def test_get_schedule_degrades_auxiliary_reads(session_factory, now, monkeypatch) -> None:
    await _seed_overview(session_factory, now)

    async def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("timeout"))

    monkeypatch.setattr(orchestrator_module, "list_upcoming_cards", broken)
    monkeypatch.setattr(orchestrator_module, "count_cards_by_difficulty", broken)

    overview = await _orchestrator(session_factory).get_schedule("learner", now=now)

    assert overview.upcoming_cards == []
    assert overview.difficulty_counts == {"easy": 0, "normal": 0, "hard": 0, "very_hard": 0}
    assert len(overview.due_cards) == 4


@pytest.mark.asyncio
async def test_get_study_sessions_returns_newest_first(session_factory, now) -> None:
    async with session_factory() as session:
        async with session.begin():
            await record_study_session(session, "learner", 60, completed_at=now - timedelta(days=1))
            await record_study_session(session, "learner", 80, completed_at=now)

    sessions = await _orchestrator(session_factory).get_study_sessions("learner", limit=5)

    assert [row.score_percentage for row in sessions] == [80, 60]


def _card(card_id: str, next_review_at) -> CardSummary:
    return CardSummary(
        id=card_id,
        question="q",
        topic="t",
        book_id=None,
        difficulty="normal",
        next_review_at=next_review_at,
        ease_factor=2.5,
        interval_days=1,
        consecutive_correct=0,
    )


def _health(status: HealthStatus) -> SessionHealth:
    return SessionHealth(
        score=60, status=status, recommendation="", cards_to_review_today=0, cards_to_review_this_week=0
    )


def test_prioritize_cards_uses_local_day(now) -> None:
    tokyo = timezone(timedelta(hours=9))
    # 15:30 UTC is 00:30 on the 11th in Tokyo, so 14:00 UTC belongs to the previous local day.
    cards = [_card("a", now - timedelta(hours=1, minutes=30)), _card("b", now - timedelta(minutes=10))]

    prioritized = prioritize_cards(cards, now, tokyo)

    assert [card.id for card in prioritized.overdue] == ["a", "b"]
    assert [card.id for card in prioritized.due_today] == ["b"]


def test_recommendation_prefers_struggling_status() -> None:
    prioritized = PrioritizedCards(overdue=[_card(str(i), None) for i in range(30)])

    text = build_study_recommendation(prioritized, {"hard": 40}, _health(HealthStatus.STRUGGLING))

    assert text == "Start small! Review just 5-10 cards to get back into the groove."


def test_recommendation_chain_order() -> None:
    health = _health(HealthStatus.NEEDS_WORK)
    many_overdue = PrioritizedCards(overdue=[_card(str(i), None) for i in range(11)])
    some_due = PrioritizedCards(due_today=[_card("a", None), _card("b", None)])
    only_new = PrioritizedCards(new_cards=[_card("n", None)])

    assert build_study_recommendation(many_overdue, {}, health) == (
        "You have 11 overdue cards. Tackle them first to stay on track!"
    )
    assert build_study_recommendation(some_due, {"hard": 15, "very_hard": 6}, health) == (
        "You have 21 difficult cards. Focus on mastering these with shorter intervals."
    )
    assert build_study_recommendation(some_due, {"hard": 20}, health) == (
        "2 cards are ready for review. Complete them to maintain your streak!"
    )
    assert build_study_recommendation(only_new, {}, health) == (
        "Great progress! You have 1 new cards to explore."
    )
    assert build_study_recommendation(PrioritizedCards(), {}, health) == (
        "All caught up! Check back later for more reviews."
    )
