"""FastAPI application exposing the review scheduler."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api.schemas import (
    HealthResponse,
    ReviewBatchRequest,
    ReviewBatchResponse,
    ScheduleResponse,
    StudySessionModel,
    StudySessionsResponse,
)
from src.consts import VERSION
from src.scheduler.errors import InvalidInputError
from src.scheduler.orchestrator import ReviewInput, ScheduleOrchestrator


LOGGER = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    LOGGER.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
    return _error(400, "Invalid request payload")


def get_orchestrator(request: Request) -> ScheduleOrchestrator:
    return request.app.state.orchestrator


def create_app(orchestrator: ScheduleOrchestrator, *, title: str = "Study Scheduler") -> FastAPI:
    """Build the HTTP application around an already configured orchestrator."""
    app = FastAPI(
        title=title,
        description="Spaced-repetition scheduling and study session health.",
        version=VERSION,
    )
    app.state.orchestrator = orchestrator
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(status="ok", version=VERSION)

    @app.post("/api/scheduler", response_model=ReviewBatchResponse)
    async def update_schedules(
        req: ReviewBatchRequest,
        orchestrator: ScheduleOrchestrator = Depends(get_orchestrator),
    ):
        """Apply review ratings from a finished study session."""
        if not req.userId or not req.reviews:
            return _error(400, "User ID and reviews are required")

        reviews = [ReviewInput(flashcard_id=item.flashcardId, quality=item.quality) for item in req.reviews]
        try:
            result = await orchestrator.process_review_batch(req.userId, reviews)
        except InvalidInputError as exc:
            return _error(400, str(exc))
        except Exception:
            LOGGER.exception("Error updating card schedules for user %s.", req.userId)
            return _error(500, "Failed to update schedules")

        return ReviewBatchResponse.from_result(result)

    @app.get("/api/scheduler", response_model=ScheduleResponse)
    async def get_schedule(
        userId: Optional[str] = None,
        bookId: Optional[str] = None,
        orchestrator: ScheduleOrchestrator = Depends(get_orchestrator),
    ):
        """Return due cards, upcoming cards and a study recommendation."""
        if not userId:
            return _error(400, "User ID is required")

        try:
            overview = await orchestrator.get_schedule(userId, book_id=bookId or None)
        except Exception:
            LOGGER.exception("Error fetching schedule for user %s.", userId)
            return _error(500, "Failed to fetch schedule")

        return ScheduleResponse.from_overview(overview)

    @app.get("/api/study-sessions", response_model=StudySessionsResponse)
    async def get_study_sessions(
        userId: Optional[str] = None,
        limit: int = Query(10, ge=1, le=100),
        bookId: Optional[str] = None,
        orchestrator: ScheduleOrchestrator = Depends(get_orchestrator),
    ):
        if not userId:
            return _error(400, "User ID is required")

        try:
            sessions = await orchestrator.get_study_sessions(userId, limit=limit, book_id=bookId or None)
        except Exception:
            LOGGER.exception("Error fetching study sessions for user %s.", userId)
            return _error(500, "Failed to fetch study sessions")

        return StudySessionsResponse(
            sessions=[StudySessionModel.from_details(details) for details in sessions],
            count=len(sessions),
        )

    return app
