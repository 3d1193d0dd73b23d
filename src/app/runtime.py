"""Bootstrap logic for running the scheduler HTTP service."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from src.api import create_app
from src.app.settings import AppSettings
from src.db import get_session_factory, run_migrations_if_needed
from src.scheduler import ScheduleOrchestrator


LOGGER = logging.getLogger(__name__)


def _configure_logging(log_level: str) -> None:
    """Set up project-wide logging configuration."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        level=log_level,
    )


def build_service(settings: AppSettings) -> FastAPI:
    """Wire the orchestrator to the database and wrap it in the HTTP app."""
    orchestrator = ScheduleOrchestrator(
        get_session_factory(),
        session_history_limit=settings.session_history_limit,
        card_list_limit=settings.schedule_card_limit,
        tz=settings.timezone,
    )
    return create_app(orchestrator, title=settings.app_name)


def run_server(settings: AppSettings) -> None:
    """Start the HTTP service using the provided settings."""
    _configure_logging(settings.log_level)
    print(f"{settings.app_name} is running in {settings.app_env} mode.")

    try:
        run_migrations_if_needed()
    except Exception:
        LOGGER.exception("Database migrations failed. Aborting startup.")
        raise

    app = build_service(settings)

    LOGGER.info(
        "Starting %s in %s mode on %s:%s.", settings.app_name, settings.app_env, settings.host, settings.port
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
