"""Spaced-repetition scheduling core for the Study Scheduler service."""

from .health import HealthStatus, SessionHealth, analyze_session_health
from .orchestrator import ReviewInput, ScheduleOrchestrator
from .srs import calculate_next_review, classify_difficulty, derive_mastery

__all__ = [
    "HealthStatus",
    "ReviewInput",
    "ScheduleOrchestrator",
    "SessionHealth",
    "analyze_session_health",
    "calculate_next_review",
    "classify_difficulty",
    "derive_mastery",
]
