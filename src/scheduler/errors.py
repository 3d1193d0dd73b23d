"""Exceptions raised by the scheduling core."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for scheduling failures surfaced to callers."""

    code = "SCHEDULER_ERROR"


class InvalidInputError(SchedulerError):
    """The request is missing required fields or carries malformed values."""

    code = "INVALID_INPUT"


class InvalidQualityError(InvalidInputError, ValueError):
    """A review quality rating outside the 0-5 range."""

    def __init__(self, quality: object) -> None:
        super().__init__(f"Review quality must be an integer between 0 and 5, got {quality!r}.")
        self.quality = quality
