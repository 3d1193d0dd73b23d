"""Configuration helpers for the Study Scheduler runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DEFAULT_PORT = 8000
DEFAULT_SESSION_HISTORY_LIMIT = 10
DEFAULT_SCHEDULE_CARD_LIMIT = 50


def _read_int(name: str, default: int, *, minimum: int, maximum: Optional[int] = None) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError as exc:  # pragma: no cover - defensive parsing
        raise RuntimeError(f"{name} must be an integer.") from exc
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise RuntimeError(f"{name} must be {bounds}.")
    return value


@dataclass(frozen=True)
class AppSettings:
    """Strongly typed application settings loaded from environment variables."""

    app_name: str
    app_env: str
    log_level: str
    host: str
    port: int
    session_history_limit: int
    schedule_card_limit: int
    timezone_name: Optional[str]

    @property
    def timezone(self) -> Optional[tzinfo]:
        """Timezone used to normalise review dates; ``None`` means the server's local zone."""
        if not self.timezone_name:
            return None
        return ZoneInfo(self.timezone_name)

    @classmethod
    def from_env(cls) -> AppSettings:
        """Construct settings directly from environment variables."""
        app_name = os.getenv("APP_NAME", "Study Scheduler")
        app_env = os.getenv("APP_ENV", "development")
        log_level = os.getenv("LOG_LEVEL", "INFO")
        host = os.getenv("HOST", "127.0.0.1")
        port = _read_int("PORT", DEFAULT_PORT, minimum=1, maximum=65535)

        session_history_limit = _read_int(
            "SESSION_HISTORY_LIMIT", DEFAULT_SESSION_HISTORY_LIMIT, minimum=1, maximum=100
        )
        schedule_card_limit = _read_int(
            "SCHEDULE_CARD_LIMIT", DEFAULT_SCHEDULE_CARD_LIMIT, minimum=1, maximum=500
        )

        timezone_name = os.getenv("SCHEDULER_TIMEZONE") or None
        if timezone_name:
            try:
                ZoneInfo(timezone_name)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise RuntimeError(f"SCHEDULER_TIMEZONE {timezone_name!r} is not a known timezone.") from exc

        return cls(
            app_name=app_name,
            app_env=app_env,
            log_level=log_level,
            host=host,
            port=port,
            session_history_limit=session_history_limit,
            schedule_card_limit=schedule_card_limit,
            timezone_name=timezone_name,
        )
