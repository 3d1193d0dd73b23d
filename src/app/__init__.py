"""Application bootstrap helpers for the Study Scheduler project."""

from .runtime import build_service, run_server
from .settings import AppSettings

__all__ = ["build_service", "run_server", "AppSettings"]
