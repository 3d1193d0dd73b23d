"""HTTP interface for the Study Scheduler service."""

from .server import create_app

__all__ = ["create_app"]
