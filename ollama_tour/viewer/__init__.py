"""Local web viewer for saved tour reports."""

from .app import create_app

__all__ = ["create_app"]
