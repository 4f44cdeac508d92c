"""HTTP API for the booking engine."""

from .routes import create_app

__all__ = ["create_app"]
