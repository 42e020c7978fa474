"""HTTP surface for the task hierarchy service."""

from .app import create_app

__all__ = ["create_app"]
