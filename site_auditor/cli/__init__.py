"""Command line interface for the site auditor."""

from .main import app

__all__ = ["app"]
