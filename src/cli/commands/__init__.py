"""CLI commands."""

__all__ = ["audit"]

from . import audit
