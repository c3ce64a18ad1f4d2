"""Error taxonomy shared by the audit pipeline."""

from __future__ import annotations

import re
from enum import Enum


class CancelReason(str, Enum):
    EXTERNAL = "external"
    PAUSE = "pause"


class AuditError(Exception):
    """Base class for audit pipeline failures."""


class AuditCancelledError(AuditError):
    """Raised when an attempt or the whole session is cancelled.

    ``reason`` distinguishes a user/session cancellation (never retried) from a
    pause-triggered cancellation of a single in-flight attempt.
    """

    def __init__(self, reason: CancelReason = CancelReason.EXTERNAL, message: str | None = None):
        self.reason = CancelReason(reason)
        super().__init__(message or f"audit cancelled ({self.reason.value})")

    @property
    def pause_triggered(self) -> bool:
        return self.reason is CancelReason.PAUSE


class PageFailure(AuditError):
    """Snapshot or navigation failure for a single page."""

    def __init__(self, message: str, *, diagnostics: str | None = None):
        self.message = message
        self.diagnostics = diagnostics
        super().__init__(message)


class ReviewerError(AuditError):
    """Non-retryable failure reported by the AI reviewer."""


class RetryableReviewerError(ReviewerError):
    """Timeout or stall shaped reviewer failure."""


class ResumeIncompatibilityError(AuditError):
    """A resume checkpoint does not match the current run."""


_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_DIAGNOSTIC_TAIL_LINES = 3
_DIAGNOSTIC_TAIL_CHARS = 240
_SELF_DESCRIBING_MARKERS = ("(", "mcp:", "ERROR")


def format_page_failure(error: BaseException | str | None) -> str:
    """Render a page failure as a one-line note for every criterion row."""
    if error is None:
        return "Page load failed."
    if isinstance(error, str):
        return f"Page load failed: {error}"

    message = str(getattr(error, "message", None) or error) or error.__class__.__name__
    summary = f"Page load failed: {message}"
    diagnostics = getattr(error, "diagnostics", None)
    if not diagnostics or any(marker in message for marker in _SELF_DESCRIBING_MARKERS):
        return summary

    tail = _diagnostic_tail(str(diagnostics))
    if not tail:
        return summary
    return f"{summary} ({tail})"


def _diagnostic_tail(text: str) -> str:
    lines = [_ANSI_RE.sub("", line).strip() for line in text.splitlines()]
    lines = [line for line in lines if line]
    tail = " | ".join(lines[-_DIAGNOSTIC_TAIL_LINES:])
    if len(tail) > _DIAGNOSTIC_TAIL_CHARS:
        tail = tail[: _DIAGNOSTIC_TAIL_CHARS - 1] + "…"
    return tail


__all__ = [
    "AuditCancelledError",
    "AuditError",
    "CancelReason",
    "PageFailure",
    "ResumeIncompatibilityError",
    "RetryableReviewerError",
    "ReviewerError",
    "format_page_failure",
]
