"""Core configuration, errors and shared utilities."""

from dotenv import load_dotenv

from .config import AuditConfig, Settings, build_audit_config, get_settings
from .errors import (
    AuditCancelledError,
    AuditError,
    CancelReason,
    PageFailure,
    ResumeIncompatibilityError,
    RetryableReviewerError,
    ReviewerError,
)

load_dotenv()

__all__ = [
    "AuditCancelledError",
    "AuditConfig",
    "AuditError",
    "CancelReason",
    "PageFailure",
    "ResumeIncompatibilityError",
    "RetryableReviewerError",
    "ReviewerError",
    "Settings",
    "build_audit_config",
    "get_settings",
]
