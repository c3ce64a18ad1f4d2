"""Internal schema definitions."""

from .criteria import CriteriaSet, Criterion, Theme  # noqa: F401
from .evaluations import (  # noqa: F401
    AIReview,
    CriterionResult,
    CriterionStatus,
    CrossPageEvidence,
    Evaluation,
    PageMeta,
    PageResult,
    ReviewHit,
)
from .resume import RESUME_STATE_VERSION, ResumeState  # noqa: F401
from .summary import (  # noqa: F401
    ErrorSummary,
    GlobalCriterionStatus,
    GlobalSummary,
    StatusCounts,
)

__all__ = [
    "AIReview",
    "CriteriaSet",
    "Criterion",
    "CriterionResult",
    "CriterionStatus",
    "CrossPageEvidence",
    "ErrorSummary",
    "Evaluation",
    "GlobalCriterionStatus",
    "GlobalSummary",
    "PageMeta",
    "PageResult",
    "RESUME_STATE_VERSION",
    "ResumeState",
    "ReviewHit",
    "StatusCounts",
    "Theme",
]
