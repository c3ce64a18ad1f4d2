"""Global summary contracts."""

from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import CriterionStatus


class StatusCounts(BaseModel):
    conform: int = 0
    not_conform: int = 0
    non_applicable: int = 0
    error: int = 0
    review: int = 0

    model_config = ConfigDict(extra="forbid")

    @property
    def total(self) -> int:
        return (
            self.conform + self.not_conform + self.non_applicable + self.error + self.review
        )


class GlobalCriterionStatus(BaseModel):
    criterion: Criterion
    status: CriterionStatus
    page_statuses: List[CriterionStatus] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class GlobalSummary(BaseModel):
    """Folded per-criterion verdicts plus the aggregate score."""

    criteria: List[GlobalCriterionStatus] = Field(default_factory=list)
    counts: StatusCounts = Field(default_factory=StatusCounts)
    score: float = 0.0

    model_config = ConfigDict(extra="forbid")

    def status_by_id(self) -> Dict[str, CriterionStatus]:
        return {item.criterion.id: item.status for item in self.criteria}


class ErrorSummary(BaseModel):
    pages_failed: int = 0
    ai_failed: int = 0
    criteria_errored: int = 0

    model_config = ConfigDict(extra="forbid")

    @property
    def has_errors(self) -> bool:
        return bool(self.pages_failed or self.ai_failed or self.criteria_errored)


__all__ = ["ErrorSummary", "GlobalCriterionStatus", "GlobalSummary", "StatusCounts"]
