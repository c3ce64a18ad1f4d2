"""Per-criterion evaluation and per-page result contracts."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from schemas.internal.criteria import Criterion

CriterionStatus = Literal["Conform", "Not conform", "Non applicable", "Error", "Review"]

STATUS_CONFORM: CriterionStatus = "Conform"
STATUS_NOT_CONFORM: CriterionStatus = "Not conform"
STATUS_NON_APPLICABLE: CriterionStatus = "Non applicable"
STATUS_ERROR: CriterionStatus = "Error"
STATUS_REVIEW: CriterionStatus = "Review"

ALL_STATUSES: tuple[CriterionStatus, ...] = (
    STATUS_CONFORM,
    STATUS_NOT_CONFORM,
    STATUS_NON_APPLICABLE,
    STATUS_ERROR,
    STATUS_REVIEW,
)

_STATUS_ALIASES: Dict[str, CriterionStatus] = {
    "c": STATUS_CONFORM,
    "conform": STATUS_CONFORM,
    "conforme": STATUS_CONFORM,
    "nc": STATUS_NOT_CONFORM,
    "not conform": STATUS_NOT_CONFORM,
    "not_conform": STATUS_NOT_CONFORM,
    "non conforme": STATUS_NOT_CONFORM,
    "na": STATUS_NON_APPLICABLE,
    "non applicable": STATUS_NON_APPLICABLE,
    "not applicable": STATUS_NON_APPLICABLE,
    "non_applicable": STATUS_NON_APPLICABLE,
    "error": STATUS_ERROR,
    "err": STATUS_ERROR,
    "review": STATUS_REVIEW,
    "ai review": STATUS_REVIEW,
    "needs review": STATUS_REVIEW,
}


def normalize_status(value: object) -> CriterionStatus:
    """Map loose status spellings onto the canonical status strings."""
    token = " ".join(str(value or "").replace("-", " ").split()).lower()
    status = _STATUS_ALIASES.get(token)
    if status is None:
        raise ValueError(f"Unknown criterion status: {value!r}")
    return status


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class AIReview(_CamelModel):
    confidence: float = Field(default=0.0, ge=0, le=1)
    rationale: str = ""
    evidence: List[str] = Field(default_factory=list)


class Evaluation(_CamelModel):
    """Outcome for one criterion on one page."""

    status: CriterionStatus
    notes: str = ""
    examples: List[str] = Field(default_factory=list)
    ai: Optional[AIReview] = None
    automated: bool = False
    ai_candidate: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if isinstance(value, str) and value not in ALL_STATUSES:
            return normalize_status(value)
        return value


class CriterionResult(_CamelModel):
    """A criterion identity paired with its evaluation."""

    criterion: Criterion
    evaluation: Evaluation

    @property
    def status(self) -> CriterionStatus:
        return self.evaluation.status


class PageResult(_CamelModel):
    url: str
    snapshot: Optional[Dict[str, Any]] = None
    results: List[CriterionResult]

    def status_of(self, criterion_id: str) -> Optional[CriterionStatus]:
        for result in self.results:
            if result.criterion.id == criterion_id:
                return result.status
        return None

    def replace_evaluation(self, criterion_id: str, evaluation: Evaluation) -> bool:
        for index, result in enumerate(self.results):
            if result.criterion.id == criterion_id:
                self.results[index] = CriterionResult(
                    criterion=result.criterion, evaluation=evaluation
                )
                return True
        return False


class ReviewHit(BaseModel):
    """One reviewer verdict, as returned by the batch, single or cross-page endpoints."""

    criterion_id: str
    status: CriterionStatus
    confidence: float = Field(default=0.0, ge=0, le=1)
    rationale: str = ""
    evidence: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        return normalize_status(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: object) -> object:
        if value is None:
            return 0.0
        try:
            return min(1.0, max(0.0, float(value)))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0

    @field_validator("evidence", mode="before")
    @classmethod
    def _coerce_evidence(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        if isinstance(value, list):
            return [str(item) for item in value if str(item).strip()]
        return value


class PageMeta(_CamelModel):
    title: str = ""
    lang: str = ""


class CrossPageEvidence(_CamelModel):
    """Facts about one page needed by multi-page criteria."""

    url: str
    title: str = ""
    has_search: bool = False
    navigation_landmarks: int = 0
    sitemap_links: List[str] = Field(default_factory=list)
    navigation_links: List[str] = Field(default_factory=list)


__all__ = [
    "AIReview",
    "ALL_STATUSES",
    "CriterionResult",
    "CriterionStatus",
    "CrossPageEvidence",
    "Evaluation",
    "PageMeta",
    "PageResult",
    "ReviewHit",
    "STATUS_CONFORM",
    "STATUS_ERROR",
    "STATUS_NON_APPLICABLE",
    "STATUS_NOT_CONFORM",
    "STATUS_REVIEW",
    "normalize_status",
]
