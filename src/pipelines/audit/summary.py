"""Fold per-page statuses into global verdicts and compute the score."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_ERROR,
    STATUS_NON_APPLICABLE,
    STATUS_NOT_CONFORM,
    STATUS_REVIEW,
    CriterionStatus,
    PageResult,
)
from schemas.internal.summary import (
    ErrorSummary,
    GlobalCriterionStatus,
    GlobalSummary,
    StatusCounts,
)

_COUNT_FIELDS: Dict[str, str] = {
    STATUS_CONFORM: "conform",
    STATUS_NOT_CONFORM: "not_conform",
    STATUS_NON_APPLICABLE: "non_applicable",
    STATUS_ERROR: "error",
    STATUS_REVIEW: "review",
}


def fold_statuses(statuses: Iterable[CriterionStatus]) -> CriterionStatus:
    """NA if all NA; else Error > Not conform > Review > Conform."""
    values = list(statuses)
    if not values or all(status == STATUS_NON_APPLICABLE for status in values):
        return STATUS_NON_APPLICABLE
    for status in (STATUS_ERROR, STATUS_NOT_CONFORM, STATUS_REVIEW):
        if status in values:
            return status
    return STATUS_CONFORM


def score_from_counts(counts: StatusCounts) -> float:
    denominator = counts.conform + counts.not_conform
    if denominator == 0:
        return 0.0
    return counts.conform / denominator


def count_statuses(statuses: Iterable[CriterionStatus]) -> StatusCounts:
    totals = {field: 0 for field in _COUNT_FIELDS.values()}
    for status in statuses:
        totals[_COUNT_FIELDS[status]] += 1
    return StatusCounts(**totals)


def compute_global_summary(
    page_results: Sequence[PageResult], criteria: Sequence[Criterion]
) -> GlobalSummary:
    """Pure: the same inputs always give an equal summary."""
    per_criterion: List[GlobalCriterionStatus] = []
    for criterion in criteria:
        page_statuses: List[CriterionStatus] = [
            page.status_of(criterion.id) or STATUS_ERROR for page in page_results
        ]
        per_criterion.append(
            GlobalCriterionStatus(
                criterion=criterion,
                status=fold_statuses(page_statuses),
                page_statuses=page_statuses,
            )
        )
    counts = count_statuses(item.status for item in per_criterion)
    return GlobalSummary(criteria=per_criterion, counts=counts, score=score_from_counts(counts))


def compute_error_summary(page_results: Sequence[PageResult]) -> ErrorSummary:
    pages_failed = 0
    ai_failed = 0
    criteria_errored = 0
    for page in page_results:
        if page.snapshot is None:
            pages_failed += 1
        for result in page.results:
            if result.evaluation.status != STATUS_ERROR:
                continue
            criteria_errored += 1
            if result.evaluation.ai_candidate:
                ai_failed += 1
    return ErrorSummary(
        pages_failed=pages_failed, ai_failed=ai_failed, criteria_errored=criteria_errored
    )


class GlobalSummaryComputer:
    """Callable form of compute_global_summary."""

    def __call__(
        self, page_results: Sequence[PageResult], criteria: Sequence[Criterion]
    ) -> GlobalSummary:
        return compute_global_summary(page_results, criteria)


__all__ = [
    "GlobalSummaryComputer",
    "compute_error_summary",
    "compute_global_summary",
    "count_statuses",
    "fold_statuses",
    "score_from_counts",
]
