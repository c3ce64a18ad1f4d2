from __future__ import annotations

import pytest

from audit_fakes import make_criteria
from pipelines.audit.summary import (
    GlobalSummaryComputer,
    compute_error_summary,
    compute_global_summary,
    fold_statuses,
    score_from_counts,
)
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_ERROR,
    STATUS_NON_APPLICABLE,
    STATUS_NOT_CONFORM,
    STATUS_REVIEW,
    CriterionResult,
    Evaluation,
    PageResult,
)
from schemas.internal.summary import StatusCounts

C, NC, NA = STATUS_CONFORM, STATUS_NOT_CONFORM, STATUS_NON_APPLICABLE
ERR, REV = STATUS_ERROR, STATUS_REVIEW


@pytest.mark.parametrize(
    ("statuses", "expected"),
    [
        ([NA, NA], NA),
        ([], NA),
        ([C, NA], C),
        ([C, REV], REV),
        ([REV, NC, C], NC),
        ([NC, ERR], ERR),
        ([NA, ERR], ERR),
    ],
)
def test_fold_statuses(statuses, expected) -> None:
    assert fold_statuses(statuses) == expected


def test_score_is_zero_without_decisive_criteria() -> None:
    assert score_from_counts(StatusCounts(non_applicable=3, review=1)) == 0.0
    assert score_from_counts(StatusCounts(conform=3, not_conform=1)) == 0.75


def _page(url, statuses, *, snapshot=True, ai=()):
    criteria = make_criteria(*statuses)
    return PageResult(
        url=url,
        snapshot={"url": url} if snapshot else None,
        results=[
            CriterionResult(
                criterion=c,
                evaluation=Evaluation(status=statuses[c.id], ai_candidate=c.id in ai),
            )
            for c in criteria
        ],
    )


def test_global_summary_folds_pages_and_counts() -> None:
    criteria = make_criteria("1.1", "1.2", "1.3")
    pages = [
        _page("a", {"1.1": C, "1.2": NA, "1.3": C}),
        _page("b", {"1.1": NC, "1.2": NA, "1.3": C}),
    ]

    summary = compute_global_summary(pages, criteria)

    assert summary.status_by_id() == {"1.1": NC, "1.2": NA, "1.3": C}
    assert summary.criteria[0].page_statuses == [C, NC]
    assert (summary.counts.conform, summary.counts.not_conform, summary.counts.non_applicable) == (1, 1, 1)
    assert summary.score == 0.5


def test_missing_page_result_counts_as_error() -> None:
    criteria = make_criteria("1.1", "9.9")
    summary = compute_global_summary([_page("a", {"1.1": C})], criteria)

    assert summary.status_by_id()["9.9"] == ERR


def test_global_summary_is_pure() -> None:
    criteria = make_criteria("1.1", "1.2")
    pages = [_page("a", {"1.1": C, "1.2": REV})]
    computer = GlobalSummaryComputer()

    assert computer(pages, criteria) == computer(pages, criteria)
    assert pages[0].status_of("1.2") == REV


def test_error_summary() -> None:
    pages = [
        _page("a", {"1.1": ERR, "1.2": ERR}, snapshot=False),
        _page("b", {"1.1": C, "1.2": ERR}, ai=("1.2",)),
    ]

    errors = compute_error_summary(pages)

    assert (errors.pages_failed, errors.ai_failed, errors.criteria_errored) == (1, 1, 3)
    assert errors.has_errors
    assert not compute_error_summary([_page("c", {"1.1": C})]).has_errors
