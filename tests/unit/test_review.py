from __future__ import annotations

import pytest

from audit_fakes import FakeReviewer, make_criteria
from core.errors import ReviewerError
from pipelines.audit.cancellation import AbortCoordinator, CancellationToken
from pipelines.audit.retry import RetryWithPause
from pipelines.audit.review import (
    BatchReviewRunner,
    ReviewRetryQueue,
    chunked,
    hit_to_evaluation,
)
from pipelines.audit.slots import ResultSlots
from rgaa.i18n import get_translator
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_ERROR,
    STATUS_NOT_CONFORM,
    STATUS_REVIEW,
    ReviewHit,
)

pytestmark = pytest.mark.anyio

URL = "https://a.test/"


def _retry() -> RetryWithPause:
    return RetryWithPause(AbortCoordinator(CancellationToken()))


def test_chunked_keeps_order_and_sizes() -> None:
    criteria = make_criteria("1.1", "1.2", "1.3", "1.4", "1.5")

    chunks = chunked(criteria, 2)

    assert [[c.id for c in chunk] for chunk in chunks] == [["1.1", "1.2"], ["1.3", "1.4"], ["1.5"]]
    with pytest.raises(ValueError):
        chunked(criteria, 0)


def test_hit_to_evaluation_formats_note_and_examples() -> None:
    hit = ReviewHit(
        criterion_id="3.1",
        status="Not conform",
        confidence=0.824,
        rationale="Colour only",
        evidence=["a", "b", "c", "d"],
    )

    evaluation = hit_to_evaluation(hit, get_translator("en"))

    assert evaluation.notes == "AI review (0.82): Colour only"
    assert evaluation.examples == ["a", "b", "c"]
    assert evaluation.ai is not None and evaluation.ai.evidence == ["a", "b", "c", "d"]
    assert evaluation.ai_candidate is True


async def test_batches_then_fallback_for_missing_hits() -> None:
    criteria = make_criteria("3.1", "3.2", "3.3")
    reviewer = FakeReviewer({"3.1": STATUS_NOT_CONFORM}, omit=["3.2"])
    slots = ResultSlots(URL, criteria)
    runner = BatchReviewRunner(reviewer, _retry(), batch_size=2)
    queue = ReviewRetryQueue(reviewer, _retry())

    hits = await runner.run_batches(slots, criteria, {}, url=URL, review_queue=queue)
    unresolved = [c for c in criteria if c.id not in hits]
    await runner.run_fallback(slots, unresolved, {}, url=URL, review_queue=queue)

    assert reviewer.batch_calls == [["3.1", "3.2"], ["3.3"]]
    assert reviewer.one_calls == [("3.2", False)]
    assert slots.get("3.1").status == STATUS_NOT_CONFORM
    assert slots.get("3.2").status == STATUS_CONFORM
    assert slots.reported_count == 3


async def test_failed_batch_is_reported_and_skipped() -> None:
    criteria = make_criteria("3.1", "3.2")
    reviewer = FakeReviewer(batch_error=lambda: ReviewerError("bad reply"))
    errors: list[str] = []

    class Reporter:
        def on_error(self, message, error=None):
            errors.append(message)

    runner = BatchReviewRunner(reviewer, _retry(), batch_size=6, reporter=Reporter())
    slots = ResultSlots(URL, criteria)

    hits = await runner.run_batches(
        slots, criteria, {}, url=URL, review_queue=ReviewRetryQueue(reviewer, _retry())
    )

    assert hits == {}
    assert len(errors) == 1 and "bad reply" in errors[0]
    assert slots.reported_count == 0


async def test_fallback_failure_becomes_error_row() -> None:
    criteria = make_criteria("3.1")
    reviewer = FakeReviewer(one_error=lambda: ReviewerError("model refused"))
    slots = ResultSlots(URL, criteria)
    runner = BatchReviewRunner(reviewer, _retry(), batch_size=6, lang="en")

    await runner.run_fallback(
        slots, criteria, {}, url=URL, review_queue=ReviewRetryQueue(reviewer, _retry())
    )

    evaluation = slots.get("3.1")
    assert evaluation.status == STATUS_ERROR
    assert evaluation.notes.startswith("AI review failed: ")
    assert evaluation.ai_candidate is True


async def test_review_results_get_exactly_one_retry() -> None:
    criteria = make_criteria("3.1", "3.2")
    reviewer = FakeReviewer(
        {"3.1": STATUS_REVIEW, "3.2": STATUS_REVIEW},
        retry_statuses={"3.1": STATUS_CONFORM},
    )
    reported: list[tuple[str, str]] = []
    slots = ResultSlots(URL, criteria, on_report=lambda u, c, e: reported.append((c.id, e.status)))
    queue = ReviewRetryQueue(reviewer, _retry())
    runner = BatchReviewRunner(reviewer, _retry(), batch_size=6)

    await runner.run_batches(slots, criteria, {}, url=URL, review_queue=queue)
    assert queue.criteria == criteria
    await queue.drain(slots, {}, url=URL)

    assert reviewer.one_calls == [("3.1", True), ("3.2", True)]
    assert slots.get("3.1").status == STATUS_CONFORM
    assert slots.get("3.2").status == STATUS_REVIEW
    assert reported == [("3.1", STATUS_REVIEW), ("3.2", STATUS_REVIEW)]
    assert len(queue) == 0


async def test_retry_queue_deduplicates() -> None:
    reviewer = FakeReviewer()
    queue = ReviewRetryQueue(reviewer, _retry())
    criterion = make_criteria("3.1")[0]

    assert queue.add(criterion) is True
    assert queue.add(criterion) is False
    assert len(queue) == 1
