"""Batched AI review with per-criterion fallback and a single review retry."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.errors import AuditCancelledError
from pipelines.audit.cancellation import CancellationToken
from pipelines.audit.contracts import AIReviewer, TerminalReporter
from pipelines.audit.retry import RetryWithPause
from pipelines.audit.slots import ResultSlots
from rgaa.i18n import Translator, get_translator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_ERROR,
    STATUS_REVIEW,
    AIReview,
    Evaluation,
    ReviewHit,
)

logger = logging.getLogger(__name__)

_MAX_EXAMPLES = 3


def hit_to_evaluation(hit: ReviewHit, i18n: Translator) -> Evaluation:
    """Turn a reviewer verdict into a slot value."""
    return Evaluation(
        status=hit.status,
        notes=i18n.ai_note(hit.confidence, hit.rationale),
        examples=hit.evidence[:_MAX_EXAMPLES],
        ai=AIReview(confidence=hit.confidence, rationale=hit.rationale, evidence=hit.evidence),
        automated=False,
        ai_candidate=True,
    )


def review_failure(error: BaseException, i18n: Translator) -> Evaluation:
    return Evaluation(status=STATUS_ERROR, notes=f"{i18n.ai_failed()}: {error}", ai_candidate=True)


def chunked(items: Sequence[Criterion], size: int) -> List[List[Criterion]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [list(items[start : start + size]) for start in range(0, len(items), size)]


class ReviewRetryQueue:
    """Criteria left at Review after the main pass get exactly one more call."""

    def __init__(
        self,
        reviewer: AIReviewer,
        retry: RetryWithPause,
        *,
        lang: str = "fr",
    ) -> None:
        self._reviewer = reviewer
        self._retry = retry
        self._i18n = get_translator(lang)
        self._queue: List[Criterion] = []
        self._queued: set[str] = set()

    def __len__(self) -> int:
        return len(self._queue)

    def add(self, criterion: Criterion) -> bool:
        if criterion.id in self._queued:
            return False
        self._queued.add(criterion.id)
        self._queue.append(criterion)
        return True

    @property
    def criteria(self) -> List[Criterion]:
        return list(self._queue)

    async def drain(self, slots: ResultSlots, snapshot: Mapping[str, Any], *, url: str) -> int:
        """Overwrite each queued slot with the retry's outcome, whatever it is."""
        processed = 0
        while self._queue:
            criterion = self._queue.pop(0)

            async def call(token: CancellationToken, criterion: Criterion = criterion) -> ReviewHit:
                return await self._reviewer.review_one(
                    criterion, snapshot, url=url, token=token, retry=True
                )

            try:
                hit = await self._retry.run(
                    call, retry_on_any=True, label=f"review retry {criterion.id}"
                )
                evaluation = hit_to_evaluation(hit, self._i18n)
            except AuditCancelledError:
                raise
            except Exception as exc:
                logger.warning("Review retry failed for %s on %s: %s", criterion.id, url, exc)
                evaluation = review_failure(exc, self._i18n)
            slots.set(criterion.id, evaluation)
            processed += 1
        return processed


class BatchReviewRunner:
    """Sequential fixed-size batches, then per-criterion fallback."""

    def __init__(
        self,
        reviewer: AIReviewer,
        retry: RetryWithPause,
        *,
        batch_size: int,
        lang: str = "fr",
        reporter: Optional[TerminalReporter] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._reviewer = reviewer
        self._retry = retry
        self._batch_size = batch_size
        self._i18n = get_translator(lang)
        self._reporter = reporter or TerminalReporter()

    async def run_batches(
        self,
        slots: ResultSlots,
        queue: Sequence[Criterion],
        snapshot: Mapping[str, Any],
        *,
        url: str,
        review_queue: ReviewRetryQueue,
    ) -> Dict[str, ReviewHit]:
        hits: Dict[str, ReviewHit] = {}
        chunks = chunked(queue, self._batch_size)
        for number, chunk in enumerate(chunks, start=1):
            chunk_ids = {criterion.id for criterion in chunk}

            async def call(
                token: CancellationToken, chunk: List[Criterion] = chunk
            ) -> List[ReviewHit]:
                return await self._reviewer.review_batch(chunk, snapshot, url=url, token=token)

            label = f"batch {number}/{len(chunks)}"
            try:
                batch_hits = await self._retry.run(call, retry_on_any=True, label=label)
            except AuditCancelledError:
                raise
            except Exception as exc:
                logger.warning("AI %s failed for %s: %s", label, url, exc)
                self._reporter.on_error(f"AI batch review failed ({label}): {exc}", exc)
                continue

            for hit in batch_hits or []:
                if hit.criterion_id in chunk_ids:
                    hits[hit.criterion_id] = hit
            for criterion in chunk:
                hit = hits.get(criterion.id)
                if hit is not None:
                    self._resolve(slots, criterion, hit_to_evaluation(hit, self._i18n), review_queue)
        return hits

    async def run_fallback(
        self,
        slots: ResultSlots,
        unresolved: Sequence[Criterion],
        snapshot: Mapping[str, Any],
        *,
        url: str,
        review_queue: ReviewRetryQueue,
    ) -> None:
        for criterion in unresolved:

            async def call(token: CancellationToken, criterion: Criterion = criterion) -> ReviewHit:
                return await self._reviewer.review_one(criterion, snapshot, url=url, token=token)

            try:
                hit = await self._retry.run(
                    call, retry_on_any=True, label=f"review {criterion.id}"
                )
                evaluation = hit_to_evaluation(hit, self._i18n)
            except AuditCancelledError:
                raise
            except Exception as exc:
                logger.warning("AI review failed for %s on %s: %s", criterion.id, url, exc)
                evaluation = review_failure(exc, self._i18n)
            self._resolve(slots, criterion, evaluation, review_queue)

    def _resolve(
        self,
        slots: ResultSlots,
        criterion: Criterion,
        evaluation: Evaluation,
        review_queue: ReviewRetryQueue,
    ) -> None:
        slots.set_and_report(criterion.id, evaluation)
        if evaluation.status == STATUS_REVIEW:
            review_queue.add(criterion)


__all__ = [
    "BatchReviewRunner",
    "ReviewRetryQueue",
    "chunked",
    "hit_to_evaluation",
    "review_failure",
]
