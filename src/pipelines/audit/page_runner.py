"""Drive one page from snapshot to fully reported results."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.config import AuditConfig
from core.errors import AuditCancelledError, PageFailure
from persistence.enrichment_cache import EnrichmentCache, enrichment_fingerprint
from pipelines.audit.cancellation import CancellationToken
from pipelines.audit.contracts import (
    AIReviewer,
    Enricher,
    RuleEvaluator,
    Snapshot,
    SnapshotCollector,
    TerminalReporter,
)
from pipelines.audit.cross_page import extract_cross_page_evidence
from pipelines.audit.dispatch import CriterionDispatcher, MULTI_PAGE_CRITERIA
from pipelines.audit.retry import RetryWithPause
from pipelines.audit.review import BatchReviewRunner, ReviewRetryQueue
from pipelines.audit.slots import ResultSlots
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import CrossPageEvidence, PageMeta, PageResult

logger = logging.getLogger(__name__)

ENRICHMENT_INPUT_KEYS = ("htmlSnippet", "styleSamples", "uiSamples", "screenshot1", "screenshot2")
_COMPACT_LIST_KEYS = (
    "images",
    "frames",
    "links",
    "headings",
    "listItems",
    "formControls",
    "tables",
    "langChanges",
)
_COMPACT_SCALAR_KEYS = ("doctype", "title", "lang", "url")


class PageStage(str, Enum):
    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    ENRICHING = "enriching"
    DISPATCHING = "dispatching"
    BATCH_REVIEWING = "batch_reviewing"
    FALLBACK = "fallback"
    REVIEW_RETRY = "review_retry"
    FINAL_REPORTING = "final_reporting"
    DONE = "done"
    PAGE_FAILED = "page_failed"
    ABORTED = "aborted"


@dataclass(slots=True)
class PageOutcome:
    result: PageResult
    evidence: Optional[CrossPageEvidence]
    meta: PageMeta
    failed: bool = False


def compact_snapshot(snapshot: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Keep identity fields and element counts; drop bulky evidence."""
    if snapshot is None:
        return None
    compact: Dict[str, Any] = {}
    for key in _COMPACT_SCALAR_KEYS:
        if key in snapshot:
            compact[key] = snapshot[key]
    counts = {
        key: len(snapshot[key])
        for key in _COMPACT_LIST_KEYS
        if isinstance(snapshot.get(key), list)
    }
    if counts:
        compact["counts"] = counts
    for key in ("media", "scripts", "enrichmentMeta"):
        if isinstance(snapshot.get(key), dict):
            compact[key] = dict(snapshot[key])
    return compact


class PageRunner:
    """Snapshot -> enrichment -> dispatch -> batch review -> fallback -> retry -> sweep."""

    def __init__(
        self,
        *,
        config: AuditConfig,
        criteria: Sequence[Criterion],
        collector: SnapshotCollector,
        rule_evaluator: RuleEvaluator,
        retry: RetryWithPause,
        reviewer: Optional[AIReviewer] = None,
        enricher: Optional[Enricher] = None,
        enrichment_cache: Optional[EnrichmentCache] = None,
        reporter: Optional[TerminalReporter] = None,
        page_count: int = 1,
        debug_dir: Optional[Path] = None,
    ) -> None:
        self._config = config
        self._criteria = list(criteria)
        self._collector = collector
        self._retry = retry
        self._io_retry = RetryWithPause(retry.coordinator)
        self._reviewer = reviewer
        self._enricher = enricher
        self._cache = enrichment_cache
        self._reporter = reporter or TerminalReporter()
        self._debug_dir = debug_dir
        self._dispatcher = CriterionDispatcher(
            rule_evaluator,
            page_count=page_count,
            lang=config.report_lang,
            deferred=MULTI_PAGE_CRITERIA,
        )
        self.stage = PageStage.IDLE

    @property
    def session_token(self) -> CancellationToken:
        return self._retry.coordinator.session_token

    def _enter(self, url: str, stage: PageStage) -> None:
        self.session_token.raise_if_cancelled()
        self.stage = stage
        self._reporter.on_stage_start(url, stage.value)

    def _leave(self, url: str, stage: PageStage) -> None:
        self._reporter.on_stage_end(url, stage.value)

    async def run(self, index: int, url: str) -> PageOutcome:
        try:
            return await self._run(index, url)
        except AuditCancelledError:
            self.stage = PageStage.ABORTED
            raise

    async def _run(self, index: int, url: str) -> PageOutcome:
        self.stage = PageStage.IDLE
        slots = ResultSlots(
            url,
            self._criteria,
            on_report=self._reporter.on_criterion,
            lang=self._config.report_lang,
        )

        self._enter(url, PageStage.SNAPSHOTTING)
        snapshot: Optional[Snapshot] = None
        page_error: Optional[BaseException] = None
        try:
            snapshot = await self._collect(url)
        except AuditCancelledError:
            raise
        except Exception as exc:
            if self._config.fail_fast:
                if isinstance(exc, PageFailure):
                    raise
                raise PageFailure(str(exc) or exc.__class__.__name__) from exc
            logger.warning("Snapshot failed for %s: %s", url, exc)
            self._reporter.on_error(f"Page failed: {url}: {exc}", exc)
            page_error = exc
        self._leave(url, PageStage.SNAPSHOTTING)

        if snapshot is None:
            self.stage = PageStage.PAGE_FAILED
            self._dispatcher.dispatch(slots, None, page_error=page_error)
            slots.sweep()
            return PageOutcome(
                result=PageResult(url=url, snapshot=None, results=slots.to_results()),
                evidence=None,
                meta=PageMeta(),
                failed=True,
            )

        if self._enricher is not None and self._config.enrichment_enabled:
            self._enter(url, PageStage.ENRICHING)
            await self._enrich(url, snapshot)
            self._leave(url, PageStage.ENRICHING)

        self._write_debug_snapshot(index, url, snapshot)

        self._enter(url, PageStage.DISPATCHING)
        ai_queue = self._dispatcher.dispatch(slots, snapshot)
        self._leave(url, PageStage.DISPATCHING)

        if ai_queue and self._reviewer is not None:
            await self._review(url, slots, ai_queue, snapshot)

        self._enter(url, PageStage.FINAL_REPORTING)
        slots.sweep()
        self._leave(url, PageStage.FINAL_REPORTING)
        self.stage = PageStage.DONE

        return PageOutcome(
            result=PageResult(
                url=url, snapshot=compact_snapshot(snapshot), results=slots.to_results()
            ),
            evidence=extract_cross_page_evidence(url, snapshot),
            meta=PageMeta(
                title=str(snapshot.get("title") or ""), lang=str(snapshot.get("lang") or "")
            ),
        )

    async def _collect(self, url: str) -> Snapshot:
        async def call(token: CancellationToken) -> Snapshot:
            return await self._collector.collect(url, token=token)

        snapshot = await self._io_retry.run(call, label=f"snapshot {url}")
        if not isinstance(snapshot, dict):
            raise PageFailure(f"Snapshot collector returned {type(snapshot).__name__}")
        return snapshot

    async def _enrich(self, url: str, snapshot: Snapshot) -> None:
        payload = {key: snapshot[key] for key in ENRICHMENT_INPUT_KEYS if key in snapshot}
        if not payload or self._enricher is None:
            return
        fingerprint = enrichment_fingerprint(payload)
        cached = self._cache.get(fingerprint) if self._cache is not None else None
        if cached is not None:
            snapshot["enrichment"] = cached
            snapshot["enrichmentMeta"] = {"fingerprint": fingerprint, "cached": True}
            return

        enricher = self._enricher

        async def call(token: CancellationToken) -> Dict[str, Any]:
            return await enricher.enrich(payload, url=url, token=token)

        try:
            enrichment = await self._io_retry.run(call, label=f"enrichment {url}")
        except AuditCancelledError:
            raise
        except Exception as exc:
            logger.warning("Enrichment failed for %s: %s", url, exc)
            self._reporter.on_error(f"Enrichment failed: {url}: {exc}", exc)
            snapshot["enrichmentMeta"] = {"fingerprint": fingerprint, "error": str(exc)}
            return
        if self._cache is not None:
            self._cache.put(fingerprint, enrichment)
        snapshot["enrichment"] = enrichment
        snapshot["enrichmentMeta"] = {"fingerprint": fingerprint, "cached": False}

    async def _review(
        self,
        url: str,
        slots: ResultSlots,
        ai_queue: List[Criterion],
        snapshot: Snapshot,
    ) -> None:
        reviewer = self._reviewer
        if reviewer is None:
            return
        review_queue = ReviewRetryQueue(reviewer, self._retry, lang=self._config.report_lang)
        runner = BatchReviewRunner(
            reviewer,
            self._retry,
            batch_size=self._config.ai_batch_size,
            lang=self._config.report_lang,
            reporter=self._reporter,
        )

        self._enter(url, PageStage.BATCH_REVIEWING)
        hits = await runner.run_batches(
            slots, ai_queue, snapshot, url=url, review_queue=review_queue
        )
        self._leave(url, PageStage.BATCH_REVIEWING)

        unresolved = [criterion for criterion in ai_queue if criterion.id not in hits]
        if unresolved:
            self._enter(url, PageStage.FALLBACK)
            await runner.run_fallback(
                slots, unresolved, snapshot, url=url, review_queue=review_queue
            )
            self._leave(url, PageStage.FALLBACK)

        if len(review_queue):
            self._enter(url, PageStage.REVIEW_RETRY)
            await review_queue.drain(slots, snapshot, url=url)
            self._leave(url, PageStage.REVIEW_RETRY)

    def _write_debug_snapshot(self, index: int, url: str, snapshot: Snapshot) -> None:
        if not self._config.debug_snapshots or self._debug_dir is None:
            return
        target = self._debug_dir / f"P{index + 1}.json"
        payload = {"url": url, "snapshot": snapshot}
        try:
            self._debug_dir.mkdir(parents=True, exist_ok=True)
            target.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding="utf-8"
            )
        except OSError as exc:
            logger.warning("Debug snapshot write failed for %s: %s", url, exc)
            self._reporter.on_error(f"Debug snapshot not written: {target}: {exc}", exc)


__all__ = ["ENRICHMENT_INPUT_KEYS", "PageOutcome", "PageRunner", "PageStage", "compact_snapshot"]
