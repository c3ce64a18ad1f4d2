"""Top-level audit session: pages, cross-page pass, summary and reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from core.config import AuditConfig, build_audit_config
from persistence.enrichment_cache import EnrichmentCache
from persistence.resume import ResumeStateManager
from pipelines.audit.cancellation import AbortCoordinator, CancellationToken, PauseController
from pipelines.audit.contracts import (
    AIReviewer,
    Enricher,
    ReportWriter,
    RuleEvaluator,
    SnapshotCollector,
    TerminalReporter,
)
from pipelines.audit.cross_page import CrossPageEvaluator
from pipelines.audit.dispatch import CROSS_PAGE_CRITERION
from pipelines.audit.page_runner import PageRunner
from pipelines.audit.retry import RetryWithPause
from pipelines.audit.summary import GlobalSummaryComputer, compute_error_summary
from rgaa.criteria_bank import get_criteria_bank
from rgaa.rules import RgaaRuleEvaluator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import CrossPageEvidence, Evaluation, PageResult
from schemas.internal.summary import ErrorSummary, GlobalSummary, StatusCounts

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuditOutcome:
    page_results: List[PageResult]
    criteria: List[Criterion]
    summary: GlobalSummary
    errors: ErrorSummary
    out_path: Optional[Path] = None
    cross_page: Optional[Evaluation] = None
    resumed_pages: int = 0
    pages: List[str] = field(default_factory=list)

    @property
    def global_score(self) -> float:
        return self.summary.score

    @property
    def counts(self) -> StatusCounts:
        return self.summary.counts

    def to_payload(self) -> dict:
        return {
            "outPath": str(self.out_path) if self.out_path else None,
            "pages": self.pages,
            "resumedPages": self.resumed_pages,
            "globalScore": self.global_score,
            "counts": self.counts.model_dump(),
            "errors": self.errors.model_dump(),
            "criteria": [
                {"id": item.criterion.id, "status": item.status}
                for item in self.summary.criteria
            ],
        }


def normalize_pages(pages: Iterable[str]) -> List[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: set[str] = set()
    out: List[str] = []
    for page in pages:
        value = str(page or "").strip()
        if value and value not in seen:
            seen.add(value)
            out.append(value)
    return out


class AuditSession:
    """Sequences PageRunner over every page, then the cross-page pass and summary."""

    def __init__(
        self,
        *,
        pages: Sequence[str],
        collector: SnapshotCollector,
        criteria: Optional[Sequence[Criterion]] = None,
        config: Optional[AuditConfig] = None,
        rule_evaluator: Optional[RuleEvaluator] = None,
        reviewer: Optional[AIReviewer] = None,
        enricher: Optional[Enricher] = None,
        report_writer: Optional[ReportWriter] = None,
        reporter: Optional[TerminalReporter] = None,
        token: Optional[CancellationToken] = None,
        pause_controller: Optional[PauseController] = None,
        state_path: Optional[Path] = None,
        resume: bool = False,
        out_path: Optional[Path] = None,
        debug_dir: Optional[Path] = None,
    ) -> None:
        self.config = config or build_audit_config()
        self.pages = normalize_pages(pages)
        if not self.pages:
            raise ValueError("No pages to audit")
        self.criteria = list(
            criteria
            if criteria is not None
            else get_criteria_bank(lang=self.config.report_lang).criteria
        )
        if not self.criteria:
            raise ValueError("No criteria to evaluate")
        self.collector = collector
        self.rule_evaluator = rule_evaluator or RgaaRuleEvaluator(lang=self.config.report_lang)
        self.reviewer = reviewer
        self.enricher = enricher
        self.report_writer = report_writer
        self.reporter = reporter or TerminalReporter()
        self.token = token or CancellationToken()
        self.pause_controller = pause_controller
        self.resume = resume
        self.out_path = out_path
        self.debug_dir = debug_dir
        self.state = ResumeStateManager(state_path)
        self.enrichment_cache = EnrichmentCache(self.config.enrichment_cache_size)
        self.summarize = GlobalSummaryComputer()

    async def run(self) -> AuditOutcome:
        existing = self.state.load_existing() if self.resume else None
        self.state.begin(
            pages=self.pages,
            criteria_ids=[criterion.id for criterion in self.criteria],
            report_lang=self.config.report_lang,
            out_path=str(self.out_path) if self.out_path else None,
            existing=existing,
        )

        coordinator = AbortCoordinator(self.token, self.pause_controller)
        retry = RetryWithPause(coordinator, attempt_timeout=self.config.ai_stall_timeout)
        runner = PageRunner(
            config=self.config,
            criteria=self.criteria,
            collector=self.collector,
            rule_evaluator=self.rule_evaluator,
            retry=retry,
            reviewer=self.reviewer,
            enricher=self.enricher,
            enrichment_cache=self.enrichment_cache,
            reporter=self.reporter,
            page_count=len(self.pages),
            debug_dir=self.debug_dir,
        )

        page_results: List[PageResult] = self.state.completed_pages
        evidence: List[CrossPageEvidence] = self.state.cross_page_evidence
        resumed = len(page_results)
        self.reporter.on_session_start(self.pages, self.criteria, resumed=resumed)

        pause = self.pause_controller
        if pause is not None:
            pause.add_listener(self.reporter.on_pause)
            pause.add_resume_listener(self.reporter.on_resume)
        try:
            for index in range(resumed, len(self.pages)):
                url = self.pages[index]
                self.token.raise_if_cancelled()
                self.reporter.on_page_start(index, len(self.pages), url)
                outcome = await runner.run(index, url)
                page_results.append(outcome.result)
                if outcome.evidence is not None:
                    evidence.append(outcome.evidence)
                self.state.record_page(outcome.result, evidence=outcome.evidence, meta=outcome.meta)
                self._write_report(page_results, final=False)
                self.reporter.on_page_end(index, url, outcome.result, failed=outcome.failed)

            self.token.raise_if_cancelled()
            cross_page = await CrossPageEvaluator(
                self.reviewer,
                retry,
                criterion_id=CROSS_PAGE_CRITERION,
                lang=self.config.report_lang,
                fail_fast=self.config.fail_fast,
                reporter=self.reporter,
            ).run(page_results, evidence, self.criteria)
        finally:
            if pause is not None:
                pause.remove_listener(self.reporter.on_pause)
                pause.remove_resume_listener(self.reporter.on_resume)

        summary = self._write_report(page_results, final=True)
        if not self.config.keep_checkpoint:
            self.state.discard()

        outcome = AuditOutcome(
            page_results=page_results,
            criteria=self.criteria,
            summary=summary,
            errors=compute_error_summary(page_results),
            out_path=self.out_path,
            cross_page=cross_page,
            resumed_pages=resumed,
            pages=list(self.pages),
        )
        logger.info(
            "Audit finished: %d page(s), score %.2f, %d criteria errored",
            len(page_results),
            outcome.global_score,
            outcome.errors.criteria_errored,
        )
        self.reporter.on_done(outcome)
        return outcome

    def _write_report(self, page_results: Sequence[PageResult], *, final: bool) -> GlobalSummary:
        summary = self.summarize(page_results, self.criteria)
        if self.report_writer is not None:
            self.report_writer.write(page_results, self.criteria, summary, final=final)
        return summary


async def run_audit(
    pages: Sequence[str],
    *,
    collector: SnapshotCollector,
    config: Optional[AuditConfig] = None,
    criteria: Optional[Sequence[Criterion]] = None,
    rule_evaluator: Optional[RuleEvaluator] = None,
    reviewer: Optional[AIReviewer] = None,
    enricher: Optional[Enricher] = None,
    report_writer: Optional[ReportWriter] = None,
    reporter: Optional[TerminalReporter] = None,
    token: Optional[CancellationToken] = None,
    pause_controller: Optional[PauseController] = None,
    state_path: Optional[Path] = None,
    resume: bool = False,
    out_path: Optional[Path] = None,
    debug_dir: Optional[Path] = None,
) -> AuditOutcome:
    """Run a full audit and return its outcome."""
    session = AuditSession(
        pages=pages,
        collector=collector,
        criteria=criteria,
        config=config,
        rule_evaluator=rule_evaluator,
        reviewer=reviewer,
        enricher=enricher,
        report_writer=report_writer,
        reporter=reporter,
        token=token,
        pause_controller=pause_controller,
        state_path=state_path,
        resume=resume,
        out_path=out_path,
        debug_dir=debug_dir,
    )
    return await session.run()


__all__ = ["AuditOutcome", "AuditSession", "normalize_pages", "run_audit"]
