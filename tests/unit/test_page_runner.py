from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from audit_fakes import (
    CountingEnricher,
    FakeCollector,
    FakeReviewer,
    RecordingReporter,
    TableRuleEvaluator,
    automated,
    make_criteria,
    page_snapshot,
)
from core.config import AuditConfig
from core.errors import PageFailure
from persistence.enrichment_cache import EnrichmentCache
from pipelines.audit.cancellation import AbortCoordinator, CancellationToken
from pipelines.audit.page_runner import PageRunner, PageStage, compact_snapshot
from pipelines.audit.retry import RetryWithPause
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_ERROR,
    STATUS_NOT_CONFORM,
    STATUS_REVIEW,
)

pytestmark = pytest.mark.anyio

CRITERIA = make_criteria("1.1", "3.1", "8.5", "12.1")


def _runner(
    snapshots: Dict[str, Any],
    *,
    reviewer: Optional[FakeReviewer] = None,
    rules: Optional[TableRuleEvaluator] = None,
    config: Optional[AuditConfig] = None,
    reporter: Optional[RecordingReporter] = None,
    enricher: Optional[CountingEnricher] = None,
    cache: Optional[EnrichmentCache] = None,
    page_count: int = 2,
    debug_dir: Optional[Path] = None,
) -> PageRunner:
    return PageRunner(
        config=config or AuditConfig(report_lang="en"),
        criteria=CRITERIA,
        collector=FakeCollector(snapshots),
        rule_evaluator=rules or TableRuleEvaluator({"1.1": automated(STATUS_CONFORM)}),
        retry=RetryWithPause(AbortCoordinator(CancellationToken(), None)),
        reviewer=reviewer,
        enricher=enricher,
        enrichment_cache=cache,
        reporter=reporter,
        page_count=page_count,
        debug_dir=debug_dir,
    )


async def test_page_reports_every_criterion_once_in_order() -> None:
    url = "https://a.test/"
    reporter = RecordingReporter()
    reviewer = FakeReviewer({"3.1": STATUS_NOT_CONFORM})
    runner = _runner({url: page_snapshot(url)}, reviewer=reviewer, reporter=reporter)

    outcome = await runner.run(0, url)

    statuses = {r.criterion.id: r.status for r in outcome.result.results}
    assert statuses == {
        "1.1": STATUS_CONFORM,
        "3.1": STATUS_NOT_CONFORM,
        "8.5": STATUS_CONFORM,
        "12.1": STATUS_REVIEW,
    }
    assert sorted(cid for _, cid, _ in reporter.criteria) == ["1.1", "12.1", "3.1", "8.5"]
    assert reviewer.batch_calls == [["3.1", "8.5"]]
    assert outcome.failed is False
    assert outcome.evidence is not None and outcome.evidence.has_search is True
    assert outcome.meta.title == f"Title of {url}"
    assert runner.stage is PageStage.DONE


async def test_failed_page_yields_error_rows_without_ai_calls() -> None:
    url = "https://missing.test/"
    reviewer = FakeReviewer()
    reporter = RecordingReporter()
    runner = _runner({}, reviewer=reviewer, reporter=reporter)

    outcome = await runner.run(1, url)

    assert outcome.failed is True
    assert outcome.result.snapshot is None
    assert outcome.evidence is None
    assert {r.status for r in outcome.result.results} == {STATUS_ERROR}
    assert outcome.result.results[0].evaluation.notes.startswith("Page load failed: No snapshot")
    assert reviewer.total_calls == 0
    assert len(reporter.criteria) == len(CRITERIA)
    assert reporter.errors and "missing.test" in reporter.errors[0]
    assert runner.stage is PageStage.PAGE_FAILED


async def test_fail_fast_raises_page_failure() -> None:
    runner = _runner({}, config=AuditConfig(fail_fast=True))

    with pytest.raises(PageFailure):
        await runner.run(0, "https://missing.test/")


async def test_fail_fast_wraps_plain_collector_errors() -> None:
    url = "https://boom.test/"
    runner = _runner({url: RuntimeError("socket closed")}, config=AuditConfig(fail_fast=True))

    with pytest.raises(PageFailure, match="socket closed"):
        await runner.run(0, url)


async def test_fully_automated_page_makes_no_reviewer_calls() -> None:
    url = "https://a.test/"
    reviewer = FakeReviewer()
    rules = TableRuleEvaluator({cid: automated(STATUS_CONFORM) for cid in ("1.1", "3.1", "8.5")})
    runner = _runner({url: page_snapshot(url)}, reviewer=reviewer, rules=rules)

    await runner.run(0, url)

    assert reviewer.total_calls == 0


async def test_without_reviewer_candidates_stay_at_review() -> None:
    url = "https://a.test/"
    runner = _runner({url: page_snapshot(url)})

    outcome = await runner.run(0, url)

    assert outcome.result.status_of("3.1") == STATUS_REVIEW


async def test_enrichment_is_cached_across_identical_pages() -> None:
    first, second = "https://a.test/", "https://b.test/"
    snapshots = {
        first: page_snapshot(first, htmlSnippet="<main>same</main>"),
        second: page_snapshot(second, htmlSnippet="<main>same</main>"),
    }
    enricher = CountingEnricher()
    cache = EnrichmentCache(capacity=4)
    runner = _runner(snapshots, enricher=enricher, cache=cache)

    await runner.run(0, first)
    outcome = await runner.run(1, second)

    assert enricher.calls == 1
    assert cache.hits == 1
    assert outcome.result.snapshot is not None
    assert outcome.result.snapshot["enrichmentMeta"]["cached"] is True


async def test_enrichment_disabled_by_config() -> None:
    url = "https://a.test/"
    enricher = CountingEnricher()
    runner = _runner(
        {url: page_snapshot(url, htmlSnippet="<p>")},
        enricher=enricher,
        config=AuditConfig(enrichment_enabled=False),
    )

    await runner.run(0, url)

    assert enricher.calls == 0


async def test_deferred_criterion_note_depends_on_page_count() -> None:
    url = "https://a.test/"
    single = _runner({url: page_snapshot(url)}, page_count=1)
    multi = _runner({url: page_snapshot(url)}, page_count=3)

    single_note = (await single.run(0, url)).result.results[3].evaluation.notes
    multi_note = (await multi.run(0, url)).result.results[3].evaluation.notes

    assert "single page" in single_note
    assert "cross-page" in multi_note


def test_compact_snapshot_keeps_counts_only() -> None:
    compact = compact_snapshot(page_snapshot("https://a.test/", images=[{}, {}]))

    assert compact is not None
    assert compact["title"] == "Title of https://a.test/"
    assert compact["counts"]["images"] == 2
    assert "links" not in compact
    assert compact_snapshot(None) is None


async def test_debug_snapshot_is_written_per_page(tmp_path: Path) -> None:
    url = "https://a.test/"
    runner = _runner(
        {url: page_snapshot(url)},
        config=AuditConfig(report_lang="en", debug_snapshots=True),
        debug_dir=tmp_path / "debug",
    )

    await runner.run(1, url)

    written = json.loads((tmp_path / "debug" / "P2.json").read_text(encoding="utf-8"))
    assert written["url"] == url
    assert written["snapshot"]["title"] == f"Title of {url}"


async def test_unwritable_debug_dir_is_reported_and_page_completes(tmp_path: Path) -> None:
    url = "https://a.test/"
    blocker = tmp_path / "debug"
    blocker.write_text("not a directory", encoding="utf-8")
    reporter = RecordingReporter()
    runner = _runner(
        {url: page_snapshot(url)},
        config=AuditConfig(report_lang="en", debug_snapshots=True),
        reporter=reporter,
        debug_dir=blocker,
    )

    outcome = await runner.run(0, url)

    assert runner.stage == PageStage.DONE
    assert not outcome.failed
    assert len(outcome.result.results) == len(CRITERIA)
    assert len(reporter.errors) == 1
    assert reporter.errors[0].startswith("Debug snapshot not written")
