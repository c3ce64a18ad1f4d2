from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from audit_fakes import (
    FakeCollector,
    FakeReviewer,
    MemoryReportWriter,
    RecordingReporter,
    TableRuleEvaluator,
    automated,
    make_criteria,
    page_snapshot,
)
from core.config import AuditConfig
from core.errors import AuditCancelledError, ResumeIncompatibilityError
from pipelines.audit.cancellation import CancellationToken
from services.audit_session import run_audit

pytestmark = pytest.mark.anyio

CRITERIA = make_criteria("1.1", "3.1", "8.5", "12.1")
PAGES = ["https://a.test/", "https://a.test/b", "https://a.test/c"]


def _kwargs(**overrides):
    kwargs = dict(
        collector=FakeCollector({url: page_snapshot(url) for url in PAGES}),
        config=AuditConfig(report_lang="en", ai_batch_size=1),
        criteria=CRITERIA,
        rule_evaluator=TableRuleEvaluator({"1.1": automated("Conform")}),
        reviewer=FakeReviewer({"3.1": "Not conform"}),
    )
    kwargs.update(overrides)
    return kwargs


def _rows(outcome):
    return [
        [(r.criterion.id, r.evaluation.status, r.evaluation.notes) for r in page.results]
        for page in outcome.page_results
    ]


async def test_interrupted_run_resumes_with_identical_results(tmp_path: Path) -> None:
    state_path = tmp_path / "audit.state.json"
    token = CancellationToken()
    interrupted = RecordingReporter()
    interrupted.on_page_end_hook = lambda index: token.cancel()

    with pytest.raises(AuditCancelledError):
        await run_audit(
            PAGES, token=token, reporter=interrupted, state_path=state_path, **_kwargs()
        )

    saved = json.loads(state_path.read_text(encoding="utf-8"))
    assert [page["url"] for page in saved["completedPages"]] == PAGES[:1]

    collector = FakeCollector({url: page_snapshot(url) for url in PAGES})
    reporter = RecordingReporter()
    writer = MemoryReportWriter()
    resumed = await run_audit(
        PAGES,
        reporter=reporter,
        report_writer=writer,
        state_path=state_path,
        resume=True,
        **_kwargs(collector=collector),
    )
    baseline = await run_audit(PAGES, **_kwargs())

    assert collector.calls == PAGES[1:]
    assert resumed.resumed_pages == 1
    assert {url for url, _, _ in reporter.criteria} == set(PAGES[1:])
    assert [count for _, count, _ in writer.writes] == [2, 3, 3]
    assert _rows(resumed) == _rows(baseline)
    assert resumed.summary == baseline.summary
    assert not state_path.exists()


class _CancellingReviewer(FakeReviewer):
    """Cancels the session from inside the first batch call for one page."""

    def __init__(self, session_token: CancellationToken, page: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.session_token = session_token
        self.page = page
        self.reported_at_cancel: int | None = None
        self.reporter: RecordingReporter | None = None

    async def review_batch(self, criteria, snapshot, *, url, token):
        if url != self.page:
            return await super().review_batch(criteria, snapshot, url=url, token=token)
        self.batch_calls.append([c.id for c in criteria])
        assert self.reporter is not None
        self.reported_at_cancel = len(self.reporter.criteria)
        self.session_token.cancel()
        await asyncio.sleep(10)
        return []


async def test_cancel_during_page_review_stops_reporting_and_checkpoints_prior_pages(
    tmp_path: Path,
) -> None:
    state_path = tmp_path / "audit.state.json"
    token = CancellationToken()
    reporter = RecordingReporter()
    reviewer = _CancellingReviewer(token, PAGES[1], statuses={"3.1": "Not conform"})
    reviewer.reporter = reporter

    with pytest.raises(AuditCancelledError):
        await run_audit(
            PAGES,
            token=token,
            reporter=reporter,
            state_path=state_path,
            **_kwargs(reviewer=reviewer),
        )

    assert reviewer.batch_calls[-1] == ["3.1"]
    assert len(reporter.criteria) == reviewer.reported_at_cancel
    page_two = [cid for url, cid, _ in reporter.criteria if url == PAGES[1]]
    assert "3.1" not in page_two and "8.5" not in page_two
    assert not any(url == PAGES[2] for url, _, _ in reporter.criteria)
    assert [(index, url) for index, url, _ in reporter.pages] == [(0, PAGES[0])]
    assert reporter.done == []

    saved = json.loads(state_path.read_text(encoding="utf-8"))
    assert [page["url"] for page in saved["completedPages"]] == PAGES[:1]


async def test_incompatible_checkpoint_fails_before_any_work(tmp_path: Path) -> None:
    state_path = tmp_path / "audit.state.json"
    await run_audit(
        PAGES[:1],
        state_path=state_path,
        **_kwargs(config=AuditConfig(keep_checkpoint=True)),
    )
    before = state_path.read_bytes()
    collector = FakeCollector({url: page_snapshot(url) for url in PAGES})
    writer = MemoryReportWriter()

    with pytest.raises(ResumeIncompatibilityError):
        await run_audit(
            PAGES,
            state_path=state_path,
            resume=True,
            report_writer=writer,
            **_kwargs(collector=collector, criteria=CRITERIA[:2]),
        )

    assert collector.calls == []
    assert writer.writes == []
    assert state_path.read_bytes() == before


async def test_without_resume_flag_checkpoint_is_ignored(tmp_path: Path) -> None:
    state_path = tmp_path / "audit.state.json"
    state_path.write_text("{broken", encoding="utf-8")
    collector = FakeCollector({url: page_snapshot(url) for url in PAGES})

    outcome = await run_audit(PAGES, state_path=state_path, **_kwargs(collector=collector))

    assert outcome.resumed_pages == 0
    assert collector.calls == PAGES
