"""In-memory collaborators shared by the audit pipeline tests."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from core.errors import PageFailure
from pipelines.audit.cancellation import CancellationToken
from pipelines.audit.contracts import TerminalReporter
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_CONFORM,
    STATUS_REVIEW,
    CrossPageEvidence,
    Evaluation,
    PageResult,
    ReviewHit,
)
from schemas.internal.summary import GlobalSummary


def make_criteria(*ids: str) -> List[Criterion]:
    return [
        Criterion(id=cid, theme=f"Theme {cid.split('.')[0]}", title=f"Criterion {cid}")
        for cid in ids
    ]


def page_snapshot(url: str, **extra: Any) -> Dict[str, Any]:
    snapshot: Dict[str, Any] = {
        "url": url,
        "doctype": "html",
        "title": f"Title of {url}",
        "lang": "fr",
        "links": [
            {"name": "Accueil", "href": "/", "inNav": True},
            {"name": "Plan du site", "href": "/plan"},
        ],
        "landmarks": [{"role": "navigation"}],
        "formControls": [{"type": "search", "name": "q"}],
    }
    snapshot.update(extra)
    return snapshot


class FakeCollector:
    """Serves deep copies of canned snapshots; an Exception value is raised instead."""

    def __init__(self, snapshots: Mapping[str, Any]) -> None:
        self.snapshots = dict(snapshots)
        self.calls: List[str] = []

    async def collect(self, page: str, *, token: CancellationToken) -> Dict[str, Any]:
        token.raise_if_cancelled()
        self.calls.append(page)
        value = self.snapshots.get(page)
        if value is None:
            raise PageFailure(f"No snapshot for {page}", diagnostics="navigation failed\nnet::ERR")
        if isinstance(value, BaseException):
            raise value
        return copy.deepcopy(value)


class TableRuleEvaluator:
    """Returns a fixed evaluation per criterion id; unknown ids become AI candidates."""

    def __init__(self, table: Optional[Mapping[str, Evaluation]] = None) -> None:
        self.table = dict(table or {})
        self.calls: List[str] = []

    def evaluate(self, criterion: Criterion, snapshot: Mapping[str, Any]) -> Evaluation:
        self.calls.append(criterion.id)
        if criterion.id in self.table:
            return self.table[criterion.id]
        return Evaluation(status=STATUS_REVIEW, notes="Review required.", ai_candidate=True)


def automated(status: str = STATUS_CONFORM) -> Evaluation:
    return Evaluation(status=status, notes="rule", automated=True)


class FakeReviewer:
    """Scriptable AIReviewer.

    ``statuses`` maps criterion id to the status returned by batch and single
    calls; ``batch_error``/``one_error`` make those calls raise; ``omit`` ids
    are left out of batch replies.
    """

    def __init__(
        self,
        statuses: Optional[Mapping[str, str]] = None,
        *,
        default: str = STATUS_CONFORM,
        retry_statuses: Optional[Mapping[str, str]] = None,
        cross_status: str = "Not conform",
        batch_error: Optional[Callable[[], BaseException]] = None,
        one_error: Optional[Callable[[], BaseException]] = None,
        cross_error: Optional[Callable[[], BaseException]] = None,
        omit: Sequence[str] = (),
    ) -> None:
        self.statuses = dict(statuses or {})
        self.default = default
        self.retry_statuses = dict(retry_statuses or {})
        self.cross_status = cross_status
        self.batch_error = batch_error
        self.one_error = one_error
        self.cross_error = cross_error
        self.omit = set(omit)
        self.batch_calls: List[List[str]] = []
        self.one_calls: List[tuple[str, bool]] = []
        self.cross_calls: List[List[str]] = []

    @property
    def total_calls(self) -> int:
        return len(self.batch_calls) + len(self.one_calls) + len(self.cross_calls)

    def _hit(self, criterion_id: str, status: str) -> ReviewHit:
        return ReviewHit(
            criterion_id=criterion_id,
            status=status,
            confidence=0.8,
            rationale=f"verdict for {criterion_id}",
            evidence=[f"evidence {criterion_id}"],
        )

    async def review_batch(
        self,
        criteria: Sequence[Criterion],
        snapshot: Mapping[str, Any],
        *,
        url: str,
        token: CancellationToken,
    ) -> List[ReviewHit]:
        self.batch_calls.append([c.id for c in criteria])
        await asyncio.sleep(0)
        if self.batch_error is not None:
            raise self.batch_error()
        return [
            self._hit(c.id, self.statuses.get(c.id, self.default))
            for c in criteria
            if c.id not in self.omit
        ]

    async def review_one(
        self,
        criterion: Criterion,
        snapshot: Mapping[str, Any],
        *,
        url: str,
        token: CancellationToken,
        retry: bool = False,
    ) -> ReviewHit:
        self.one_calls.append((criterion.id, retry))
        await asyncio.sleep(0)
        if self.one_error is not None:
            raise self.one_error()
        if retry and criterion.id in self.retry_statuses:
            return self._hit(criterion.id, self.retry_statuses[criterion.id])
        return self._hit(criterion.id, self.statuses.get(criterion.id, self.default))

    async def review_cross_page(
        self,
        criterion: Criterion,
        evidence: Sequence[CrossPageEvidence],
        *,
        token: CancellationToken,
    ) -> ReviewHit:
        self.cross_calls.append([item.url for item in evidence])
        await asyncio.sleep(0)
        if self.cross_error is not None:
            raise self.cross_error()
        return self._hit(criterion.id, self.cross_status)


class RecordingReporter(TerminalReporter):
    def __init__(self) -> None:
        self.criteria: List[tuple[str, str, str]] = []
        self.pages: List[tuple[int, str, bool]] = []
        self.errors: List[str] = []
        self.pauses: List[Optional[str]] = []
        self.resumes = 0
        self.done: List[Any] = []
        self.on_page_end_hook: Optional[Callable[[int], None]] = None

    def on_criterion(self, url: str, criterion: Criterion, evaluation: Evaluation) -> None:
        self.criteria.append((url, criterion.id, evaluation.status))

    def on_page_end(self, index: int, url: str, result: PageResult, *, failed: bool) -> None:
        self.pages.append((index, url, failed))
        if self.on_page_end_hook is not None:
            self.on_page_end_hook(index)

    def on_pause(self, reason: Optional[str]) -> None:
        self.pauses.append(reason)

    def on_resume(self) -> None:
        self.resumes += 1

    def on_error(self, message: str, error: Optional[BaseException] = None) -> None:
        self.errors.append(message)

    def on_done(self, outcome: Any) -> None:
        self.done.append(outcome)


class MemoryReportWriter:
    def __init__(self) -> None:
        self.writes: List[tuple[bool, int, GlobalSummary]] = []

    def write(
        self,
        page_results: Sequence[PageResult],
        criteria: Sequence[Criterion],
        summary: GlobalSummary,
        *,
        final: bool,
    ) -> None:
        self.writes.append((final, len(page_results), summary))


class CountingEnricher:
    def __init__(self) -> None:
        self.calls = 0

    async def enrich(
        self, payload: Mapping[str, Any], *, url: str, token: CancellationToken
    ) -> Dict[str, Any]:
        self.calls += 1
        return {"keys": sorted(payload)}
