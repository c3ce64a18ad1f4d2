"""Interfaces for the collaborators the audit pipeline drives."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Protocol, Sequence

from pipelines.audit.cancellation import CancellationToken
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import CrossPageEvidence, Evaluation, PageResult, ReviewHit
from schemas.internal.summary import GlobalSummary

if TYPE_CHECKING:
    from services.audit_session import AuditOutcome

Snapshot = Dict[str, Any]


class SnapshotCollector(Protocol):
    async def collect(self, page: str, *, token: CancellationToken) -> Snapshot: ...


class RuleEvaluator(Protocol):
    def evaluate(self, criterion: Criterion, snapshot: Mapping[str, Any]) -> Evaluation: ...


class AIReviewer(Protocol):
    async def review_batch(
        self,
        criteria: Sequence[Criterion],
        snapshot: Mapping[str, Any],
        *,
        url: str,
        token: CancellationToken,
    ) -> List[ReviewHit]: ...

    async def review_one(
        self,
        criterion: Criterion,
        snapshot: Mapping[str, Any],
        *,
        url: str,
        token: CancellationToken,
        retry: bool = False,
    ) -> ReviewHit: ...

    async def review_cross_page(
        self,
        criterion: Criterion,
        evidence: Sequence[CrossPageEvidence],
        *,
        token: CancellationToken,
    ) -> ReviewHit: ...


class Enricher(Protocol):
    async def enrich(
        self, payload: Mapping[str, Any], *, url: str, token: CancellationToken
    ) -> Dict[str, Any]: ...


class ReportWriter(Protocol):
    def write(
        self,
        page_results: Sequence[PageResult],
        criteria: Sequence[Criterion],
        summary: GlobalSummary,
        *,
        final: bool,
    ) -> None: ...


class TerminalReporter:
    """Observer for lifecycle events. Every hook defaults to a no-op."""

    def on_session_start(self, pages: Sequence[str], criteria: Sequence[Criterion], *, resumed: int) -> None:
        pass

    def on_page_start(self, index: int, total: int, url: str) -> None:
        pass

    def on_stage_start(self, url: str, stage: str) -> None:
        pass

    def on_stage_end(self, url: str, stage: str) -> None:
        pass

    def on_criterion(self, url: str, criterion: Criterion, evaluation: Evaluation) -> None:
        pass

    def on_page_end(self, index: int, url: str, result: PageResult, *, failed: bool) -> None:
        pass

    def on_pause(self, reason: str | None) -> None:
        pass

    def on_resume(self) -> None:
        pass

    def on_error(self, message: str, error: BaseException | None = None) -> None:
        pass

    def on_done(self, outcome: "AuditOutcome") -> None:
        pass


__all__ = [
    "AIReviewer",
    "Enricher",
    "ReportWriter",
    "RuleEvaluator",
    "Snapshot",
    "SnapshotCollector",
    "TerminalReporter",
]
