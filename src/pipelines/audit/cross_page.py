"""Second pass for criteria that can only be judged across several pages."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from core.errors import AuditCancelledError
from pipelines.audit.cancellation import CancellationToken
from pipelines.audit.contracts import AIReviewer, TerminalReporter
from pipelines.audit.retry import RetryWithPause
from pipelines.audit.review import hit_to_evaluation
from rgaa.i18n import get_translator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import (
    STATUS_ERROR,
    CrossPageEvidence,
    Evaluation,
    PageResult,
    ReviewHit,
)

logger = logging.getLogger(__name__)

_SEARCH_TOKENS = ("search", "recherche", "rechercher", "query")
_SITEMAP_TOKENS = ("plan du site", "sitemap", "site map")
_MAX_NAVIGATION_LINKS = 20


def _has_search(snapshot: Mapping[str, Any]) -> bool:
    for control in snapshot.get("formControls") or []:
        if not isinstance(control, dict):
            continue
        if str(control.get("type") or "").lower() == "search":
            return True
        haystack = " ".join(
            str(control.get(key) or "") for key in ("name", "id", "label", "role")
        ).lower()
        if any(token in haystack for token in _SEARCH_TOKENS) or control.get("name") == "q":
            return True
    return any(
        str(landmark.get("role") or "").lower() == "search"
        for landmark in snapshot.get("landmarks") or []
        if isinstance(landmark, dict)
    )


def extract_cross_page_evidence(
    url: str, snapshot: Optional[Mapping[str, Any]]
) -> Optional[CrossPageEvidence]:
    """Per-page facts used by the multi-page navigation criterion."""
    if snapshot is None:
        return None
    links = [link for link in snapshot.get("links") or [] if isinstance(link, dict)]
    landmarks = [item for item in snapshot.get("landmarks") or [] if isinstance(item, dict)]

    sitemap_links = [
        str(link.get("href") or link.get("name") or "")
        for link in links
        if any(token in str(link.get("name") or "").lower() for token in _SITEMAP_TOKENS)
    ]
    navigation_links = [
        " ".join(str(link.get("name") or "").split())
        for link in links
        if link.get("inNav") and link.get("name")
    ][:_MAX_NAVIGATION_LINKS]
    return CrossPageEvidence(
        url=url,
        title=str(snapshot.get("title") or ""),
        has_search=_has_search(snapshot),
        navigation_landmarks=sum(
            1 for item in landmarks if str(item.get("role") or "").lower() == "navigation"
        ),
        sitemap_links=sitemap_links,
        navigation_links=navigation_links,
    )


class CrossPageEvaluator:
    """Broadcast one reviewer verdict for the reserved criterion to every page."""

    def __init__(
        self,
        reviewer: Optional[AIReviewer],
        retry: RetryWithPause,
        *,
        criterion_id: str,
        lang: str = "fr",
        fail_fast: bool = False,
        reporter: Optional[TerminalReporter] = None,
    ) -> None:
        self._reviewer = reviewer
        self._retry = retry
        self._criterion_id = criterion_id
        self._i18n = get_translator(lang)
        self._fail_fast = fail_fast
        self._reporter = reporter or TerminalReporter()
        self.runs = 0

    def should_run(
        self,
        page_results: Sequence[PageResult],
        evidence: Sequence[CrossPageEvidence],
        criteria: Sequence[Criterion],
    ) -> bool:
        return (
            self._reviewer is not None
            and len(page_results) >= 2
            and bool(evidence)
            and any(criterion.id == self._criterion_id for criterion in criteria)
        )

    async def run(
        self,
        page_results: List[PageResult],
        evidence: Sequence[CrossPageEvidence],
        criteria: Sequence[Criterion],
    ) -> Optional[Evaluation]:
        reviewer = self._reviewer
        if reviewer is None or not self.should_run(page_results, evidence, criteria):
            return None
        criterion = next(c for c in criteria if c.id == self._criterion_id)
        self.runs += 1

        async def call(token: CancellationToken) -> ReviewHit:
            return await reviewer.review_cross_page(criterion, list(evidence), token=token)

        try:
            hit = await self._retry.run(
                call, retry_on_any=True, label=f"cross-page review {criterion.id}"
            )
            evaluation = hit_to_evaluation(hit, self._i18n)
        except AuditCancelledError:
            raise
        except Exception as exc:
            if self._fail_fast:
                raise
            logger.warning("Cross-page review failed for %s: %s", criterion.id, exc)
            self._reporter.on_error(f"Cross-page review failed: {exc}", exc)
            evaluation = Evaluation(
                status=STATUS_ERROR,
                notes=f"{self._i18n.cross_page_failed()}: {exc}",
                ai_candidate=True,
            )

        for page in page_results:
            page.replace_evaluation(criterion.id, evaluation)
        return evaluation


__all__ = ["CrossPageEvaluator", "extract_cross_page_evidence"]
