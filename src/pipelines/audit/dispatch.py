"""Route each criterion to rules, the AI review queue or deferred handling."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence

from core.errors import format_page_failure
from pipelines.audit.contracts import RuleEvaluator
from pipelines.audit.slots import ResultSlots
from rgaa.i18n import get_translator
from schemas.internal.criteria import Criterion
from schemas.internal.evaluations import STATUS_ERROR, STATUS_REVIEW, Evaluation

MULTI_PAGE_CRITERIA: tuple[str, ...] = ("12.1", "12.2")
CROSS_PAGE_CRITERION = "12.1"


class CriterionDispatcher:
    """Classifies every criterion of one page.

    Automated verdicts and deferred multi-page criteria are reported
    immediately; AI candidates are returned, in session order, for batch review.
    """

    def __init__(
        self,
        rule_evaluator: RuleEvaluator,
        *,
        page_count: int,
        lang: str = "fr",
        deferred: Sequence[str] = MULTI_PAGE_CRITERIA,
        cross_page_criterion: str = CROSS_PAGE_CRITERION,
    ) -> None:
        self._rules = rule_evaluator
        self._page_count = page_count
        self._i18n = get_translator(lang)
        self._deferred = frozenset(deferred)
        self._cross_page_criterion = cross_page_criterion

    def deferred_evaluation(self, criterion_id: str = CROSS_PAGE_CRITERION) -> Evaluation:
        if self._page_count <= 1:
            note = self._i18n.single_page_only()
        elif criterion_id == self._cross_page_criterion:
            note = self._i18n.cross_page_pending()
        else:
            note = self._i18n.multi_page_manual()
        return Evaluation(status=STATUS_REVIEW, notes=note)

    def dispatch_failure(self, slots: ResultSlots, error: BaseException | str | None) -> None:
        note = format_page_failure(error)
        for criterion in slots.criteria:
            slots.set_and_report(criterion.id, Evaluation(status=STATUS_ERROR, notes=note))

    def dispatch(
        self,
        slots: ResultSlots,
        snapshot: Optional[Mapping[str, Any]],
        *,
        page_error: BaseException | str | None = None,
    ) -> List[Criterion]:
        if snapshot is None:
            self.dispatch_failure(slots, page_error)
            return []

        ai_queue: List[Criterion] = []
        for criterion in slots.criteria:
            if criterion.id in self._deferred:
                slots.set_and_report(criterion.id, self.deferred_evaluation(criterion.id))
                continue
            evaluation = self._rules.evaluate(criterion, snapshot)
            slots.set(criterion.id, evaluation)
            if evaluation.ai_candidate:
                ai_queue.append(criterion)
            else:
                slots.report(criterion.id)
        return ai_queue


__all__ = ["CROSS_PAGE_CRITERION", "CriterionDispatcher", "MULTI_PAGE_CRITERIA"]
